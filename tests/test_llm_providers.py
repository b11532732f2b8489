"""
Tests for LLM provider selection and the gateway/prompt providers.

No network access is needed: the gateway's HTTP session and the SDK
clients are replaced with mocks.
"""

from __future__ import annotations

import os
import sys
import types
import unittest
from unittest import mock

import pytest  # type: ignore

from teammatch.rank.llm_providers import (
    GatewayProvider,
    GeminiProvider,
    OpenAIProvider,
    PlaceholderProvider,
    _PromptProvider,
    get_default_provider,
    is_placeholder,
    parse_json_reply,
)
from teammatch.rank.llm_schema import Candidate, RerankRequest, SkillExtractionRequest

_ENV_VARS = (
    "LLM_PROVIDER",
    "AI_GATEWAY_URL",
    "AI_GATEWAY_API_KEY",
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_placeholder_when_nothing_configured(clean_env) -> None:
    provider = get_default_provider()
    assert isinstance(provider, PlaceholderProvider)
    assert is_placeholder(provider)
    assert is_placeholder(None)


def test_explicit_placeholder_wins(clean_env) -> None:
    clean_env.setenv("LLM_PROVIDER", "placeholder")
    clean_env.setenv("AI_GATEWAY_URL", "http://gateway.local")
    assert isinstance(get_default_provider(), PlaceholderProvider)


def test_gateway_detected_from_url(clean_env) -> None:
    clean_env.setenv("AI_GATEWAY_URL", "http://gateway.local/")
    provider = get_default_provider()
    assert isinstance(provider, GatewayProvider)
    assert provider.base_url == "http://gateway.local"
    assert not is_placeholder(provider)


def test_failed_preferred_provider_falls_back(clean_env) -> None:
    clean_env.setenv("LLM_PROVIDER", "gateway")
    assert isinstance(get_default_provider(), PlaceholderProvider)
    clean_env.setenv("LLM_PROVIDER", "nonsense")
    assert isinstance(get_default_provider(), PlaceholderProvider)


class TestGatewayProvider(unittest.TestCase):
    def setUp(self) -> None:
        self.provider = GatewayProvider("http://gateway.local", api_key="secret", timeout=3)
        self.response = mock.Mock()
        self.response.raise_for_status.return_value = None
        self.provider.session = mock.Mock()
        self.provider.session.post.return_value = self.response

    def test_extract_skills_maps_gateway_reply(self) -> None:
        self.response.json.return_value = {
            "skills": ["Python", " ", "SQL"],
            "evidence": [{"skill": "python", "quote": "5 years of Python"}],
        }
        data = self.provider.extract_skills(SkillExtractionRequest("cv", "doc:1", "I write Python and SQL"))
        self.assertEqual(
            data["skills"],
            [
                {"name": "Python", "confidence": 1.0, "evidence": "5 years of Python"},
                {"name": "SQL", "confidence": 1.0, "evidence": None},
            ],
        )
        args, kwargs = self.provider.session.post.call_args
        self.assertEqual(args[0], "http://gateway.local/llm/extract-skills")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer secret")
        self.assertEqual(kwargs["json"]["maxSkills"], 40)
        self.assertEqual(kwargs["timeout"], 3)

    def test_rerank_posts_candidate_payload(self) -> None:
        self.response.json.return_value = {"ranked": []}
        request = RerankRequest("auto_assign_team", "q", [Candidate("g1", "g1", "Team", "desc", 42)])
        self.assertEqual(self.provider.rerank(request), {"ranked": []})
        payload = self.provider.session.post.call_args.kwargs["json"]
        self.assertEqual(payload["queryType"], "auto_assign_team")
        self.assertEqual(payload["candidates"][0]["key"], "g1")
        self.assertEqual(payload["candidates"][0]["metadata"]["baselineScore"], 42)

    def test_non_object_body_raises(self) -> None:
        self.response.json.return_value = ["nope"]
        with self.assertRaises(ValueError):
            self.provider.rerank(RerankRequest("topic", "q"))


class TestPromptProviderTimeouts(unittest.TestCase):
    """The SDK clients get the provider timeout on every call."""

    def test_openai_passes_timeout(self) -> None:
        fake_openai = types.ModuleType("openai")
        fake_openai.OpenAI = mock.Mock()
        with mock.patch.dict(sys.modules, {"openai": fake_openai}):
            provider = OpenAIProvider(api_key="sk-test", model="gpt-test", timeout=7.5)
        client = fake_openai.OpenAI.return_value
        client.chat.completions.create.return_value.choices = [mock.Mock(message=mock.Mock(content="{}"))]
        self.assertEqual(provider._complete("hello"), "{}")
        kwargs = client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["timeout"], 7.5)
        self.assertEqual(kwargs["model"], "gpt-test")

    def test_gemini_passes_timeout(self) -> None:
        fake_genai = types.ModuleType("google.generativeai")
        fake_genai.configure = mock.Mock()
        fake_genai.GenerativeModel = mock.Mock()
        fake_google = types.ModuleType("google")
        fake_google.generativeai = fake_genai
        modules = {"google": fake_google, "google.generativeai": fake_genai}
        with mock.patch.dict(sys.modules, modules), mock.patch.dict(
            os.environ, {"GEMINI_MODEL": "", "GOOGLE_MODEL": ""}
        ):
            provider = GeminiProvider(api_key="g-test", model="gemini-test", timeout=4)
        model = fake_genai.GenerativeModel.return_value
        model.generate_content.return_value.text = '{"skills": []}'
        self.assertEqual(provider._complete("hello"), '{"skills": []}')
        model.generate_content.assert_called_once_with("hello", request_options={"timeout": 4})
        fake_genai.configure.assert_called_once_with(api_key="g-test")


class EchoProvider(_PromptProvider):
    name = "echo"

    def __init__(self, reply) -> None:
        self.reply = reply

    def _complete(self, prompt: str) -> str:
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


def test_parse_json_reply_strips_fences() -> None:
    assert parse_json_reply('```json\n{"ranked": []}\n```') == {"ranked": []}
    assert parse_json_reply('{"skills": []}') == {"skills": []}
    with pytest.raises(ValueError):
        parse_json_reply("[1, 2]")


def test_prompt_provider_rerank_reports_errors() -> None:
    data = EchoProvider(RuntimeError("rate limited")).rerank(RerankRequest("topic", "q"))
    assert data["ranked"] == []
    assert "rate limited" in data["error"]
    assert EchoProvider('{"ranked": [{"key": "a", "finalScore": 1}]}').rerank(RerankRequest("topic", "q"))[
        "ranked"
    ] == [{"key": "a", "finalScore": 1}]


def test_prompt_provider_extraction_propagates_errors() -> None:
    with pytest.raises(ValueError):
        EchoProvider("not json").extract_skills(SkillExtractionRequest("cv", "x:1", "text"))
