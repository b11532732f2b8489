"""
LLM provider abstractions.

This module defines the interface teammatch uses to reach a large
language model for two jobs: reranking a baseline candidate list and
extracting skills from a chunk of text.  Concrete implementations talk
to an AI gateway over HTTP, to OpenAI, or to Gemini (Google Generative
AI).  A placeholder implementation needs no network at all and is used
when nothing is configured.

Every provider returns the decoded JSON body as a plain ``dict``.  The
body is untrusted: callers validate it and fall back to deterministic
results when it is unusable.  Providers may raise on transport errors;
callers catch those too.

The provider is selected from environment variables by
:func:`get_default_provider` (``LLM_PROVIDER``, ``AI_GATEWAY_URL``,
``OPENAI_API_KEY``, ``GEMINI_API_KEY``/``GOOGLE_API_KEY``).
"""

from __future__ import annotations

import json
import logging
import os
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from ..profile.skill_profile import SkillProfile
from .llm_schema import RerankRequest, SkillExtractionRequest

logger = logging.getLogger(__name__)

PLACEHOLDER_CONFIDENCE = 0.5
GATEWAY_MAX_SKILLS = 40

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    def rerank(self, request: RerankRequest) -> Dict[str, Any]:
        """Rerank a bounded candidate list.

        Returns:
            A dict shaped like ``{"ranked": [{"key", "finalScore",
            "reason", "matchedSkills", "balanceNote"}], "error": ...}``.
        """
        raise NotImplementedError

    @abstractmethod
    def extract_skills(self, request: SkillExtractionRequest) -> Dict[str, Any]:
        """Extract skills from one chunk of text.

        Returns:
            A dict shaped like ``{"skills": [{"name", "confidence",
            "evidence"}]}``.
        """
        raise NotImplementedError


class PlaceholderProvider(LLMProvider):
    """Fallback provider that does not call any external API."""

    def rerank(self, request: RerankRequest) -> Dict[str, Any]:
        return {"ranked": [], "error": "placeholder provider"}

    def extract_skills(self, request: SkillExtractionRequest) -> Dict[str, Any]:
        profile = SkillProfile.from_text(request.content)
        return {
            "skills": [
                {"name": tag, "confidence": PLACEHOLDER_CONFIDENCE, "evidence": None}
                for tag in profile.tags
            ]
        }


def is_placeholder(provider: Optional[LLMProvider]) -> bool:
    """True when ``provider`` cannot improve on the deterministic baseline."""
    return provider is None or isinstance(provider, PlaceholderProvider)


class GatewayProvider(LLMProvider):
    """Provider that posts to an AI gateway service over HTTP."""

    def __init__(self, base_url: str | None = None, api_key: str | None = None, timeout: float = 20.0) -> None:
        self.base_url = (base_url or os.getenv("AI_GATEWAY_URL") or "").rstrip("/")
        if not self.base_url:
            raise ValueError("AI_GATEWAY_URL not provided")
        self.api_key = api_key or os.getenv("AI_GATEWAY_API_KEY")
        self.timeout = timeout
        self.session = requests.Session()

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        url = f"{self.base_url}/{path}"
        logger.debug("POST %s", url)
        resp = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError(f"Gateway returned a non-object body for {path}")
        return data

    def rerank(self, request: RerankRequest) -> Dict[str, Any]:
        return self._post("llm/rerank", request.to_payload())

    def extract_skills(self, request: SkillExtractionRequest) -> Dict[str, Any]:
        data = self._post(
            "llm/extract-skills",
            {"text": request.content, "knownSkills": None, "maxSkills": GATEWAY_MAX_SKILLS},
        )
        # The gateway answers {skills: [str], evidence: [{skill, quote}]}.
        evidence: Dict[str, str] = {}
        for item in data.get("evidence") or []:
            if isinstance(item, dict) and isinstance(item.get("skill"), str):
                evidence.setdefault(item["skill"].strip().lower(), item.get("quote"))
        skills: List[Dict[str, Any]] = []
        for name in data.get("skills") or []:
            if isinstance(name, str) and name.strip():
                skills.append(
                    {"name": name.strip(), "confidence": 1.0, "evidence": evidence.get(name.strip().lower())}
                )
        return {"skills": skills}


def _rerank_prompt(request: RerankRequest) -> str:
    return (
        "You rerank candidates for a student team-matching system. Given a query and a "
        "list of candidates, return ONLY a JSON object with key 'ranked': a list of objects "
        "with keys 'key' (copied exactly from the candidate), 'finalScore' (0 to 100), "
        "'reason' (one short sentence), 'matchedSkills' (list of strings) and "
        "'balanceNote' (string, may be empty). Never invent keys.\n"
        f"Query type: {request.query_type}\n"
        f"Query: {request.query_text}\n"
        f"Candidates: {json.dumps(request.to_payload()['candidates'], ensure_ascii=False)}"
    )


def _extraction_prompt(request: SkillExtractionRequest) -> str:
    return (
        "Extract the technical skills mentioned in the following text. Return ONLY a JSON "
        "object with key 'skills': a list of objects with keys 'name' (short lowercase skill "
        "name), 'confidence' (0 to 1) and 'evidence' (a short quote from the text).\n"
        f"Source type: {request.source_type}\n"
        f"Text:\n{request.content}"
    )


def parse_json_reply(content: str) -> Dict[str, Any]:
    """Decode a model reply that should contain a single JSON object."""
    cleaned = _FENCE_RE.sub("", (content or "").strip())
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("Model reply is not a JSON object")
    return data


class _PromptProvider(LLMProvider):
    """Shared prompt handling for chat-style model APIs."""

    name = "llm"

    @abstractmethod
    def _complete(self, prompt: str) -> str:
        raise NotImplementedError

    def rerank(self, request: RerankRequest) -> Dict[str, Any]:
        prompt = _rerank_prompt(request)
        logger.debug("Sending rerank prompt to %s: %s", self.name, prompt[:200])
        try:
            return parse_json_reply(self._complete(prompt))
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s rerank call failed: %s", self.name, exc)
            return {"ranked": [], "error": f"{self.name} call failed: {exc}"}

    def extract_skills(self, request: SkillExtractionRequest) -> Dict[str, Any]:
        prompt = _extraction_prompt(request)
        logger.debug("Sending extraction prompt to %s: %s", self.name, prompt[:200])
        return parse_json_reply(self._complete(prompt))


class OpenAIProvider(_PromptProvider):
    """Provider that uses the OpenAI chat completions API."""

    name = "openai"

    def __init__(self, api_key: str | None = None, model: str | None = None, timeout: float = 20.0) -> None:
        try:
            from openai import OpenAI  # type: ignore
        except ImportError as exc:
            raise RuntimeError(
                "openai package is required for OpenAIProvider. Install it via pip."
            ) from exc
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model or os.getenv("OPENAI_MODEL") or "gpt-4o-mini"
        if not self.api_key:
            raise ValueError("OPENAI_API_KEY not provided")
        self.client = OpenAI(api_key=self.api_key)
        self.timeout = timeout

    def _complete(self, prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.0,
            timeout=self.timeout,
        )
        return response.choices[0].message.content or ""


class GeminiProvider(_PromptProvider):
    """Provider that uses Google Generative AI (Gemini) via google-generativeai."""

    name = "gemini"

    def __init__(self, api_key: str | None = None, model: str = "gemini-1.5-pro", timeout: float = 20.0) -> None:
        try:
            import google.generativeai as genai  # type: ignore
        except ImportError as exc:
            raise RuntimeError(
                "google-generativeai package is required for GeminiProvider. Install it via pip."
            ) from exc
        self.genai = genai
        self.api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        self.model_name = os.getenv("GEMINI_MODEL") or os.getenv("GOOGLE_MODEL") or model
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY/GOOGLE_API_KEY not provided")
        self.timeout = timeout
        self.genai.configure(api_key=self.api_key)
        try:
            self.model = self.genai.GenerativeModel(self.model_name)
        except Exception as exc:
            raise RuntimeError(f"Failed to load Gemini model {self.model_name}: {exc}") from exc

    def _complete(self, prompt: str) -> str:
        response = self.model.generate_content(prompt, request_options={"timeout": self.timeout})
        return response.text


def get_default_provider() -> LLMProvider:
    """Return an LLMProvider instance based on configuration and API keys.

    The resolution order is:

    1. If ``LLM_PROVIDER`` is set to ``"gateway"``, ``"openai"``,
       ``"gemini"`` or ``"placeholder"``, that provider is selected.  If
       it cannot be initialised (missing key or package), a warning is
       logged and automatic detection is used.
    2. If ``AI_GATEWAY_URL`` is present, return :class:`GatewayProvider`.
    3. If ``OPENAI_API_KEY`` is present, return :class:`OpenAIProvider`.
    4. If ``GEMINI_API_KEY`` or ``GOOGLE_API_KEY`` is present, return
       :class:`GeminiProvider`.
    5. Otherwise, return :class:`PlaceholderProvider`.
    """
    factories = {
        "gateway": GatewayProvider,
        "openai": OpenAIProvider,
        "gemini": GeminiProvider,
    }
    preferred = os.getenv("LLM_PROVIDER")
    if preferred:
        pref = preferred.lower()
        if pref == "placeholder":
            logger.info("LLM_PROVIDER=placeholder; using placeholder provider")
            return PlaceholderProvider()
        if pref in factories:
            try:
                return factories[pref]()
            except Exception as exc:  # noqa: BLE001
                logger.warning("LLM_PROVIDER=%s but failed to initialise provider: %s", pref, exc)
        else:
            logger.warning("Unknown LLM_PROVIDER value '%s'; falling back to automatic detection", preferred)

    detected = []
    if os.getenv("AI_GATEWAY_URL"):
        detected.append("gateway")
    if os.getenv("OPENAI_API_KEY"):
        detected.append("openai")
    if os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"):
        detected.append("gemini")
    for name in detected:
        try:
            return factories[name]()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to initialise %s provider: %s", name, exc)
    logger.info("No LLM provider configured; using placeholder provider")
    return PlaceholderProvider()
