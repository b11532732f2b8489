"""Tests for the LLM rerank stage and its fallback behaviour."""

from __future__ import annotations

import threading
from typing import Any, Dict, List

import pytest  # type: ignore

from teammatch.config import RerankSettings
from teammatch.errors import RerankError
from teammatch.profile.skill_profile import Role
from teammatch.rank.aggregate import (
    BASELINE_FALLBACK,
    BASELINE_ONLY,
    RERANK_UNAVAILABLE,
    build_balance_note,
    reconcile,
)
from teammatch.rank.llm_providers import LLMProvider, PlaceholderProvider
from teammatch.rank.llm_schema import Candidate, RerankRequest, SkillExtractionRequest, TeamContext
from teammatch.rank.rerank import build_query_text, rerank, validate_rerank_response


def _candidates() -> List[Candidate]:
    return [
        Candidate("C", "3", "Gamma", "", 40),
        Candidate("A", "1", "Alpha", "", 80, matched_skills=("sql",)),
        Candidate("B", "2", "Beta", "", 60),
    ]


class FakeProvider(LLMProvider):
    """Returns a canned rerank body, or raises it if it is an exception."""

    def __init__(self, answer: Any) -> None:
        self.answer = answer
        self.requests: List[RerankRequest] = []

    def rerank(self, request: RerankRequest) -> Dict[str, Any]:
        self.requests.append(request)
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer

    def extract_skills(self, request: SkillExtractionRequest) -> Dict[str, Any]:
        return {"skills": []}


class BlockingProvider(FakeProvider):
    def __init__(self) -> None:
        super().__init__({"ranked": []})
        self.release = threading.Event()

    def rerank(self, request: RerankRequest) -> Dict[str, Any]:
        self.release.wait(5)
        return {"ranked": [{"key": "A", "finalScore": 1}]}


def _summary(results):
    return [(r.key, r.final_score, r.reason) for r in results]


@pytest.mark.parametrize("provider", [None, PlaceholderProvider()])
def test_without_provider_returns_baseline(provider) -> None:
    results = rerank("auto_assign_team", "backend dev", _candidates(), provider)
    assert _summary(results) == [
        ("A", 80.0, BASELINE_ONLY),
        ("B", 60.0, BASELINE_ONLY),
        ("C", 40.0, BASELINE_ONLY),
    ]
    assert results[0].matched_skills == ("sql",)


def test_disabled_setting_skips_provider() -> None:
    provider = FakeProvider({"ranked": [{"key": "C", "finalScore": 100}]})
    results = rerank("topic", "", _candidates(), provider, settings=RerankSettings(enabled=False))
    assert [r.key for r in results] == ["A", "B", "C"]
    assert provider.requests == []


@pytest.mark.parametrize(
    "answer",
    [
        {"ranked": [], "error": "quota exceeded"},
        {"ranked": "nope"},
        ["not", "an", "object"],
        RuntimeError("connection reset"),
    ],
)
def test_failures_fall_back_to_baseline(answer) -> None:
    results = rerank("auto_assign_team", "q", _candidates(), FakeProvider(answer))
    assert _summary(results) == [
        ("A", 80.0, RERANK_UNAVAILABLE),
        ("B", 60.0, RERANK_UNAVAILABLE),
        ("C", 40.0, RERANK_UNAVAILABLE),
    ]


def test_timeout_falls_back_to_baseline() -> None:
    provider = BlockingProvider()
    try:
        results = rerank("topic", "q", _candidates(), provider, settings=RerankSettings(timeout_seconds=0.05))
    finally:
        provider.release.set()
    assert [(r.key, r.reason) for r in results] == [
        ("A", RERANK_UNAVAILABLE),
        ("B", RERANK_UNAVAILABLE),
        ("C", RERANK_UNAVAILABLE),
    ]


def test_partial_answer_is_reconciled() -> None:
    provider = FakeProvider(
        {"ranked": [{"key": "A", "finalScore": 90, "reason": "Strong SQL"}, {"key": "D", "finalScore": 50}]}
    )
    results = rerank("auto_assign_team", "q", _candidates(), provider)
    assert _summary(results) == [
        ("A", 88.5, "Strong SQL"),
        ("B", 60.0, BASELINE_FALLBACK),
        ("C", 40.0, BASELINE_FALLBACK),
    ]
    assert [c.key for c in provider.requests[0].candidates] == ["A", "B", "C"]


def test_llm_can_reorder_candidates() -> None:
    provider = FakeProvider(
        {
            "ranked": [
                {"key": "C", "finalScore": 95, "matchedSkills": ["react"], "balanceNote": "Adds frontend"},
                {"key": "A", "finalScore": 10},
                {"key": "B", "finalScore": 50},
            ]
        }
    )
    results = rerank("topic", "q", _candidates(), provider, settings=RerankSettings(llm_weight=1.0))
    assert _summary(results) == [("C", 95.0, "reranked"), ("B", 50.0, "reranked"), ("A", 10.0, "reranked")]
    assert results[0].matched_skills == ("react",)
    assert results[0].balance_note == "Adds frontend"
    assert results[2].matched_skills == ("sql",)


def test_ties_keep_baseline_order() -> None:
    provider = FakeProvider({"ranked": [{"key": k, "finalScore": 70} for k in ("C", "B", "A")]})
    results = rerank("topic", "q", _candidates(), provider, settings=RerankSettings(llm_weight=1.0))
    assert [r.key for r in results] == ["A", "B", "C"]


def test_scores_are_clamped_and_bad_items_dropped() -> None:
    provider = FakeProvider(
        {
            "ranked": [
                {"key": "A", "finalScore": 250},
                {"key": "A", "finalScore": 0},
                {"key": "B", "finalScore": float("nan")},
                {"key": "C", "finalScore": True},
                "garbage",
            ]
        }
    )
    results = rerank("topic", "q", _candidates(), provider, settings=RerankSettings(llm_weight=1.0))
    assert _summary(results) == [
        ("A", 100.0, "reranked"),
        ("B", 60.0, BASELINE_FALLBACK),
        ("C", 40.0, BASELINE_FALLBACK),
    ]


def test_only_top_n_are_sent() -> None:
    provider = FakeProvider({"ranked": [{"key": "B", "finalScore": 100}, {"key": "C", "finalScore": 100}]})
    results = rerank("topic", "q", _candidates(), provider, settings=RerankSettings(top_n=2, llm_weight=1.0))
    assert [c.key for c in provider.requests[0].candidates] == ["A", "B"]
    assert _summary(results) == [
        ("B", 100.0, "reranked"),
        ("A", 80.0, BASELINE_FALLBACK),
        ("C", 40.0, BASELINE_ONLY),
    ]


def test_cancelled_run_skips_provider() -> None:
    cancel = threading.Event()
    cancel.set()
    provider = FakeProvider({"ranked": []})
    results = rerank("topic", "q", _candidates(), provider, cancel_event=cancel)
    assert [r.reason for r in results] == [BASELINE_ONLY] * 3
    assert provider.requests == []


def test_empty_candidates() -> None:
    assert rerank("topic", "q", [], FakeProvider(RuntimeError("unused"))) == []


def test_validate_rerank_response_rejects_bad_bodies() -> None:
    with pytest.raises(RerankError):
        validate_rerank_response(None, ["A"])
    with pytest.raises(RerankError):
        validate_rerank_response({"error": "boom", "ranked": []}, ["A"])
    with pytest.raises(RerankError):
        validate_rerank_response({}, ["A"])
    assert validate_rerank_response({"ranked": [{"key": "A", "finalScore": -5}]}, ["A"])["A"]["finalScore"] == 0.0


def test_build_query_text() -> None:
    context = TeamContext(
        team_name="Team Rocket",
        primary_need="backend",
        skills=("react", "css"),
        current_mix_fe=2,
        current_mix_be=0,
        current_mix_other=1,
    )
    text = build_query_text("auto_assign_team", "  needs api work ", context)
    assert text == (
        "Team Rocket | Mode: auto_assign_team | Primary need: backend | "
        "Current mix: FE 2, BE 0, Other 1 | Team skills: react, css | Query: needs api work"
    )
    assert build_query_text("topic", " plain ") == "plain"


def test_balance_note_and_context_notes() -> None:
    context = TeamContext(team_name="T", current_mix_be=2)
    backend = Candidate("A", "1", "A", "", 50, needed_role=Role.BACKEND)
    assert build_balance_note("auto_assign_team", context, backend) == "Team already has strong backend coverage."
    assert build_balance_note("auto_assign_topic", context, backend) == ""
    assert build_balance_note("group_post", None, backend) == ""

    results = reconcile([backend], {"A": {"key": "A", "finalScore": 60.0}}, 0.5, "auto_assign_team", context)
    assert results[0].final_score == 55.0
    assert results[0].balance_note == "Team already has strong backend coverage."


def test_bad_context_falls_back_to_baseline() -> None:
    provider = FakeProvider({"ranked": [{"key": "C", "finalScore": 100}]})
    results = rerank("auto_assign_team", "q", _candidates(), provider, context=TeamContext(team_name=None))
    assert _summary(results) == [
        ("A", 80.0, RERANK_UNAVAILABLE),
        ("B", 60.0, RERANK_UNAVAILABLE),
        ("C", 40.0, RERANK_UNAVAILABLE),
    ]
    assert provider.requests == []


def test_low_llm_score_sinks_below_unsent_candidates() -> None:
    provider = FakeProvider({"ranked": [{"key": "A", "finalScore": 0}]})
    results = rerank("topic", "q", _candidates(), provider, settings=RerankSettings(top_n=1))
    assert [c.key for c in provider.requests[0].candidates] == ["A"]
    assert _summary(results) == [
        ("B", 60.0, BASELINE_ONLY),
        ("C", 40.0, BASELINE_ONLY),
        ("A", 12.0, "reranked"),
    ]
    scores = [r.final_score for r in results]
    assert scores == sorted(scores, reverse=True)


def test_unsent_candidate_ties_keep_baseline_order() -> None:
    provider = FakeProvider({"ranked": [{"key": "A", "finalScore": 60}]})
    results = rerank("topic", "q", _candidates(), provider, settings=RerankSettings(top_n=1, llm_weight=1.0))
    assert _summary(results) == [
        ("A", 60.0, "reranked"),
        ("B", 60.0, BASELINE_ONLY),
        ("C", 40.0, BASELINE_ONLY),
    ]
