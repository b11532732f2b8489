"""
Shapes exchanged with the ranking stages and the LLM backends.

:class:`Candidate` is what the baseline scorer produces and the
reranker consumes; :class:`RankedResult` is what both hand back to the
caller.  The request classes know how to render themselves as the
JSON payloads the LLM endpoints expect.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..profile.skill_profile import Role, role_display


@dataclass(frozen=True)
class Candidate:
    """A single thing being ranked (student, group, topic or post).

    ``key`` must be unique within one ranking call; it is the join key
    between the baseline list and whatever the reranker returns.
    """

    key: str
    entity_id: str
    title: str
    text: str
    baseline_score: int
    needed_role: Optional[Role] = None
    group_frontend_count: int = 0
    group_backend_count: int = 0
    group_other_count: int = 0
    matched_skills: Tuple[str, ...] = ()
    reason: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "id": self.entity_id,
            "title": self.title,
            "description": self.text,
            "payload": {"matchedSkills": list(self.matched_skills), "reason": self.reason},
            "metadata": {
                "baselineScore": self.baseline_score,
                "neededRole": role_display(self.needed_role) if self.needed_role is not None else None,
                "groupFrontendCount": self.group_frontend_count,
                "groupBackendCount": self.group_backend_count,
                "groupOtherCount": self.group_other_count,
            },
        }


@dataclass(frozen=True)
class RankedResult:
    key: str
    entity_id: str
    title: str
    text: str
    final_score: float
    reason: str
    matched_skills: Tuple[str, ...] = ()
    balance_note: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "entity_id": self.entity_id,
            "title": self.title,
            "final_score": self.final_score,
            "reason": self.reason,
            "matched_skills": list(self.matched_skills),
            "balance_note": self.balance_note,
        }


@dataclass(frozen=True)
class TeamContext:
    """Query-side hints for balance-aware reranking."""

    team_name: str
    primary_need: str = ""
    skills: Tuple[str, ...] = ()
    current_mix_fe: int = 0
    current_mix_be: int = 0
    current_mix_other: int = 0

    def to_payload(self) -> Dict[str, Any]:
        return {
            "teamName": self.team_name,
            "primaryNeed": self.primary_need,
            "skills": list(self.skills),
            "currentMixFe": self.current_mix_fe,
            "currentMixBe": self.current_mix_be,
            "currentMixOther": self.current_mix_other,
        }


@dataclass
class RerankRequest:
    query_type: str
    query_text: str
    candidates: List[Candidate] = field(default_factory=list)
    context: Optional[TeamContext] = None
    top_n: int = 30
    with_reasons: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return {
            "queryType": self.query_type,
            "queryText": self.query_text,
            "candidates": [c.to_payload() for c in self.candidates],
            "context": self.context.to_payload() if self.context else None,
            "topN": self.top_n,
            "withReasons": self.with_reasons,
        }


@dataclass
class SkillExtractionRequest:
    source_type: str
    source_id: str
    content: str

    def to_payload(self) -> Dict[str, Any]:
        return {"sourceType": self.source_type, "sourceId": self.source_id, "content": self.content}
