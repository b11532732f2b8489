"""
Reconciliation of reranker output with the baseline.

The reranker answers with a list of ``{key, finalScore, reason,
matchedSkills, balanceNote}`` items.  This module joins those items
back onto the baseline candidates by ``key`` and blends the two scores:

* items whose key is unknown are dropped,
* baseline candidates missing from the answer keep their baseline
  score with reason ``"baseline fallback"``,
* the final order is by descending final score, ties by baseline order.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..profile.skill_profile import role_display
from .llm_schema import Candidate, RankedResult, TeamContext

logger = logging.getLogger(__name__)

BASELINE_ONLY = "baseline only"
BASELINE_FALLBACK = "baseline fallback"
RERANK_UNAVAILABLE = "rerank unavailable"
RERANKED = "reranked"

# Query types where the team's role mix is meaningful.
TEAM_QUERY_TYPES = ("auto_assign_team", "group_post", "personal_post")


def build_balance_note(query_type: str, context: Optional[TeamContext], candidate: Optional[Candidate]) -> str:
    """Warn when a candidate's needed role is already well covered by the team."""
    if query_type not in TEAM_QUERY_TYPES or context is None or candidate is None:
        return ""
    needed = role_display(candidate.needed_role) if candidate.needed_role is not None else ""
    if context.current_mix_be >= 2 and "backend" in needed:
        return "Team already has strong backend coverage."
    if context.current_mix_fe >= 2 and "frontend" in needed:
        return "Team already has strong frontend coverage."
    return ""


def baseline_results(candidates: Iterable[Candidate], reason: str, balance_note: str = BASELINE_ONLY) -> List[RankedResult]:
    """Turn baseline candidates into results without touching order or scores."""
    return [
        RankedResult(
            key=c.key,
            entity_id=c.entity_id,
            title=c.title,
            text=c.text,
            final_score=float(c.baseline_score),
            reason=reason,
            matched_skills=c.matched_skills,
            balance_note=balance_note,
        )
        for c in candidates
    ]


def blend(llm_score: float, baseline_score: float, llm_weight: float) -> float:
    return round(llm_weight * llm_score + (1.0 - llm_weight) * baseline_score, 2)


def reconcile(
    candidates: List[Candidate],
    items: Dict[str, Dict[str, Any]],
    llm_weight: float,
    query_type: str = "",
    context: Optional[TeamContext] = None,
) -> List[RankedResult]:
    """Join validated rerank items onto ``candidates`` (in baseline order).

    Args:
        candidates: The candidates that were sent, in baseline order.
        items: Validated rerank items keyed by candidate key.  Each has
            a finite ``finalScore`` in ``0..100``.
        llm_weight: Weight of the reranker score in the blend.
        query_type: Used to decide whether a balance note applies.
        context: Team context for balance notes.

    Returns:
        One result per candidate, ordered by final score.
    """
    scored = []
    for index, candidate in enumerate(candidates):
        item = items.get(candidate.key)
        if item is None:
            logger.debug("Candidate %s missing from rerank answer; keeping baseline", candidate.key)
            result = baseline_results([candidate], BASELINE_FALLBACK, "")[0]
        else:
            reason = item.get("reason")
            matched = item.get("matchedSkills")
            note = item.get("balanceNote")
            if isinstance(matched, list) and all(isinstance(s, str) for s in matched):
                matched_skills = tuple(matched)
            else:
                matched_skills = candidate.matched_skills
            result = RankedResult(
                key=candidate.key,
                entity_id=candidate.entity_id,
                title=candidate.title,
                text=candidate.text,
                final_score=blend(item["finalScore"], candidate.baseline_score, llm_weight),
                reason=reason.strip() if isinstance(reason, str) and reason.strip() else RERANKED,
                matched_skills=matched_skills,
                balance_note=(
                    note.strip()
                    if isinstance(note, str) and note.strip()
                    else build_balance_note(query_type, context, candidate)
                ),
            )
        scored.append((index, result))
    scored.sort(key=lambda pair: (-pair[1].final_score, pair[0]))
    logger.debug("Reconciled %d rerank items against %d candidates", len(items), len(candidates))
    return [result for _, result in scored]
