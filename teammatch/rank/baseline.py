"""
Deterministic baseline scoring.

Every scorer here is a pure function that adds up integer points:
skill overlap, role fit, scope (same major), freshness or capacity,
and a role-balance adjustment that nudges teams towards a sensible
frontend/backend/other mix.  Integer arithmetic keeps rankings
reproducible, and :func:`rank_candidates` breaks ties by candidate key
so the order never depends on how the input happened to be built.

Raw scores at or below a per-kind threshold are dropped.  Survivors
are mapped to an integer percentage so that baseline scores and LLM
scores share the same 0-100 scale.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from ..config import ScoringWeights
from ..profile.skill_profile import Role, SkillProfile, infer_role_from_text, role_display
from .llm_schema import Candidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleMix:
    """Frontend/backend/other head count of a team."""

    frontend: int = 0
    backend: int = 0
    other: int = 0

    @classmethod
    def from_roles(cls, roles: Iterable[Role]) -> "RoleMix":
        mix = cls()
        for role in roles:
            mix = mix.add(role)
        return mix

    def add(self, role: Role) -> "RoleMix":
        if role == Role.FRONTEND:
            return RoleMix(self.frontend + 1, self.backend, self.other)
        if role == Role.BACKEND:
            return RoleMix(self.frontend, self.backend + 1, self.other)
        if role == Role.OTHER:
            return RoleMix(self.frontend, self.backend, self.other + 1)
        return self

    @property
    def frontend_heavy(self) -> bool:
        return (
            self.frontend >= 2
            and self.frontend >= self.backend + 1
            and self.frontend >= self.other + 1
        )

    @property
    def backend_needed(self) -> bool:
        return self.backend == 0 or (self.frontend >= 2 and self.backend + 1 <= self.frontend - 1)

    @property
    def other_needed(self) -> bool:
        return self.other == 0 and self.frontend >= 2


@dataclass(frozen=True)
class BaselineScore:
    """Outcome of one scorer call.

    ``percent`` is ``None`` when the raw score did not clear the
    threshold, in which case the candidate should not be offered.
    """

    raw: int
    percent: Optional[int]
    matched_skills: Tuple[str, ...] = ()
    reason: str = ""

    @property
    def passes(self) -> bool:
        return self.percent is not None


def _weights(weights: Optional[ScoringWeights]) -> ScoringWeights:
    return weights if weights is not None else ScoringWeights()


def normalize_score_to_percent(score: int, threshold: int, maximum: int) -> int:
    """Map ``score`` from ``(threshold, maximum]`` onto ``0..100``, rounding half away from zero."""
    if maximum <= threshold:
        return 100 if score > threshold else 0
    clamped = min(max(score, threshold), maximum)
    ratio = (clamped - threshold) / (maximum - threshold) * 100
    return int(math.floor(ratio + 0.5))


def _finish(raw: int, threshold: int, maximum: int, matched: Iterable[str], reasons: List[str]) -> BaselineScore:
    matched = tuple(matched)
    if raw <= threshold:
        return BaselineScore(raw, None, matched, " | ".join(reasons))
    percent = normalize_score_to_percent(raw, threshold, maximum)
    reasons = reasons + [f"Baseline score {percent}"]
    return BaselineScore(raw, percent, matched, " | ".join(reasons))


def score_role_match(
    candidate_role: Role,
    required_role: Role,
    text_hint: Optional[str] = None,
    weights: Optional[ScoringWeights] = None,
) -> int:
    """Points for how well ``candidate_role`` fits an explicit or hinted requirement."""
    w = _weights(weights)
    if candidate_role == Role.UNKNOWN:
        return w.role_mismatch
    if required_role != Role.UNKNOWN:
        return w.role_exact_match if candidate_role == required_role else w.role_mismatch
    inferred = infer_role_from_text(text_hint)
    if inferred != Role.UNKNOWN and inferred == candidate_role:
        return w.role_inferred_match
    return w.role_mismatch


def role_need_adjustment(
    candidate_role: Role,
    mix: Optional[RoleMix],
    weights: Optional[ScoringWeights] = None,
) -> int:
    """Bonus or penalty for how ``candidate_role`` changes a team's balance."""
    if mix is None or candidate_role == Role.UNKNOWN:
        return 0
    w = _weights(weights)
    adjustment = 0
    if mix.backend_needed and candidate_role == Role.BACKEND:
        adjustment += w.backend_missing_bonus if mix.backend == 0 else w.backend_outnumbered_bonus
    if mix.other_needed and candidate_role == Role.OTHER:
        adjustment += w.other_needed_bonus
    if mix.frontend_heavy and candidate_role == Role.FRONTEND:
        adjustment -= w.frontend_very_heavy_penalty if mix.frontend >= 3 else w.frontend_heavy_penalty
    return adjustment


def describe_role_need(candidate_role: Role, mix: Optional[RoleMix]) -> Optional[str]:
    """Human-readable note on the gap ``candidate_role`` would fill, if any."""
    if mix is None:
        return None
    if mix.backend_needed and candidate_role == Role.BACKEND:
        return "Team is missing backend"
    if mix.frontend == 0 and candidate_role == Role.FRONTEND:
        return "Team is missing frontend"
    if mix.other_needed and candidate_role == Role.OTHER:
        return "Team needs mobile/generalist"
    if mix.frontend_heavy and candidate_role == Role.BACKEND:
        return "Balances frontend/backend"
    return None


def recency_boost(created_at: datetime, now: Optional[datetime] = None, weights: Optional[ScoringWeights] = None) -> int:
    w = _weights(weights)
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    age_days = min(max(int((now - created_at).total_seconds() // 86400), 0), w.recency_window_days)
    return max(w.recency_floor, w.recency_window_days - age_days)


def _major_boost(left: Optional[str], right: Optional[str], w: ScoringWeights) -> int:
    return w.major_match_boost if left is not None and left == right else w.major_other_boost


def _skill_points(matched: List[str], weight: int, w: ScoringWeights) -> int:
    return min(len(matched), w.max_skill_matches) * weight


def score_recruitment_post(
    student: SkillProfile,
    student_major_id: Optional[str],
    required: SkillProfile,
    position_needed: Optional[str],
    post_major_id: Optional[str],
    created_at: datetime,
    mix: Optional[RoleMix] = None,
    now: Optional[datetime] = None,
    weights: Optional[ScoringWeights] = None,
) -> BaselineScore:
    """Score a group's recruitment post for a student looking for a team."""
    w = _weights(weights)
    matched = student.find_matches(required)
    if not matched and position_needed and position_needed.strip():
        hint = position_needed.lower()
        matched = [tag for tag in student.tags if tag in hint][: w.max_skill_matches]
    raw = (
        _skill_points(matched, w.post_skill_weight, w)
        + score_role_match(student.primary_role, required.primary_role, position_needed, w)
        + _major_boost(post_major_id, student_major_id, w)
        + recency_boost(created_at, now, w)
        + role_need_adjustment(student.primary_role, mix, w)
    )
    reasons = []
    if post_major_id is not None and post_major_id == student_major_id:
        reasons.append("Same major")
    if matched:
        reasons.append("Skills: " + ", ".join(matched[:3]))
    return _finish(raw, w.post_threshold, w.post_max, matched, reasons)


def score_topic_for_group(
    group: SkillProfile,
    title: str,
    description: Optional[str],
    can_take_more: bool = True,
    weights: Optional[ScoringWeights] = None,
) -> BaselineScore:
    """Score an open topic for a group using the group's combined profile."""
    w = _weights(weights)
    searchable = f"{title} {description or ''}".lower()
    matched = [tag for tag in group.tags if tag in searchable][: w.max_skill_matches] if group.has_tags else []
    skill_points = _skill_points(matched, w.topic_skill_weight, w)
    if not matched and not group.has_tags:
        skill_points = w.topic_no_profile_score
    raw = (
        skill_points
        + score_role_match(group.primary_role, infer_role_from_text(searchable), searchable, w)
        + (w.topic_capacity_boost if can_take_more else 0)
    )
    reasons = []
    if matched:
        reasons.append("Skills: " + ", ".join(matched[:3]))
    if can_take_more:
        reasons.append("Topic still open")
    return _finish(raw, w.topic_threshold, w.topic_max, matched, reasons)


def score_profile_post_for_group(
    candidate: SkillProfile,
    group: SkillProfile,
    mix: RoleMix,
    created_at: datetime,
    now: Optional[datetime] = None,
    weights: Optional[ScoringWeights] = None,
) -> BaselineScore:
    """Score a student's profile post for a group that is recruiting."""
    w = _weights(weights)
    matched = candidate.find_matches(group)
    if not matched and candidate.has_tags:
        matched = list(candidate.tags[: w.max_skill_matches])
    role = candidate.primary_role
    if (role == Role.FRONTEND and mix.frontend == 0) or (role == Role.BACKEND and mix.backend == 0):
        role_points = w.profile_role_fills_gap
    elif role == Role.UNKNOWN:
        role_points = w.profile_role_unknown
    else:
        role_points = w.profile_role_default
    raw = role_points + _skill_points(matched, w.profile_skill_weight, w) + recency_boost(created_at, now, w)
    reasons = [f"Role: {role_display(role)}"]
    need = describe_role_need(role, mix)
    if need:
        reasons.append(need)
    return _finish(raw, w.profile_threshold, w.profile_max, matched, reasons)


def score_group_for_student(
    student: SkillProfile,
    student_major_id: Optional[str],
    group: SkillProfile,
    group_major_id: Optional[str],
    mix: RoleMix,
    needed_role: Optional[Role] = None,
    remaining_slots: int = 0,
    weights: Optional[ScoringWeights] = None,
) -> BaselineScore:
    """Score an open group for an unplaced student during auto-resolve."""
    w = _weights(weights)
    matched = group.find_matches(student)[: w.max_skill_matches]
    needed_points = 0
    if needed_role not in (None, Role.UNKNOWN) and needed_role == student.primary_role:
        needed_points = w.needed_role_match
    raw = (
        role_need_adjustment(student.primary_role, mix, w)
        + _major_boost(group_major_id, student_major_id, w)
        + _skill_points(matched, w.group_skill_weight, w)
        + needed_points
        + min(max(remaining_slots, 0), w.max_open_slot_boost_slots) * w.open_slot_boost
    )
    reasons = []
    if group_major_id is not None and group_major_id == student_major_id:
        reasons.append("Same major")
    if needed_points:
        reasons.append(f"Fills needed {role_display(student.primary_role)} role")
    need = describe_role_need(student.primary_role, mix)
    if need:
        reasons.append(need)
    if matched:
        reasons.append("Skills: " + ", ".join(matched[:3]))
    return _finish(raw, w.group_threshold, w.group_max, matched, reasons)


def rank_candidates(candidates: Iterable[Candidate]) -> List[Candidate]:
    """Order candidates by descending baseline score, then ascending key."""
    ranked = sorted(candidates, key=lambda c: (-c.baseline_score, c.key))
    logger.debug("Baseline ranked %d candidates", len(ranked))
    return ranked
