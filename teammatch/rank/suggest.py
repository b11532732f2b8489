"""
Ranked suggestions outside a batch auto-resolve run.

Students and groups can build teams themselves with three lookups:

* :func:`suggest_recruitment_posts` returns open recruitment posts for
  a student who has no team yet.
* :func:`suggest_topics_for_group` returns open topics that fit a
  group's combined skills.
* :func:`suggest_profile_posts_for_group` returns profile posts of
  students looking for a team, for a group with free slots.

Each one scores every candidate with the baseline scorers, leaves out
those that do not clear the threshold, lets :func:`rerank` reorder the
rest and returns at most ``limit`` results.  Nothing is written.

The candidate builders are shared with the auto-resolve orchestrator,
so a topic scores the same whether it is suggested or auto-assigned.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Sequence

from ..config import ScoringWeights, TeamMatchConfig
from ..errors import IneligibleError, RepositoryError, ScopeError, TeamMatchError
from ..profile.skill_profile import Role, SkillProfile, role_display
from .baseline import RoleMix, score_profile_post_for_group, score_recruitment_post, score_topic_for_group
from .llm_providers import LLMProvider
from .llm_schema import Candidate, RankedResult, TeamContext
from .rerank import MAX_TEAM_SKILLS_IN_QUERY, rerank

if TYPE_CHECKING:
    from ..resolve.repository import Repository
    from ..resolve.schema import (
        GroupSnapshot,
        ProfilePostSnapshot,
        RecruitmentPostSnapshot,
        TopicSnapshot,
    )

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTION_LIMIT = 5
MAX_SUGGESTION_LIMIT = 20

GROUP_POST_QUERY_TYPE = "group_post"
TOPIC_QUERY_TYPE = "topic"
PROFILE_POST_QUERY_TYPE = "personal_post"


def normalize_limit(limit: Optional[int]) -> int:
    """A missing or non-positive limit means the default; larger ones are capped."""
    if limit is None or limit <= 0:
        return DEFAULT_SUGGESTION_LIMIT
    return min(limit, MAX_SUGGESTION_LIMIT)


def group_profile(profiles: Iterable[SkillProfile]) -> SkillProfile:
    """Combine member profiles, ignoring members who declared neither skills nor a role."""
    return SkillProfile.combine(p for p in profiles if not p.is_empty)


def team_context(name: str, profile: SkillProfile, mix: RoleMix) -> TeamContext:
    return TeamContext(
        team_name=name,
        primary_need=role_display(profile.primary_role),
        skills=profile.tags,
        current_mix_fe=mix.frontend,
        current_mix_be=mix.backend,
        current_mix_other=mix.other,
    )


def student_query_text(name: str, profile: SkillProfile) -> str:
    return " | ".join(
        [
            name,
            f"Role: {role_display(profile.primary_role)}",
            "Skills: " + ", ".join(profile.tags[:MAX_TEAM_SKILLS_IN_QUERY]),
        ]
    )


def _known(role: Role) -> Optional[Role]:
    return role if role != Role.UNKNOWN else None


# Candidate builders


def recruitment_post_candidates(
    student: SkillProfile,
    student_major_id: Optional[str],
    posts: Sequence["RecruitmentPostSnapshot"],
    mixes: Optional[Dict[str, RoleMix]] = None,
    weights: Optional[ScoringWeights] = None,
    now: Optional[datetime] = None,
) -> List[Candidate]:
    """Score recruitment posts for a student, leaving out those below the threshold.

    Args:
        student: The student's profile.
        student_major_id: The student's major, for the same-major boost.
        posts: Open recruitment posts.
        mixes: Role mix of each posting group, by group id.  Posts of
            groups without an entry get no role-balance adjustment.
        weights: Scoring weights; defaults apply when omitted.
        now: Reference time for the recency boost.
    """
    mixes = mixes or {}
    candidates: List[Candidate] = []
    for post in posts:
        required = post.required_profile()
        mix = mixes.get(post.group_id) if post.group_id else None
        score = score_recruitment_post(
            student,
            student_major_id,
            required,
            post.position_needed,
            post.major_id,
            post.created_at,
            mix,
            now,
            weights,
        )
        if not score.passes:
            logger.debug("Recruitment post %s below threshold (%d)", post.post_id, score.raw)
            continue
        counts = mix or RoleMix()
        candidates.append(
            Candidate(
                key=post.post_id,
                entity_id=post.post_id,
                title=post.title,
                text=post.description,
                baseline_score=score.percent,
                needed_role=_known(required.primary_role),
                group_frontend_count=counts.frontend,
                group_backend_count=counts.backend,
                group_other_count=counts.other,
                matched_skills=score.matched_skills,
                reason=score.reason,
            )
        )
    return candidates


def topic_candidates(
    profile: SkillProfile,
    topics: Sequence["TopicSnapshot"],
    weights: Optional[ScoringWeights] = None,
) -> List[Candidate]:
    """Score topics for a group's combined profile, leaving out those below the threshold.

    A topic's declared skills count as part of its searchable text.
    """
    candidates: List[Candidate] = []
    for topic in topics:
        declared = SkillProfile.from_json(topic.skills_json).tags
        text = " ".join([topic.description or ""] + list(declared))
        score = score_topic_for_group(profile, topic.title, text, topic.can_take_more, weights)
        if not score.passes:
            continue
        candidates.append(
            Candidate(
                key=topic.topic_id,
                entity_id=topic.topic_id,
                title=topic.title,
                text=topic.description,
                baseline_score=score.percent,
                matched_skills=score.matched_skills,
                reason=score.reason,
            )
        )
    return candidates


def profile_post_candidates(
    group: SkillProfile,
    mix: RoleMix,
    posts: Sequence["ProfilePostSnapshot"],
    weights: Optional[ScoringWeights] = None,
    now: Optional[datetime] = None,
) -> List[Candidate]:
    """Score students' profile posts for a recruiting group."""
    candidates: List[Candidate] = []
    for post in posts:
        profile = post.profile()
        score = score_profile_post_for_group(profile, group, mix, post.created_at, now, weights)
        if not score.passes:
            logger.debug("Profile post %s below threshold (%d)", post.post_id, score.raw)
            continue
        candidates.append(
            Candidate(
                key=post.post_id,
                entity_id=post.post_id,
                title=post.title or post.owner_name,
                text=post.description,
                baseline_score=score.percent,
                needed_role=_known(profile.primary_role),
                group_frontend_count=mix.frontend,
                group_backend_count=mix.backend,
                group_other_count=mix.other,
                matched_skills=score.matched_skills,
                reason=score.reason,
            )
        )
    return candidates


# Repository-level lookups


def _read(what: str, fn: Callable, *args):
    try:
        return fn(*args)
    except TeamMatchError:
        raise
    except Exception as exc:
        raise RepositoryError(f"Failed to read {what}: {exc}") from exc


def _load_group(repository: "Repository", group_id: str) -> "GroupSnapshot":
    group = _read("group", repository.get_group, group_id)
    if group is None:
        raise ScopeError(f"Unknown group {group_id}")
    return group


def _require_major(group: "GroupSnapshot") -> None:
    if group.major_id is None:
        raise IneligibleError(f"Group {group.group_id} has no major")


def suggest_recruitment_posts(
    repository: "Repository",
    user_id: str,
    semester_id: str,
    major_id: Optional[str] = None,
    provider: Optional[LLMProvider] = None,
    config: Optional[TeamMatchConfig] = None,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None,
) -> List[RankedResult]:
    """Rank open recruitment posts for a student who has no team yet.

    Args:
        repository: Source of the student, posts and posting groups.
        user_id: The student asking.
        semester_id: Semester to search.
        major_id: Major whose posts to consider; defaults to the
            student's own.
        provider: LLM provider for reranking, or ``None``.
        config: Scoring weights and rerank settings.
        limit: Maximum results (default 5, at most 20).
        now: Reference time for the recency boost.
        cancel_event: When set, reranking is skipped.

    Returns:
        Ranked posts, best first.  Empty when nothing clears the threshold.

    Raises:
        ScopeError: If the student is unknown in ``semester_id``.
        IneligibleError: If the student already has a group.
        RepositoryError: If a read fails.
    """
    config = config or TeamMatchConfig()
    student = _read("student", repository.get_student, user_id, semester_id)
    if student is None:
        raise ScopeError(f"Unknown student {user_id} in semester {semester_id}")
    if _read("membership", repository.has_group, user_id, semester_id):
        raise IneligibleError(f"Student {user_id} already has a group in semester {semester_id}")
    posts = _read(
        "recruitment posts", repository.list_open_recruitment_posts, semester_id, major_id or student.major_id
    )
    if not posts:
        return []

    mixes: Dict[str, RoleMix] = {}
    for group_id in sorted({post.group_id for post in posts if post.group_id}):
        group = _read("group", repository.get_group, group_id)
        if group is not None:
            mixes[group_id] = RoleMix.from_roles(p.primary_role for p in group.member_profiles())

    profile = student.profile()
    candidates = recruitment_post_candidates(profile, student.major_id, posts, mixes, config.scoring, now)
    results = rerank(
        GROUP_POST_QUERY_TYPE,
        student_query_text(student.display_name or student.user_id, profile),
        candidates,
        provider,
        settings=config.rerank,
        cancel_event=cancel_event,
    )
    logger.info("%d of %d recruitment posts fit student %s", len(results), len(posts), user_id)
    return results[: normalize_limit(limit)]


def suggest_topics_for_group(
    repository: "Repository",
    group_id: str,
    provider: Optional[LLMProvider] = None,
    config: Optional[TeamMatchConfig] = None,
    limit: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> List[RankedResult]:
    """Rank the open topics of a group's semester and major for that group.

    Raises:
        ScopeError: If the group is unknown.
        IneligibleError: If the group has no major or no members.
        RepositoryError: If a read fails.
    """
    config = config or TeamMatchConfig()
    group = _load_group(repository, group_id)
    _require_major(group)
    if group.current_members <= 0 and not group.member_skills:
        raise IneligibleError(f"Group {group_id} has no members to match topics against")
    topics = _read("open topics", repository.list_open_topics, group.semester_id, group.major_id)
    if not topics:
        return []

    profiles = group.member_profiles()
    profile = group_profile(profiles)
    mix = RoleMix.from_roles(p.primary_role for p in profiles)
    candidates = topic_candidates(profile, topics, config.scoring)
    results = rerank(
        TOPIC_QUERY_TYPE,
        f"Project topic for {group.name}",
        candidates,
        provider,
        context=team_context(group.name, profile, mix),
        settings=config.rerank,
        cancel_event=cancel_event,
    )
    logger.info("%d of %d topics fit group %s", len(results), len(topics), group_id)
    return results[: normalize_limit(limit)]


def suggest_profile_posts_for_group(
    repository: "Repository",
    group_id: str,
    provider: Optional[LLMProvider] = None,
    config: Optional[TeamMatchConfig] = None,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
    cancel_event: Optional[threading.Event] = None,
) -> List[RankedResult]:
    """Rank profile posts of unplaced students for a group with free slots.

    Raises:
        ScopeError: If the group is unknown.
        IneligibleError: If the group is full or has no major.
        RepositoryError: If a read fails.
    """
    config = config or TeamMatchConfig()
    group = _load_group(repository, group_id)
    if group.remaining_slots <= 0:
        raise IneligibleError(f"Group {group_id} is full")
    _require_major(group)
    posts = _read("profile posts", repository.list_open_profile_posts, group.semester_id, group.major_id)
    if not posts:
        return []

    profiles = group.member_profiles()
    profile = group_profile(profiles)
    mix = RoleMix.from_roles(p.primary_role for p in profiles)
    candidates = profile_post_candidates(profile, mix, posts, config.scoring, now)
    query = " | ".join(
        part
        for part in (group.name, f"Needed role: {group.needed_role}" if group.needed_role else "", group.description)
        if part
    )
    results = rerank(
        PROFILE_POST_QUERY_TYPE,
        query,
        candidates,
        provider,
        context=team_context(group.name, profile, mix),
        settings=config.rerank,
        cancel_event=cancel_event,
    )
    logger.info("%d of %d profile posts fit group %s", len(results), len(posts), group_id)
    return results[: normalize_limit(limit)]
