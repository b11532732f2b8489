"""
Auto-resolve orchestrator.

One run covers a semester (optionally narrowed to a major) and goes
through three passes:

1. **Students to groups.**  Each unplaced student is scored against
   every eligible open group (same major, free slot, not yet active),
   optionally reranked, and placed in the best group that clears the
   minimum score.  Remaining slots are tracked in memory so no two
   students can take the same last slot.  Students are handled in
   order of their best baseline fit, highest first, so the strongest
   match for a scarce slot gets it.
2. **New groups.**  Students nobody took are pooled per major and
   bucketed into new groups within the size policy.  Students who
   cannot make up a group of the minimum size are reported as
   ``"insufficient pool"``.
3. **Topics to groups.**  Every full group without a topic, existing or
   new, gets the best open topic of its major.  A topic is handed out at
   most once per run.

Nothing is written.  The run returns an :class:`AutoResolveResult` plan
that the caller commits entity by entity (see :mod:`.commit`).  Failures
that concern one student or group become issues on the result; only a
bad scope, a missing size policy or a failed batch read raise.

:meth:`AutoResolver.assign_topic` runs the topic step for one full group
on demand, outside a batch run.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..config import TeamMatchConfig
from ..errors import IneligibleError, PolicyError, RepositoryError, ScopeError, TeamMatchError
from ..profile.skill_profile import Role, SkillProfile, parse_role, role_display
from ..rank.baseline import BaselineScore, RoleMix, score_group_for_student
from ..rank.llm_providers import LLMProvider
from ..rank.llm_schema import Candidate, RankedResult
from ..rank.rerank import rerank
from ..rank.suggest import student_query_text, team_context, topic_candidates
from .formation import form_new_groups
from .repository import Repository
from .schema import (
    CANCELLED,
    GROUP_STATUS_ACTIVE,
    INSUFFICIENT_POOL,
    NO_ELIGIBLE_TOPIC,
    TOPIC_STATUS_OPEN,
    AutoResolveResult,
    GroupIssue,
    GroupSizePolicy,
    GroupSnapshot,
    ResultAccumulator,
    StudentAssignment,
    StudentIssue,
    StudentSnapshot,
    TopicAssignment,
    TopicSnapshot,
)

logger = logging.getLogger(__name__)

STUDENT_QUERY_TYPE = "auto_assign_team"
TOPIC_QUERY_TYPE = "auto_assign_topic"

Pool = List[Tuple[StudentSnapshot, SkillProfile]]


def _is_cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


@dataclass
class _GroupState:
    """In-memory view of an existing group during one run."""

    snapshot: GroupSnapshot
    profiles: List[SkillProfile]
    remaining: int
    joined: List[str] = field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot: GroupSnapshot) -> "_GroupState":
        return cls(snapshot, snapshot.member_profiles(), snapshot.remaining_slots)

    @property
    def group_id(self) -> str:
        return self.snapshot.group_id

    @property
    def is_active(self) -> bool:
        return self.snapshot.status == GROUP_STATUS_ACTIVE

    @property
    def needed_role(self) -> Optional[Role]:
        return parse_role(self.snapshot.needed_role) if self.snapshot.needed_role else None

    def mix(self) -> RoleMix:
        return RoleMix.from_roles(p.primary_role for p in self.profiles)

    def profile(self) -> SkillProfile:
        return SkillProfile.combine(self.profiles)

    def take(self, user_id: str, profile: SkillProfile) -> None:
        if self.remaining <= 0:
            raise ValueError(f"Group {self.group_id} has no free slot")
        self.remaining -= 1
        self.profiles.append(profile)
        self.joined.append(user_id)


@dataclass
class _TopicTarget:
    group_id: str
    name: str
    major_id: Optional[str]
    profiles: List[SkillProfile]
    # Position in the accumulator's new_groups, for groups formed this run.
    new_group_index: Optional[int] = None


class AutoResolver:
    """Batch driver that builds an assignment plan for one semester scope.

    Args:
        repository: Source of students, groups, topics and the size policy.
        provider: LLM provider used for reranking, or ``None`` for a
            baseline-only run.
        config: Scoring weights and run switches.
    """

    def __init__(
        self,
        repository: Repository,
        provider: Optional[LLMProvider] = None,
        config: Optional[TeamMatchConfig] = None,
    ) -> None:
        self.repository = repository
        self.provider = provider
        self.config = config or TeamMatchConfig()

    # Loading

    def _read(self, what: str, fn: Callable, *args):
        try:
            return fn(*args)
        except TeamMatchError:
            raise
        except Exception as exc:
            raise RepositoryError(f"Failed to read {what}: {exc}") from exc

    def _load_policy(self, semester_id: str) -> GroupSizePolicy:
        if semester_id is None or not str(semester_id).strip():
            raise ScopeError("A semester id is required")
        semester = self._read("semester", self.repository.get_semester, semester_id)
        if semester is None:
            raise ScopeError(f"Unknown semester {semester_id}")
        policy = self._read("group size policy", self.repository.get_group_size_policy, semester_id)
        if policy is None:
            raise PolicyError(f"Semester {semester_id} has no group size policy")
        policy.validate()
        return policy

    # Student pass

    def _score_group(self, student: StudentSnapshot, profile: SkillProfile, state: _GroupState) -> BaselineScore:
        return score_group_for_student(
            profile,
            student.major_id,
            state.profile(),
            state.snapshot.major_id,
            state.mix(),
            state.needed_role,
            state.remaining,
            self.config.scoring,
        )

    @staticmethod
    def _eligible(student: StudentSnapshot, state: _GroupState) -> bool:
        return (
            state.remaining > 0
            and not state.is_active
            and state.snapshot.semester_id == student.semester_id
            and state.snapshot.major_id == student.major_id
        )

    def _order_students(
        self,
        students: Sequence[StudentSnapshot],
        states: Sequence[_GroupState],
        acc: ResultAccumulator,
    ) -> List[Tuple[StudentSnapshot, SkillProfile]]:
        ranked = []
        for student in students:
            try:
                profile = student.profile()
                best = max(
                    (self._score_group(student, profile, s).raw for s in states if self._eligible(student, s)),
                    default=float("-inf"),
                )
            except Exception as exc:  # noqa: BLE001
                logger.exception("Could not build profile for student %s", student.user_id)
                acc.student_issues.append(StudentIssue(student.user_id, f"profile error: {exc}"))
                continue
            ranked.append((-best, student.user_id, student, profile))
        ranked.sort(key=lambda entry: (entry[0], entry[1]))
        return [(student, profile) for _, _, student, profile in ranked]

    def _place_student(
        self,
        student: StudentSnapshot,
        profile: SkillProfile,
        states: Sequence[_GroupState],
        cancel_event: Optional[threading.Event],
    ) -> Optional[Tuple[_GroupState, RankedResult]]:
        candidates: List[Candidate] = []
        by_id: Dict[str, _GroupState] = {}
        for state in states:
            if not self._eligible(student, state):
                continue
            score = self._score_group(student, profile, state)
            if not score.passes:
                continue
            mix = state.mix()
            candidates.append(
                Candidate(
                    key=state.group_id,
                    entity_id=state.group_id,
                    title=state.snapshot.name,
                    text=state.snapshot.description,
                    baseline_score=score.percent,
                    needed_role=state.needed_role,
                    group_frontend_count=mix.frontend,
                    group_backend_count=mix.backend,
                    group_other_count=mix.other,
                    matched_skills=score.matched_skills,
                    reason=score.reason,
                )
            )
            by_id[state.group_id] = state
        if not candidates:
            return None
        provider = self.provider if self.config.resolve.use_rerank_for_students else None
        query = student_query_text(student.display_name or student.user_id, profile)
        results = rerank(
            STUDENT_QUERY_TYPE, query, candidates, provider,
            settings=self.config.rerank, cancel_event=cancel_event,
        )
        for result in results:
            if result.final_score >= self.config.resolve.student_min_score:
                return by_id[result.key], result
        return None

    def _student_pass(
        self,
        students: Sequence[StudentSnapshot],
        states: Sequence[_GroupState],
        acc: ResultAccumulator,
        cancel_event: Optional[threading.Event],
    ) -> Dict[Optional[str], Pool]:
        pools: Dict[Optional[str], Pool] = {}
        ordered = self._order_students(students, states, acc)
        for position, (student, profile) in enumerate(ordered):
            if _is_cancelled(cancel_event):
                acc.cancelled = True
                acc.student_issues.extend(StudentIssue(s.user_id, CANCELLED) for s, _ in ordered[position:])
                break
            try:
                choice = self._place_student(student, profile, states, cancel_event)
                if choice is not None:
                    state, result = choice
                    state.take(student.user_id, profile)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Placing student %s failed", student.user_id)
                acc.student_issues.append(StudentIssue(student.user_id, f"placement failed: {exc}"))
                continue
            if choice is None:
                pools.setdefault(student.major_id, []).append((student, profile))
                continue
            acc.student_assignments.append(
                StudentAssignment(
                    student_id=student.user_id,
                    group_id=state.group_id,
                    group_name=state.snapshot.name,
                    suggested_role=role_display(profile.primary_role),
                    score=result.final_score,
                )
            )
            logger.debug("Student %s -> group %s (%.2f)", student.user_id, state.group_id, result.final_score)
        logger.info(
            "Student pass placed %d of %d students; %d pooled for new groups",
            len(acc.student_assignments), len(students), sum(len(p) for p in pools.values()),
        )
        return pools

    # Formation

    def _formation_pass(
        self,
        pools: Dict[Optional[str], Pool],
        policy: GroupSizePolicy,
        semester_id: str,
        acc: ResultAccumulator,
        cancel_event: Optional[threading.Event],
    ) -> Dict[str, List[SkillProfile]]:
        """Form new groups and return the member profiles of each, by group id."""
        profiles_by_group: Dict[str, List[SkillProfile]] = {}
        if acc.cancelled or _is_cancelled(cancel_event):
            acc.cancelled = True
            for pool in pools.values():
                acc.student_issues.extend(StudentIssue(s.user_id, CANCELLED) for s, _ in pool)
            return profiles_by_group
        sequence = 1
        for major_id in sorted(pools, key=lambda m: "" if m is None else str(m)):
            pool = pools[major_id]
            try:
                groups, leftover = form_new_groups(
                    pool, policy, semester_id, major_id,
                    self.config.resolve.auto_group_name_prefix, sequence,
                )
            except Exception as exc:  # noqa: BLE001
                logger.exception("Forming new groups for major %s failed", major_id)
                acc.student_issues.extend(StudentIssue(s.user_id, f"group formation failed: {exc}") for s, _ in pool)
                continue
            sequence += len(groups)
            by_user = {student.user_id: profile for student, profile in pool}
            for group in groups:
                profiles_by_group[group.group_id] = [by_user[user_id] for user_id in group.members]
            acc.new_groups.extend(groups)
            acc.student_issues.extend(StudentIssue(s.user_id, INSUFFICIENT_POOL) for s in leftover)
        return profiles_by_group

    # Topic pass

    def _pick_topic(
        self,
        target: _TopicTarget,
        topics: Sequence[TopicSnapshot],
        taken: Set[str],
        semester_id: str,
        cancel_event: Optional[threading.Event],
    ) -> Optional[TopicAssignment]:
        profile = SkillProfile.combine(target.profiles)
        mix = RoleMix.from_roles(p.primary_role for p in target.profiles)
        eligible = [
            topic for topic in topics
            if topic.status == TOPIC_STATUS_OPEN
            and topic.semester_id == semester_id
            and topic.topic_id not in taken
            and (topic.major_id is None or topic.major_id == target.major_id)
        ]
        candidates = topic_candidates(profile, eligible, self.config.scoring)
        if not candidates:
            return None
        by_id: Dict[str, TopicSnapshot] = {topic.topic_id: topic for topic in eligible}
        context = team_context(target.name, profile, mix)
        provider = self.provider if self.config.resolve.use_rerank_for_topics else None
        results = rerank(
            TOPIC_QUERY_TYPE, f"Project topic for {target.name}", candidates, provider,
            context=context, settings=self.config.rerank, cancel_event=cancel_event,
        )
        for result in results:
            if result.final_score >= self.config.resolve.topic_min_score:
                topic = by_id[result.key]
                return TopicAssignment(target.group_id, topic.topic_id, topic.title, result.final_score)
        return None

    def _topic_pass(
        self,
        targets: Sequence[_TopicTarget],
        topics: Sequence[TopicSnapshot],
        semester_id: str,
        acc: ResultAccumulator,
        cancel_event: Optional[threading.Event],
    ) -> None:
        taken: Set[str] = set()
        for position, target in enumerate(targets):
            if _is_cancelled(cancel_event):
                acc.cancelled = True
                acc.group_issues.extend(GroupIssue(t.group_id, CANCELLED) for t in targets[position:])
                break
            try:
                assignment = self._pick_topic(target, topics, taken, semester_id, cancel_event)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Topic assignment for group %s failed", target.group_id)
                acc.group_issues.append(GroupIssue(target.group_id, f"topic assignment failed: {exc}"))
                continue
            if assignment is None:
                acc.group_issues.append(GroupIssue(target.group_id, NO_ELIGIBLE_TOPIC))
                continue
            taken.add(assignment.topic_id)
            acc.topic_assignments.append(assignment)
            if target.new_group_index is not None:
                index = target.new_group_index
                acc.new_groups[index] = replace(acc.new_groups[index], topic_id=assignment.topic_id)
        logger.info("Topic pass assigned %d topics to %d full groups", len(acc.topic_assignments), len(targets))

    # Entry point

    def run(
        self,
        semester_id: str,
        major_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> AutoResolveResult:
        """Build an assignment plan for ``semester_id`` (and ``major_id`` if given).

        Args:
            semester_id: Semester to resolve.
            major_id: Optional major to narrow the run to.
            cancel_event: Checked between entities.  Once set, the run
                stops and returns what it has decided so far; students
                not yet decided are reported as ``"cancelled"``.

        Returns:
            The plan.  Every unplaced student appears exactly once as
            an assignment, a new-group member or an issue.

        Raises:
            ScopeError: If the semester is missing or unknown.
            PolicyError: If the semester has no valid size policy.
            RepositoryError: If a batch read fails.
        """
        policy = self._load_policy(semester_id)
        students = self._read("unplaced students", self.repository.list_unplaced_students, semester_id, major_id)
        groups = self._read("open groups", self.repository.list_open_groups, semester_id, major_id)
        topics = self._read("open topics", self.repository.list_open_topics, semester_id, major_id)
        logger.info(
            "Auto-resolve %s (major %s): %d students, %d open groups, %d open topics",
            semester_id, major_id or "all", len(students), len(groups), len(topics),
        )

        acc = ResultAccumulator(semester_id, major_id)
        states = [_GroupState.from_snapshot(g) for g in groups if g.semester_id == semester_id]

        pools = self._student_pass(students, states, acc, cancel_event)
        acc.open_group_ids = [s.group_id for s in states if s.remaining > 0 and not s.is_active]
        new_profiles = self._formation_pass(pools, policy, semester_id, acc, cancel_event)

        targets = [
            _TopicTarget(s.group_id, s.snapshot.name, s.snapshot.major_id, s.profiles)
            for s in states
            if s.remaining == 0 and s.snapshot.topic_id is None and not s.is_active
        ]
        targets.extend(
            _TopicTarget(g.group_id, g.name, g.major_id, new_profiles[g.group_id], index)
            for index, g in enumerate(acc.new_groups)
            if g.is_full
        )
        if acc.cancelled:
            acc.group_issues.extend(GroupIssue(t.group_id, CANCELLED) for t in targets)
        else:
            self._topic_pass(targets, topics, semester_id, acc, cancel_event)

        result = acc.build()
        logger.info(
            "Auto-resolve done: %d assigned, %d new groups, %d topics, %d student issues, %d group issues",
            result.students_assigned, result.new_groups_created, result.topics_assigned,
            len(result.student_issues), len(result.group_issues),
        )
        return result

    def assign_topic(
        self,
        group_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[TopicAssignment]:
        """Pick the best open topic for one full group that has none yet.

        This is the single-group counterpart of the topic pass.  Like
        :meth:`run` it only plans; commit the returned assignment with
        :meth:`Repository.commit_topic_assignment`.

        Returns:
            The assignment, or ``None`` when no open topic clears the
            minimum score.

        Raises:
            ScopeError: If the group is unknown.
            IneligibleError: If the group already has a topic or still
                has free slots.
            RepositoryError: If a read fails.
        """
        group = self._read("group", self.repository.get_group, group_id)
        if group is None:
            raise ScopeError(f"Unknown group {group_id}")
        if group.topic_id is not None:
            raise IneligibleError(f"Group {group_id} already has topic {group.topic_id}")
        if group.remaining_slots > 0:
            raise IneligibleError(f"Group {group_id} still has {group.remaining_slots} free slots")
        topics = self._read("open topics", self.repository.list_open_topics, group.semester_id, group.major_id)
        target = _TopicTarget(group.group_id, group.name, group.major_id, group.member_profiles())
        assignment = self._pick_topic(target, topics, set(), group.semester_id, cancel_event)
        if assignment is None:
            logger.info("No eligible topic for group %s among %d open topics", group_id, len(topics))
        else:
            logger.info("Group %s -> topic %s (%.2f)", group_id, assignment.topic_id, assignment.score)
        return assignment


def auto_resolve(
    repository: Repository,
    semester_id: str,
    major_id: Optional[str] = None,
    provider: Optional[LLMProvider] = None,
    config: Optional[TeamMatchConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> AutoResolveResult:
    """Convenience wrapper around :meth:`AutoResolver.run`."""
    return AutoResolver(repository, provider, config).run(semester_id, major_id, cancel_event)


def auto_assign_topic(
    repository: Repository,
    group_id: str,
    provider: Optional[LLMProvider] = None,
    config: Optional[TeamMatchConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Optional[TopicAssignment]:
    """Convenience wrapper around :meth:`AutoResolver.assign_topic`."""
    return AutoResolver(repository, provider, config).assign_topic(group_id, cancel_event)
