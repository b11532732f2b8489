"""
Data shapes for auto-resolve and suggestions.

Snapshots are read-only views handed over by a repository; the result
types describe the plan the orchestrator hands back.  Nothing here is
persisted by teammatch itself.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..errors import PolicyError
from ..profile.skill_profile import Role, SkillProfile, infer_role_from_tags, parse_role

GROUP_STATUS_RECRUITING = "recruiting"
GROUP_STATUS_ACTIVE = "active"
TOPIC_STATUS_OPEN = "open"
TOPIC_STATUS_CLOSED = "closed"
POST_STATUS_OPEN = "open"

INSUFFICIENT_POOL = "insufficient pool"
NO_ELIGIBLE_TOPIC = "no eligible topic"
CANCELLED = "cancelled"


def resolve_profile(skills_json: Any, primary_role: Optional[str] = None) -> SkillProfile:
    """Build a person's profile from stored skills plus an optional explicit role.

    The skills document wins; an explicit role fills an unknown role;
    failing both, the role is voted from the tags.
    """
    profile = SkillProfile.from_json(skills_json)
    if profile.primary_role == Role.UNKNOWN and primary_role:
        profile = profile.with_role(parse_role(primary_role))
    if profile.primary_role == Role.UNKNOWN and profile.has_tags:
        profile = profile.with_role(infer_role_from_tags(profile.tags))
    return profile


@dataclass(frozen=True)
class Semester:
    semester_id: str
    name: str = ""


@dataclass(frozen=True)
class GroupSizePolicy:
    min_size: int
    max_size: int

    def validate(self) -> None:
        """Raise :class:`PolicyError` unless ``1 <= min_size <= max_size``."""
        if self.min_size < 1 or self.max_size < self.min_size:
            raise PolicyError(f"Invalid group size policy {self.min_size}..{self.max_size}")


@dataclass(frozen=True)
class StudentSnapshot:
    user_id: str
    major_id: Optional[str]
    semester_id: str
    display_name: str = ""
    primary_role: Optional[str] = None
    skills_json: Optional[str] = None

    def profile(self) -> SkillProfile:
        return resolve_profile(self.skills_json, self.primary_role)


@dataclass(frozen=True)
class GroupSnapshot:
    group_id: str
    semester_id: str
    major_id: Optional[str]
    name: str
    max_members: int
    current_members: int = 0
    description: str = ""
    status: str = GROUP_STATUS_RECRUITING
    topic_id: Optional[str] = None
    # Raw skills documents of the current members.
    member_skills: Tuple[str, ...] = ()
    needed_role: Optional[str] = None

    @property
    def remaining_slots(self) -> int:
        return max(self.max_members - self.current_members, 0)

    def member_profiles(self) -> List[SkillProfile]:
        return [resolve_profile(skills) for skills in self.member_skills]


@dataclass(frozen=True)
class TopicSnapshot:
    topic_id: str
    semester_id: str
    major_id: Optional[str]
    title: str
    description: str = ""
    skills_json: Optional[str] = None
    status: str = TOPIC_STATUS_OPEN
    can_take_more: bool = True


@dataclass(frozen=True)
class RecruitmentPostSnapshot:
    """A group's open call for new members."""

    post_id: str
    semester_id: str
    major_id: Optional[str]
    title: str
    created_at: datetime
    description: str = ""
    group_id: Optional[str] = None
    group_name: str = ""
    position_needed: Optional[str] = None
    # Raw skills document of what the group asks for.
    required_skills: Optional[str] = None
    application_deadline: Optional[datetime] = None
    status: str = POST_STATUS_OPEN

    def required_profile(self) -> SkillProfile:
        """Declared required skills, or the position text when none are declared."""
        profile = SkillProfile.from_json(self.required_skills)
        if not profile.has_tags and self.position_needed and self.position_needed.strip():
            profile = SkillProfile.from_text(self.position_needed)
        return profile


@dataclass(frozen=True)
class ProfilePostSnapshot:
    """A student's post advertising themselves to recruiting groups."""

    post_id: str
    semester_id: str
    major_id: Optional[str]
    owner_id: str
    title: str
    created_at: datetime
    owner_name: str = ""
    description: str = ""
    skills_json: Optional[str] = None
    skills_text: Optional[str] = None
    primary_role: Optional[str] = None
    desired_position: Optional[str] = None
    status: str = POST_STATUS_OPEN

    def profile(self) -> SkillProfile:
        """Skills document, else the free-text skills; an explicit role fills an unknown one."""
        profile = SkillProfile.from_json(self.skills_json)
        if not profile.has_tags and self.skills_text and self.skills_text.strip():
            profile = SkillProfile.from_text(self.skills_text)
        if profile.primary_role == Role.UNKNOWN and self.primary_role:
            profile = profile.with_role(parse_role(self.primary_role))
        return profile


@dataclass(frozen=True)
class StudentAssignment:
    student_id: str
    group_id: str
    group_name: str
    suggested_role: str
    score: float = 0.0


@dataclass(frozen=True)
class TopicAssignment:
    group_id: str
    topic_id: str
    topic_title: str
    score: float


@dataclass(frozen=True)
class NewGroup:
    group_id: str
    name: str
    major_id: Optional[str]
    semester_id: str
    members: Tuple[str, ...]
    leader_id: str
    max_members: int
    topic_id: Optional[str] = None

    @property
    def is_full(self) -> bool:
        return len(self.members) >= self.max_members


@dataclass(frozen=True)
class StudentIssue:
    student_id: str
    reason: str


@dataclass(frozen=True)
class GroupIssue:
    group_id: str
    reason: str


@dataclass(frozen=True)
class AutoResolveResult:
    """Immutable plan produced by one auto-resolve run.

    Every input student appears exactly once across
    ``student_assignments``, the members of ``new_groups`` and
    ``student_issues``.
    """

    semester_id: str
    major_id: Optional[str]
    student_assignments: Tuple[StudentAssignment, ...] = ()
    topic_assignments: Tuple[TopicAssignment, ...] = ()
    new_groups: Tuple[NewGroup, ...] = ()
    student_issues: Tuple[StudentIssue, ...] = ()
    group_issues: Tuple[GroupIssue, ...] = ()
    open_group_ids: Tuple[str, ...] = ()
    cancelled: bool = False

    @property
    def students_assigned(self) -> int:
        return len(self.student_assignments)

    @property
    def topics_assigned(self) -> int:
        return len(self.topic_assignments)

    @property
    def new_groups_created(self) -> int:
        return len(self.new_groups)

    @property
    def new_group_members(self) -> int:
        return sum(len(g.members) for g in self.new_groups)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.update(
            students_assigned=self.students_assigned,
            topics_assigned=self.topics_assigned,
            new_groups_created=self.new_groups_created,
        )
        return data

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


@dataclass
class ResultAccumulator:
    """Append-only collector the orchestrator fills during a run."""

    semester_id: str
    major_id: Optional[str] = None
    student_assignments: List[StudentAssignment] = field(default_factory=list)
    topic_assignments: List[TopicAssignment] = field(default_factory=list)
    new_groups: List[NewGroup] = field(default_factory=list)
    student_issues: List[StudentIssue] = field(default_factory=list)
    group_issues: List[GroupIssue] = field(default_factory=list)
    open_group_ids: List[str] = field(default_factory=list)
    cancelled: bool = False

    def build(self) -> AutoResolveResult:
        return AutoResolveResult(
            semester_id=self.semester_id,
            major_id=self.major_id,
            student_assignments=tuple(self.student_assignments),
            topic_assignments=tuple(self.topic_assignments),
            new_groups=tuple(self.new_groups),
            student_issues=tuple(self.student_issues),
            group_issues=tuple(self.group_issues),
            open_group_ids=tuple(self.open_group_ids),
            cancelled=self.cancelled,
        )
