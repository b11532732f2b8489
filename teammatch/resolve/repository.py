"""
Repository capability set used by auto-resolve and suggestions.

:class:`Repository` lists the reads the orchestrator and the suggestion
helpers need and the writes a caller performs when committing a plan.
Storage is not teammatch's concern; :class:`InMemoryRepository` is a
reference implementation over plain snapshot lists, loadable from a
JSON dataset of the form::

    {
      "semesters": [{"semester_id": "S1", "name": "Fall 2025",
                     "policy": {"min_size": 4, "max_size": 5}}],
      "students": [{"user_id": "u1", "major_id": "SE", "semester_id": "S1",
                    "display_name": "An", "skills": {"primary_role": "be",
                    "skill_tags": ["python", "sql"]}}],
      "groups":   [{"group_id": "g1", "semester_id": "S1", "major_id": "SE",
                    "name": "Team A", "max_members": 5, "current_members": 4,
                    "member_skills": [["react"], "vue, css"]}],
      "topics":   [{"topic_id": "t1", "semester_id": "S1", "major_id": "SE",
                    "title": "Inventory API"}],
      "recruitment_posts": [{"post_id": "p1", "semester_id": "S1", "major_id": "SE",
                             "group_id": "g1", "title": "Need a backend dev",
                             "position_needed": "Backend developer",
                             "required_skills": ["python"],
                             "created_at": "2025-09-01T08:00:00Z"}],
      "profile_posts": [{"post_id": "q1", "semester_id": "S1", "major_id": "SE",
                         "owner_id": "u1", "title": "Backend dev looking for a team",
                         "skills_text": "Python, SQL",
                         "created_at": "2025-09-02T08:00:00Z"}]
    }

Student, topic and profile post skills may be given as a raw JSON
document (``skills_json``) or as a plain JSON value (``skills``).  Each
entry of ``member_skills`` is a plain JSON value; strings are read as
free text.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .schema import (
    GROUP_STATUS_ACTIVE,
    GROUP_STATUS_RECRUITING,
    POST_STATUS_OPEN,
    TOPIC_STATUS_CLOSED,
    TOPIC_STATUS_OPEN,
    GroupSizePolicy,
    GroupSnapshot,
    NewGroup,
    ProfilePostSnapshot,
    RecruitmentPostSnapshot,
    Semester,
    StudentAssignment,
    StudentSnapshot,
    TopicAssignment,
    TopicSnapshot,
)

logger = logging.getLogger(__name__)


class Repository(ABC):
    """Reads and writes the orchestrator, the suggestion lookups and the commit helper rely on."""

    @abstractmethod
    def get_semester(self, semester_id: str) -> Optional[Semester]:
        raise NotImplementedError

    @abstractmethod
    def get_group_size_policy(self, semester_id: str) -> Optional[GroupSizePolicy]:
        raise NotImplementedError

    @abstractmethod
    def list_unplaced_students(self, semester_id: str, major_id: Optional[str] = None) -> List[StudentSnapshot]:
        """Students with no active or pending membership this semester."""
        raise NotImplementedError

    @abstractmethod
    def list_open_groups(self, semester_id: str, major_id: Optional[str] = None) -> List[GroupSnapshot]:
        """Groups that are still forming: open slots, or full but without a topic."""
        raise NotImplementedError

    @abstractmethod
    def list_open_topics(self, semester_id: str, major_id: Optional[str] = None) -> List[TopicSnapshot]:
        raise NotImplementedError

    @abstractmethod
    def get_student(self, user_id: str, semester_id: str) -> Optional[StudentSnapshot]:
        raise NotImplementedError

    @abstractmethod
    def has_group(self, user_id: str, semester_id: str) -> bool:
        """Whether the student already belongs to a group this semester."""
        raise NotImplementedError

    @abstractmethod
    def get_group(self, group_id: str) -> Optional[GroupSnapshot]:
        raise NotImplementedError

    @abstractmethod
    def list_open_recruitment_posts(
        self, semester_id: str, major_id: Optional[str] = None
    ) -> List[RecruitmentPostSnapshot]:
        raise NotImplementedError

    @abstractmethod
    def list_open_profile_posts(self, semester_id: str, major_id: Optional[str] = None) -> List[ProfilePostSnapshot]:
        """Open profile posts of students who have no group yet."""
        raise NotImplementedError

    @abstractmethod
    def commit_assignment(self, assignment: StudentAssignment) -> None:
        raise NotImplementedError

    @abstractmethod
    def commit_new_group(self, group: NewGroup) -> None:
        raise NotImplementedError

    @abstractmethod
    def commit_topic_assignment(self, assignment: TopicAssignment) -> None:
        raise NotImplementedError


def _skills_text(raw: Dict[str, Any]) -> Optional[str]:
    if raw.get("skills_json") is not None:
        return str(raw["skills_json"])
    if raw.get("skills") is not None:
        return json.dumps(raw["skills"], ensure_ascii=False)
    return None


def _in_major(item_major: Optional[str], major_id: Optional[str], allow_unscoped: bool = False) -> bool:
    if major_id is None:
        return True
    return item_major == major_id or (allow_unscoped and item_major is None)


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)


class InMemoryRepository(Repository):
    """Repository backed by dictionaries; used by tests and the CLI."""

    def __init__(
        self,
        semesters: Iterable[Semester] = (),
        policies: Optional[Dict[str, GroupSizePolicy]] = None,
        students: Iterable[StudentSnapshot] = (),
        groups: Iterable[GroupSnapshot] = (),
        topics: Iterable[TopicSnapshot] = (),
        recruitment_posts: Iterable[RecruitmentPostSnapshot] = (),
        profile_posts: Iterable[ProfilePostSnapshot] = (),
    ) -> None:
        self.semesters: Dict[str, Semester] = {s.semester_id: s for s in semesters}
        self.policies: Dict[str, GroupSizePolicy] = dict(policies or {})
        self.students: Dict[str, StudentSnapshot] = {s.user_id: s for s in students}
        self.groups: Dict[str, GroupSnapshot] = {g.group_id: g for g in groups}
        self.topics: Dict[str, TopicSnapshot] = {t.topic_id: t for t in topics}
        self.recruitment_posts: Dict[str, RecruitmentPostSnapshot] = {p.post_id: p for p in recruitment_posts}
        self.profile_posts: Dict[str, ProfilePostSnapshot] = {p.post_id: p for p in profile_posts}
        # user_id -> group_id
        self.memberships: Dict[str, str] = {}

    # Reads

    def get_semester(self, semester_id: str) -> Optional[Semester]:
        return self.semesters.get(semester_id)

    def get_group_size_policy(self, semester_id: str) -> Optional[GroupSizePolicy]:
        return self.policies.get(semester_id)

    def list_unplaced_students(self, semester_id: str, major_id: Optional[str] = None) -> List[StudentSnapshot]:
        return sorted(
            (
                s for s in self.students.values()
                if s.semester_id == semester_id
                and s.user_id not in self.memberships
                and _in_major(s.major_id, major_id)
            ),
            key=lambda s: s.user_id,
        )

    def list_open_groups(self, semester_id: str, major_id: Optional[str] = None) -> List[GroupSnapshot]:
        return sorted(
            (
                g for g in self.groups.values()
                if g.semester_id == semester_id
                and g.status != GROUP_STATUS_ACTIVE
                and (g.remaining_slots > 0 or g.topic_id is None)
                and _in_major(g.major_id, major_id)
            ),
            key=lambda g: g.group_id,
        )

    def list_open_topics(self, semester_id: str, major_id: Optional[str] = None) -> List[TopicSnapshot]:
        return sorted(
            (
                t for t in self.topics.values()
                if t.semester_id == semester_id
                and t.status == TOPIC_STATUS_OPEN
                and _in_major(t.major_id, major_id, allow_unscoped=True)
            ),
            key=lambda t: t.topic_id,
        )

    def get_student(self, user_id: str, semester_id: str) -> Optional[StudentSnapshot]:
        student = self.students.get(user_id)
        return student if student is not None and student.semester_id == semester_id else None

    def has_group(self, user_id: str, semester_id: str) -> bool:
        group = self.groups.get(self.memberships.get(user_id, ""))
        return group is not None and group.semester_id == semester_id

    def get_group(self, group_id: str) -> Optional[GroupSnapshot]:
        return self.groups.get(group_id)

    def list_open_recruitment_posts(
        self, semester_id: str, major_id: Optional[str] = None
    ) -> List[RecruitmentPostSnapshot]:
        posts = []
        for post in self.recruitment_posts.values():
            if (
                post.semester_id != semester_id
                or post.status != POST_STATUS_OPEN
                or not _in_major(post.major_id, major_id, allow_unscoped=True)
            ):
                continue
            group = self.groups.get(post.group_id or "")
            if group is not None and (group.remaining_slots == 0 or group.status == GROUP_STATUS_ACTIVE):
                continue
            posts.append(post)
        return sorted(posts, key=lambda p: p.post_id)

    def list_open_profile_posts(self, semester_id: str, major_id: Optional[str] = None) -> List[ProfilePostSnapshot]:
        return sorted(
            (
                p for p in self.profile_posts.values()
                if p.semester_id == semester_id
                and p.status == POST_STATUS_OPEN
                and not self.has_group(p.owner_id, semester_id)
                and _in_major(p.major_id, major_id, allow_unscoped=True)
            ),
            key=lambda p: p.post_id,
        )

    # Writes

    def members_of(self, group_id: str) -> List[str]:
        return sorted(user for user, group in self.memberships.items() if group == group_id)

    def _add_member(self, group: GroupSnapshot, student: StudentSnapshot) -> GroupSnapshot:
        skills = group.member_skills
        if student.skills_json:
            skills = skills + (student.skills_json,)
        self.memberships[student.user_id] = group.group_id
        return replace(group, current_members=group.current_members + 1, member_skills=skills)

    def _unplaced_student(self, user_id: str) -> StudentSnapshot:
        student = self.students.get(user_id)
        if student is None:
            raise KeyError(f"Unknown student {user_id}")
        if user_id in self.memberships:
            raise ValueError(f"Student {user_id} is already in group {self.memberships[user_id]}")
        return student

    def commit_assignment(self, assignment: StudentAssignment) -> None:
        student = self._unplaced_student(assignment.student_id)
        group = self.groups.get(assignment.group_id)
        if group is None:
            raise KeyError(f"Unknown group {assignment.group_id}")
        if group.remaining_slots <= 0:
            raise ValueError(f"Group {group.group_id} is full")
        self.groups[group.group_id] = self._add_member(group, student)
        logger.debug("Committed %s -> %s", student.user_id, group.group_id)

    def commit_new_group(self, group: NewGroup) -> None:
        if group.group_id in self.groups:
            raise ValueError(f"Group {group.group_id} already exists")
        if len(group.members) > group.max_members:
            raise ValueError(f"Group {group.group_id} has more members than allowed")
        members = [self._unplaced_student(user_id) for user_id in group.members]
        snapshot = GroupSnapshot(
            group_id=group.group_id,
            semester_id=group.semester_id,
            major_id=group.major_id,
            name=group.name,
            max_members=group.max_members,
        )
        for student in members:
            snapshot = self._add_member(snapshot, student)
        self.groups[group.group_id] = snapshot
        logger.debug("Committed new group %s with %d members", group.group_id, len(members))

    def commit_topic_assignment(self, assignment: TopicAssignment) -> None:
        group = self.groups.get(assignment.group_id)
        topic = self.topics.get(assignment.topic_id)
        if group is None:
            raise KeyError(f"Unknown group {assignment.group_id}")
        if topic is None:
            raise KeyError(f"Unknown topic {assignment.topic_id}")
        if topic.status != TOPIC_STATUS_OPEN:
            raise ValueError(f"Topic {topic.topic_id} is no longer open")
        if group.topic_id is not None:
            raise ValueError(f"Group {group.group_id} already has topic {group.topic_id}")
        self.groups[group.group_id] = replace(group, topic_id=topic.topic_id, status=GROUP_STATUS_ACTIVE)
        self.topics[topic.topic_id] = replace(topic, status=TOPIC_STATUS_CLOSED, can_take_more=False)
        logger.debug("Committed topic %s -> %s", topic.topic_id, group.group_id)

    # Loading

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryRepository":
        """Build a repository from a decoded dataset (see module docstring)."""
        if not isinstance(data, dict):
            raise ValueError("Dataset root must be an object")
        semesters = []
        policies: Dict[str, GroupSizePolicy] = {}
        for raw in data.get("semesters", []):
            semester = Semester(str(raw["semester_id"]), raw.get("name", ""))
            semesters.append(semester)
            policy = raw.get("policy")
            if policy:
                policies[semester.semester_id] = GroupSizePolicy(int(policy["min_size"]), int(policy["max_size"]))
        students = [
            StudentSnapshot(
                user_id=str(raw["user_id"]),
                major_id=raw.get("major_id"),
                semester_id=str(raw["semester_id"]),
                display_name=raw.get("display_name", ""),
                primary_role=raw.get("primary_role"),
                skills_json=_skills_text(raw),
            )
            for raw in data.get("students", [])
        ]
        groups = [
            GroupSnapshot(
                group_id=str(raw["group_id"]),
                semester_id=str(raw["semester_id"]),
                major_id=raw.get("major_id"),
                name=raw.get("name", ""),
                max_members=int(raw["max_members"]),
                current_members=int(raw.get("current_members", len(raw.get("member_skills", [])))),
                description=raw.get("description", ""),
                status=raw.get("status", GROUP_STATUS_RECRUITING),
                topic_id=raw.get("topic_id"),
                member_skills=tuple(
                    json.dumps(skills, ensure_ascii=False) for skills in raw.get("member_skills", [])
                ),
                needed_role=raw.get("needed_role"),
            )
            for raw in data.get("groups", [])
        ]
        topics = [
            TopicSnapshot(
                topic_id=str(raw["topic_id"]),
                semester_id=str(raw["semester_id"]),
                major_id=raw.get("major_id"),
                title=raw.get("title", ""),
                description=raw.get("description", ""),
                skills_json=_skills_text(raw),
                status=raw.get("status", TOPIC_STATUS_OPEN),
                can_take_more=bool(raw.get("can_take_more", True)),
            )
            for raw in data.get("topics", [])
        ]
        recruitment_posts = [
            RecruitmentPostSnapshot(
                post_id=str(raw["post_id"]),
                semester_id=str(raw["semester_id"]),
                major_id=raw.get("major_id"),
                title=raw.get("title", ""),
                created_at=_parse_time(raw["created_at"]),
                description=raw.get("description", ""),
                group_id=raw.get("group_id"),
                group_name=raw.get("group_name", ""),
                position_needed=raw.get("position_needed"),
                required_skills=(
                    json.dumps(raw["required_skills"], ensure_ascii=False)
                    if raw.get("required_skills") is not None
                    else None
                ),
                application_deadline=_parse_time(raw.get("application_deadline")),
                status=raw.get("status", POST_STATUS_OPEN),
            )
            for raw in data.get("recruitment_posts", [])
        ]
        profile_posts = [
            ProfilePostSnapshot(
                post_id=str(raw["post_id"]),
                semester_id=str(raw["semester_id"]),
                major_id=raw.get("major_id"),
                owner_id=str(raw["owner_id"]),
                title=raw.get("title", ""),
                created_at=_parse_time(raw["created_at"]),
                owner_name=raw.get("owner_name", ""),
                description=raw.get("description", ""),
                skills_json=_skills_text(raw),
                skills_text=raw.get("skills_text"),
                primary_role=raw.get("primary_role"),
                desired_position=raw.get("desired_position"),
                status=raw.get("status", POST_STATUS_OPEN),
            )
            for raw in data.get("profile_posts", [])
        ]
        return cls(semesters, policies, students, groups, topics, recruitment_posts, profile_posts)

    @classmethod
    def from_json_file(cls, path: str) -> "InMemoryRepository":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        repo = cls.from_dict(data)
        logger.info(
            "Loaded dataset %s: %d students, %d groups, %d topics, %d posts",
            path, len(repo.students), len(repo.groups), len(repo.topics),
            len(repo.recruitment_posts) + len(repo.profile_posts),
        )
        return repo
