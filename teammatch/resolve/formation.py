"""
New-group formation.

Students left over after the student pass are bucketed, per major, into
new groups whose sizes respect the semester's size policy.  The policy
is never relaxed: students who cannot make up a group of at least
``min_size`` are left out and reported by the caller.

Bucketing is deterministic.  Students are ordered by display name (then
id); when not everyone fits, the students at the end of that order are
the ones left out.  Placed students are dealt role by role (frontend,
backend, other, unknown) into the bucket holding the fewest of that
role, so each new group gets a reasonable mix.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ..profile.skill_profile import Role, SkillProfile
from .schema import GroupSizePolicy, NewGroup, StudentSnapshot

logger = logging.getLogger(__name__)

MAX_GROUP_NAME_LENGTH = 64
_DEAL_ORDER = (Role.FRONTEND, Role.BACKEND, Role.OTHER, Role.UNKNOWN)


@dataclass
class Bucket:
    capacity: int
    members: List[Tuple[StudentSnapshot, SkillProfile]] = field(default_factory=list)

    def count(self, role: Role) -> int:
        return sum(1 for _, profile in self.members if profile.primary_role == role)

    @property
    def free(self) -> int:
        return self.capacity - len(self.members)


def bucket_sizes(pool_size: int, min_size: int, max_size: int) -> List[int]:
    """Sizes of the groups to form from ``pool_size`` students.

    Uses as few groups as possible when everyone can be placed;
    otherwise fills as many groups as the pool allows to ``max_size``.
    Sizes differ by at most one.

    >>> bucket_sizes(7, 3, 5)
    [4, 3]
    >>> bucket_sizes(7, 4, 5)
    [5]
    """
    if pool_size < min_size:
        return []
    count = math.ceil(pool_size / max_size)
    if count * min_size <= pool_size:
        base, extra = divmod(pool_size, count)
        return [base + 1 if i < extra else base for i in range(count)]
    return [max_size] * (pool_size // min_size)


def auto_group_name(prefix: str, sequence: int, group_id: str) -> str:
    suffix = group_id.replace("-", "")[:8].upper()
    return f"{prefix} {sequence:02d}-{suffix}"[:MAX_GROUP_NAME_LENGTH]


def form_buckets(
    pool: Sequence[Tuple[StudentSnapshot, SkillProfile]],
    policy: GroupSizePolicy,
) -> Tuple[List[Bucket], List[StudentSnapshot]]:
    """Split one major's pool into role-balanced buckets.

    Returns:
        The filled buckets and the students that could not be placed.
    """
    ordered = sorted(pool, key=lambda entry: (entry[0].display_name, entry[0].user_id))
    sizes = bucket_sizes(len(ordered), policy.min_size, policy.max_size)
    placed_count = sum(sizes)
    placed, leftover = ordered[:placed_count], ordered[placed_count:]
    buckets = [Bucket(size) for size in sizes]
    for role in _DEAL_ORDER:
        for entry in (e for e in placed if e[1].primary_role == role):
            index = min(
                (i for i, b in enumerate(buckets) if b.free > 0),
                key=lambda i: (buckets[i].count(role), len(buckets[i].members), i),
            )
            buckets[index].members.append(entry)
    return buckets, [student for student, _ in leftover]


def form_new_groups(
    pool: Sequence[Tuple[StudentSnapshot, SkillProfile]],
    policy: GroupSizePolicy,
    semester_id: str,
    major_id: Optional[str],
    name_prefix: str = "Auto Group",
    start_sequence: int = 1,
) -> Tuple[List[NewGroup], List[StudentSnapshot]]:
    """Create :class:`NewGroup` plans for one major's leftover pool.

    The first member dealt into a bucket becomes the group's leader.
    """
    buckets, leftover = form_buckets(pool, policy)
    groups: List[NewGroup] = []
    for offset, bucket in enumerate(buckets):
        group_id = str(uuid.uuid4())
        members = tuple(student.user_id for student, _ in bucket.members)
        groups.append(
            NewGroup(
                group_id=group_id,
                name=auto_group_name(name_prefix, start_sequence + offset, group_id),
                major_id=major_id,
                semester_id=semester_id,
                members=members,
                leader_id=members[0],
                max_members=policy.max_size,
            )
        )
    logger.info(
        "Major %s: formed %d new groups from %d students, %d left over",
        major_id, len(groups), len(pool), len(leftover),
    )
    return groups, leftover
