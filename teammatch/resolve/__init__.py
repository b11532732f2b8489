"""
Auto-resolve: batch placement of students into groups and topics.

`orchestrator` builds the plan, `formation` buckets leftover students
into new groups, `repository` describes the storage the run reads from
and `commit` writes a finished plan back one entity at a time.
"""

from .commit import CommitReport, commit_plan  # noqa: F401
from .orchestrator import AutoResolver, auto_assign_topic, auto_resolve  # noqa: F401
from .repository import InMemoryRepository, Repository  # noqa: F401
from .schema import (  # noqa: F401
    AutoResolveResult,
    GroupIssue,
    GroupSizePolicy,
    GroupSnapshot,
    NewGroup,
    ProfilePostSnapshot,
    RecruitmentPostSnapshot,
    Semester,
    StudentAssignment,
    StudentIssue,
    StudentSnapshot,
    TopicAssignment,
    TopicSnapshot,
)
