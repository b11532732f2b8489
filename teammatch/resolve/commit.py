"""
Committing an auto-resolve plan.

The orchestrator only plans.  :func:`commit_plan` is the caller-side
helper that writes a plan through a :class:`Repository` one entity at
a time: new groups first (so their members are placed), then student
assignments, then topic assignments.  A failed write is recorded and
the walk goes on; nothing already written is rolled back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from .repository import Repository
from .schema import AutoResolveResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitFailure:
    kind: str
    entity_id: str
    error: str


@dataclass
class CommitReport:
    committed: int = 0
    failures: List[CommitFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def commit_plan(repository: Repository, result: AutoResolveResult) -> CommitReport:
    """Write every decision in ``result`` independently.

    Returns:
        A :class:`CommitReport` counting successful writes and listing
        the failed ones.
    """
    report = CommitReport()
    steps = (
        [("new_group", group.group_id, repository.commit_new_group, group) for group in result.new_groups]
        + [
            ("assignment", a.student_id, repository.commit_assignment, a)
            for a in result.student_assignments
        ]
        + [
            ("topic", a.group_id, repository.commit_topic_assignment, a)
            for a in result.topic_assignments
        ]
    )
    for kind, entity_id, write, item in steps:
        try:
            write(item)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Commit of %s %s failed: %s", kind, entity_id, exc)
            report.failures.append(CommitFailure(kind, entity_id, str(exc)))
            continue
        report.committed += 1
    logger.info("Committed %d of %d plan entries", report.committed, len(steps))
    return report
