"""
Typed failures raised by teammatch.

Only run-level preconditions raise.  Per-entity problems (a student
that cannot be placed, a group without an eligible topic, a flaky LLM
call) are recorded as issues on the result instead.
"""

from __future__ import annotations


class TeamMatchError(Exception):
    """Base class for all hard failures surfaced to the caller."""


class ScopeError(TeamMatchError):
    """The requested semester/major scope does not exist or is malformed."""


class PolicyError(TeamMatchError):
    """The semester has no usable group-size policy."""


class RepositoryError(TeamMatchError):
    """A whole-batch repository read failed."""


class RerankError(TeamMatchError):
    """A rerank response could not be used.

    Raised while validating a response and always caught inside
    :func:`teammatch.rank.rerank.rerank`.
    """


class IneligibleError(TeamMatchError):
    """The student or group cannot take part in the requested operation.

    For example a student who already has a team asking for recruitment
    posts, or a full group asking for new members.
    """
