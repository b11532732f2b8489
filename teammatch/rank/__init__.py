"""
Ranking subsystem for teammatch.

Candidates are ranked in two stages:

* `baseline` – Deterministic integer scoring of students, groups,
  topics and posts against a profile, with role-balance adjustments.
* `rerank` – Optionally sends the baseline top-N to an LLM provider
  and blends its scores back in.  Any failure leaves the baseline
  ranking untouched.

`suggest` ranks recruitment posts, topics and profile posts on demand,
`aggregate` reconciles reranker output with the baseline and
`llm_providers` holds the gateway, OpenAI, Gemini and placeholder
backends.
"""

from .baseline import (  # noqa: F401
    BaselineScore,
    RoleMix,
    normalize_score_to_percent,
    rank_candidates,
    role_need_adjustment,
    score_group_for_student,
    score_profile_post_for_group,
    score_recruitment_post,
    score_role_match,
    score_topic_for_group,
)
from .llm_providers import LLMProvider, PlaceholderProvider, get_default_provider  # noqa: F401
from .llm_schema import Candidate, RankedResult, TeamContext  # noqa: F401
from .rerank import build_query_text, rerank  # noqa: F401
from .suggest import (  # noqa: F401
    suggest_profile_posts_for_group,
    suggest_recruitment_posts,
    suggest_topics_for_group,
)
