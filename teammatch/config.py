"""
Configuration for matching and auto-resolve.

Scoring weights, thresholds and the rerank/resolve switches are policy
constants rather than algorithmic facts, so they live here as plain
dataclasses with sensible defaults.  A YAML file can override any of
them::

    scoring:
      post_skill_weight: 18
    rerank:
      top_n: 20
      timeout_seconds: 15
    resolve:
      student_min_score: 5

Keys that do not correspond to a field are ignored with a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

import yaml  # type: ignore

logger = logging.getLogger(__name__)

MAX_RERANK_CANDIDATES = 30


@dataclass
class ScoringWeights:
    """Integer point values used by the baseline scorer."""

    # Skill overlap
    post_skill_weight: int = 18
    topic_skill_weight: int = 12
    profile_skill_weight: int = 12
    group_skill_weight: int = 12
    max_skill_matches: int = 5
    topic_no_profile_score: int = 8

    # Role matching
    role_exact_match: int = 35
    role_inferred_match: int = 25
    role_mismatch: int = 5
    needed_role_match: int = 35

    # Scope and freshness
    major_match_boost: int = 15
    major_other_boost: int = 5
    recency_window_days: int = 30
    recency_floor: int = 5
    topic_capacity_boost: int = 10
    open_slot_boost: int = 3
    max_open_slot_boost_slots: int = 3

    # Profile posts
    profile_role_fills_gap: int = 40
    profile_role_unknown: int = 15
    profile_role_default: int = 20

    # Role balance
    backend_missing_bonus: int = 28
    backend_outnumbered_bonus: int = 20
    other_needed_bonus: int = 18
    frontend_heavy_penalty: int = 15
    frontend_very_heavy_penalty: int = 25

    # Percent normalisation: raw scores at or below the threshold are dropped
    post_threshold: int = 20
    post_max: int = 220
    topic_threshold: int = 10
    topic_max: int = 110
    profile_threshold: int = 20
    profile_max: int = 140
    group_threshold: int = 10
    group_max: int = 150


@dataclass
class RerankSettings:
    """Switches for the optional LLM reranker."""

    enabled: bool = True
    top_n: int = MAX_RERANK_CANDIDATES
    timeout_seconds: float = 20.0
    llm_weight: float = 0.85
    with_reasons: bool = False


@dataclass
class ResolveSettings:
    """Switches for the auto-resolve batch run."""

    student_min_score: int = 1
    topic_min_score: int = 1
    use_rerank_for_students: bool = True
    use_rerank_for_topics: bool = True
    auto_group_name_prefix: str = "Auto Group"


@dataclass
class TeamMatchConfig:
    scoring: ScoringWeights = field(default_factory=ScoringWeights)
    rerank: RerankSettings = field(default_factory=RerankSettings)
    resolve: ResolveSettings = field(default_factory=ResolveSettings)

    def validate(self) -> None:
        """Raise ``ValueError`` when a setting is outside its allowed range."""
        if not 0.0 <= self.rerank.llm_weight <= 1.0:
            raise ValueError(f"rerank.llm_weight must be within [0, 1], got {self.rerank.llm_weight}")
        if not 1 <= self.rerank.top_n <= MAX_RERANK_CANDIDATES:
            raise ValueError(
                f"rerank.top_n must be within [1, {MAX_RERANK_CANDIDATES}], got {self.rerank.top_n}"
            )
        if self.rerank.timeout_seconds <= 0:
            raise ValueError("rerank.timeout_seconds must be positive")
        weights = self.scoring
        for prefix in ("post", "topic", "profile", "group"):
            threshold = getattr(weights, f"{prefix}_threshold")
            maximum = getattr(weights, f"{prefix}_max")
            if maximum < threshold:
                raise ValueError(f"scoring.{prefix}_max must not be below scoring.{prefix}_threshold")


def _build_section(cls, data: Optional[Dict[str, Any]], section: str):
    if not data:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"Config section '{section}' must be a mapping")
    known = {f.name for f in fields(cls)}
    kwargs = {}
    for key, value in data.items():
        if key not in known:
            logger.warning("Ignoring unknown config key %s.%s", section, key)
            continue
        kwargs[key] = value
    return cls(**kwargs)


def config_from_dict(data: Optional[Dict[str, Any]]) -> TeamMatchConfig:
    """Build a validated :class:`TeamMatchConfig` from a plain mapping."""
    data = data or {}
    if not isinstance(data, dict):
        raise ValueError("Config root must be a mapping")
    for key in data:
        if key not in ("scoring", "rerank", "resolve"):
            logger.warning("Ignoring unknown config section %s", key)
    config = TeamMatchConfig(
        scoring=_build_section(ScoringWeights, data.get("scoring"), "scoring"),
        rerank=_build_section(RerankSettings, data.get("rerank"), "rerank"),
        resolve=_build_section(ResolveSettings, data.get("resolve"), "resolve"),
    )
    config.validate()
    return config


def load_config(config_path: Optional[str] = None) -> TeamMatchConfig:
    """Load configuration from a YAML file, or return the defaults.

    Args:
        config_path: Path to a YAML file.  ``None`` selects the defaults.

    Returns:
        A validated :class:`TeamMatchConfig`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        ValueError: If a section is malformed or a value is out of range.
    """
    if config_path is None:
        return TeamMatchConfig()
    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    logger.debug("Loaded config from %s", config_path)
    return config_from_dict(data)
