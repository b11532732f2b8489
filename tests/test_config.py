"""Tests for YAML configuration loading."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest  # type: ignore

import teammatch
from teammatch.config import TeamMatchConfig, config_from_dict, load_config


def test_defaults() -> None:
    config = load_config()
    assert config == TeamMatchConfig()
    assert config.rerank.llm_weight == 0.85
    assert config.rerank.top_n == 30
    assert config.resolve.student_min_score == 1


def test_shipped_sample_matches_defaults() -> None:
    sample = Path(teammatch.__file__).with_name("config.yaml")
    assert load_config(str(sample)) == TeamMatchConfig()


def test_yaml_overrides(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "scoring:\n  group_skill_weight: 20\nrerank:\n  enabled: false\n  top_n: 10\n"
        "resolve:\n  auto_group_name_prefix: Team\n",
        encoding="utf-8",
    )
    config = load_config(str(path))
    assert config.scoring.group_skill_weight == 20
    assert config.scoring.post_skill_weight == 18
    assert config.rerank.enabled is False
    assert config.rerank.top_n == 10
    assert config.resolve.auto_group_name_prefix == "Team"


def test_unknown_keys_are_ignored(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="teammatch.config"):
        config = config_from_dict({"scoring": {"no_such_weight": 3}, "extras": {}})
    assert config == TeamMatchConfig()
    assert "scoring.no_such_weight" in caplog.text
    assert "extras" in caplog.text


@pytest.mark.parametrize(
    "data",
    [
        {"rerank": {"llm_weight": 1.5}},
        {"rerank": {"top_n": 0}},
        {"rerank": {"top_n": 31}},
        {"rerank": {"timeout_seconds": 0}},
        {"scoring": {"group_threshold": 200}},
        {"resolve": ["not", "a", "mapping"]},
    ],
)
def test_invalid_values_raise(data) -> None:
    with pytest.raises(ValueError):
        config_from_dict(data)


def test_bad_files(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yaml"))
    path = tmp_path / "list.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(path))
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    assert load_config(str(empty)) == TeamMatchConfig()
