"""Tests for the deterministic baseline scorers."""

from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from teammatch.config import ScoringWeights
from teammatch.profile.skill_profile import EMPTY_PROFILE, Role, SkillProfile
from teammatch.rank.baseline import (
    RoleMix,
    describe_role_need,
    normalize_score_to_percent,
    rank_candidates,
    recency_boost,
    role_need_adjustment,
    score_group_for_student,
    score_profile_post_for_group,
    score_recruitment_post,
    score_role_match,
    score_topic_for_group,
)
from teammatch.rank.llm_schema import Candidate

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


class TestHelpers(unittest.TestCase):
    def test_normalize_score_to_percent(self) -> None:
        self.assertEqual(normalize_score_to_percent(120, 20, 220), 50)
        self.assertEqual(normalize_score_to_percent(1, 0, 200), 1)  # 0.5 rounds up
        self.assertEqual(normalize_score_to_percent(500, 20, 220), 100)
        self.assertEqual(normalize_score_to_percent(5, 20, 220), 0)

    def test_score_role_match(self) -> None:
        self.assertEqual(score_role_match(Role.UNKNOWN, Role.BACKEND), 5)
        self.assertEqual(score_role_match(Role.BACKEND, Role.BACKEND), 35)
        self.assertEqual(score_role_match(Role.FRONTEND, Role.BACKEND), 5)
        self.assertEqual(score_role_match(Role.FRONTEND, Role.UNKNOWN, "Need a React dev"), 25)
        self.assertEqual(score_role_match(Role.BACKEND, Role.UNKNOWN, "Need a React dev"), 5)
        self.assertEqual(score_role_match(Role.BACKEND, Role.UNKNOWN, None), 5)

    def test_role_need_adjustment(self) -> None:
        self.assertEqual(role_need_adjustment(Role.BACKEND, RoleMix(1, 0, 0)), 28)
        self.assertEqual(role_need_adjustment(Role.BACKEND, RoleMix(3, 1, 1)), 20)
        self.assertEqual(role_need_adjustment(Role.FRONTEND, RoleMix(3, 1, 1)), -25)
        self.assertEqual(role_need_adjustment(Role.FRONTEND, RoleMix(2, 1, 1)), -15)
        self.assertEqual(role_need_adjustment(Role.OTHER, RoleMix(2, 1, 0)), 18)
        self.assertEqual(role_need_adjustment(Role.OTHER, RoleMix(1, 1, 0)), 0)
        self.assertEqual(role_need_adjustment(Role.UNKNOWN, RoleMix(0, 0, 0)), 0)
        self.assertEqual(role_need_adjustment(Role.BACKEND, None), 0)

    def test_role_need_adjustment_uses_weights(self) -> None:
        weights = ScoringWeights(backend_missing_bonus=50)
        self.assertEqual(role_need_adjustment(Role.BACKEND, RoleMix(), weights), 50)

    def test_describe_role_need(self) -> None:
        self.assertEqual(describe_role_need(Role.BACKEND, RoleMix(2, 0, 0)), "Team is missing backend")
        self.assertEqual(describe_role_need(Role.FRONTEND, RoleMix(0, 1, 0)), "Team is missing frontend")
        self.assertEqual(describe_role_need(Role.OTHER, RoleMix(2, 1, 0)), "Team needs mobile/generalist")
        self.assertIsNone(describe_role_need(Role.FRONTEND, RoleMix(1, 1, 1)))

    def test_recency_boost(self) -> None:
        self.assertEqual(recency_boost(NOW, NOW), 30)
        self.assertEqual(recency_boost(NOW - timedelta(days=10), NOW), 20)
        self.assertEqual(recency_boost(NOW - timedelta(days=90), NOW), 5)
        self.assertEqual(recency_boost(NOW + timedelta(days=3), NOW), 30)


def test_recruitment_post_score() -> None:
    student = SkillProfile(Role.BACKEND, ("python", "sql"))
    required = SkillProfile(Role.BACKEND, ("python", "docker"))
    score = score_recruitment_post(
        student, "SE", required, "Backend dev", "SE", NOW - timedelta(days=10), RoleMix(2, 0, 0), now=NOW
    )
    # 18 overlap + 35 role + 15 major + 20 recency + 28 missing backend
    assert score.raw == 116
    assert score.percent == 48
    assert score.matched_skills == ("python",)
    assert "Same major" in score.reason


def test_recruitment_post_falls_back_to_position_text() -> None:
    student = SkillProfile(Role.FRONTEND, ("react", "css"))
    score = score_recruitment_post(student, "SE", EMPTY_PROFILE, "React developer", "AI", NOW, now=NOW)
    assert score.matched_skills == ("react",)
    # 18 overlap + 25 inferred role + 5 other major + 30 recency
    assert score.raw == 78


def test_topic_score() -> None:
    group = SkillProfile(Role.FRONTEND, ("react", "css"))
    score = score_topic_for_group(group, "React dashboard", "CSS heavy UI", can_take_more=True)
    assert score.matched_skills == ("react", "css")
    assert score.raw == 24 + 35 + 10
    assert score.percent == 59


def test_topic_score_without_group_profile() -> None:
    score = score_topic_for_group(EMPTY_PROFILE, "Anything", None, can_take_more=False)
    assert score.raw == 8 + 5
    assert score.percent == 3


def test_profile_post_score() -> None:
    candidate = SkillProfile(Role.FRONTEND, ("react",))
    group = SkillProfile(Role.BACKEND, ("node",))
    score = score_profile_post_for_group(candidate, group, RoleMix(0, 1, 0), NOW, now=NOW)
    assert score.matched_skills == ("react",)
    assert score.raw == 40 + 12 + 30
    assert score.percent == 52


def test_group_for_student_score() -> None:
    student = SkillProfile(Role.BACKEND, ("backend", "sql"))
    group = SkillProfile(Role.FRONTEND, ("react", "vue", "css", "figma"))
    score = score_group_for_student(student, "M", group, "M", RoleMix(4, 0, 0), Role.BACKEND, remaining_slots=1)
    # 28 missing backend + 15 major + 0 overlap + 35 needed role + 3 open slot
    assert score.raw == 81
    assert score.percent == 51
    assert score.passes


def test_group_for_student_below_threshold() -> None:
    student = SkillProfile(Role.FRONTEND, ("angular",))
    group = SkillProfile(Role.FRONTEND, ("react", "vue", "css", "figma"))
    score = score_group_for_student(student, "M", group, "M", RoleMix(4, 0, 0), Role.BACKEND, remaining_slots=1)
    assert score.raw == -25 + 15 + 3
    assert score.percent is None
    assert not score.passes


def test_scorers_are_deterministic() -> None:
    student = SkillProfile(Role.OTHER, ("kotlin", "sql"))
    group = SkillProfile(Role.BACKEND, ("sql", "java"))
    first = score_group_for_student(student, "M", group, "M", RoleMix(2, 1, 0), None, 2)
    second = score_group_for_student(student, "M", group, "M", RoleMix(2, 1, 0), None, 2)
    assert first == second


def test_rank_candidates_tie_break_by_key() -> None:
    candidates = [
        Candidate("b", "2", "B", "", 50),
        Candidate("c", "3", "C", "", 70),
        Candidate("a", "1", "A", "", 50),
    ]
    assert [c.key for c in rank_candidates(candidates)] == ["c", "a", "b"]
    assert [c.key for c in rank_candidates(reversed(candidates))] == ["c", "a", "b"]
