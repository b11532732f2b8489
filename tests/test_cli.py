"""Smoke tests for the teammatch command line."""

from __future__ import annotations

import json
from pathlib import Path

import pytest  # type: ignore

from teammatch import cli

DATASET = {
    "semesters": [{"semester_id": "S1", "policy": {"min_size": 3, "max_size": 5}}],
    "students": [
        {"user_id": "U1", "major_id": "M", "semester_id": "S1",
         "skills": {"primary_role": "be", "skill_tags": ["backend", "sql"]}},
        {"user_id": "U2", "major_id": "M", "semester_id": "S1", "skills": {"primary_role": "fe", "skills": ["angular"]}},
        {"user_id": "U3", "major_id": "M", "semester_id": "S1", "skills": {"primary_role": "fe", "skills": ["svelte"]}},
        {"user_id": "U4", "major_id": "M", "semester_id": "S1", "skills": {"primary_role": "fe", "skills": ["tailwind"]}},
    ],
    "groups": [
        {"group_id": "G1", "semester_id": "S1", "major_id": "M", "name": "Team A", "max_members": 5,
         "needed_role": "be", "member_skills": [{"primary": "fe", "tags": [t]} for t in ("react", "vue", "css", "figma")]},
    ],
    "topics": [],
}


@pytest.fixture
def dataset(tmp_path: Path) -> Path:
    path = tmp_path / "dataset.json"
    path.write_text(json.dumps(DATASET), encoding="utf-8")
    return path


def test_profile_command(capsys) -> None:
    cli.main(["profile", "--text", "React, Node"])
    out = json.loads(capsys.readouterr().out)
    assert out == {"primary_role": "frontend", "skill_tags": ["react", "node"]}


def test_resolve_command_writes_plan_and_commits(dataset: Path, tmp_path: Path, capsys) -> None:
    out_path = tmp_path / "plan.json"
    cli.main(["resolve", "--dataset", str(dataset), "--semester", "S1", "--no-rerank", "--out", str(out_path), "--commit"])
    plan = json.loads(out_path.read_text(encoding="utf-8"))
    assert plan["students_assigned"] == 1
    assert plan["student_assignments"][0]["group_id"] == "G1"
    assert plan["new_groups_created"] == 1

    printed = capsys.readouterr().out
    assert "Assigned 1 students, created 1 groups, assigned 0 topics" in printed
    assert "group G1: no eligible topic" in printed
    assert "Committed 2 entries, 0 failures" in printed


def test_resolve_unknown_semester_exits(dataset: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["resolve", "--dataset", str(dataset), "--semester", "S9", "--no-rerank"])
    assert excinfo.value.code == 2


def test_extract_command_with_placeholder(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "placeholder")
    doc = tmp_path / "cv.txt"
    doc.write_text("Python, SQL\nDocker", encoding="utf-8")
    cli.main(["extract", "--file", str(doc)])
    lines = capsys.readouterr().out.splitlines()
    assert lines == ["01. docker (0.50)", "02. python (0.50)", "03. sql (0.50)"]


@pytest.fixture
def team_dataset(tmp_path: Path) -> Path:
    data = dict(
        DATASET,
        groups=DATASET["groups"] + [
            {"group_id": "G2", "semester_id": "S1", "major_id": "M", "name": "Team B", "max_members": 3,
             "member_skills": [{"primary": "be", "tags": ["sql"]}] * 3},
        ],
        topics=[{"topic_id": "T1", "semester_id": "S1", "major_id": "M", "title": "Inventory API", "skills": ["sql"]}],
        recruitment_posts=[
            {"post_id": "P1", "semester_id": "S1", "major_id": "M", "group_id": "G1", "title": "Need a backend dev",
             "position_needed": "Backend developer", "required_skills": ["sql"],
             "created_at": "2025-01-01T00:00:00Z"},
        ],
    )
    path = tmp_path / "teams.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_suggest_posts_command(team_dataset: Path, capsys) -> None:
    cli.main(["suggest", "posts", "--dataset", str(team_dataset), "--student", "U1", "--semester", "S1", "--no-rerank"])
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 1
    assert lines[0].startswith("01. Need a backend dev [P1] ")
    assert lines[0].endswith("(baseline only)")


def test_suggest_topics_and_members_commands(team_dataset: Path, capsys) -> None:
    cli.main(["suggest", "topics", "--dataset", str(team_dataset), "--group", "G1", "--no-rerank"])
    assert capsys.readouterr().out.splitlines() == ["01. Inventory API [T1] 5.00 (baseline only)"]
    cli.main(["suggest", "members", "--dataset", str(team_dataset), "--group", "G1", "--no-rerank"])
    assert capsys.readouterr().out.splitlines() == ["No suggestions"]


def test_suggest_posts_requires_student(team_dataset: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["suggest", "posts", "--dataset", str(team_dataset), "--semester", "S1"])
    assert "--student" in str(excinfo.value.code)


def test_assign_topic_command_commits(team_dataset: Path, capsys) -> None:
    cli.main(["assign-topic", "--dataset", str(team_dataset), "--group", "G2", "--no-rerank", "--commit"])
    assert capsys.readouterr().out.splitlines() == ["Group G2 -> Inventory API [T1] 47.00", "Committed"]


def test_assign_topic_for_group_with_free_slots_exits(team_dataset: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["assign-topic", "--dataset", str(team_dataset), "--group", "G1", "--no-rerank"])
    assert excinfo.value.code == 2
