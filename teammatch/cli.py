"""
Command line interface for teammatch.

This module exposes subcommands to inspect a skill profile, extract
skills from a document, rank suggestions, pick a topic for one group
and run auto-resolve over a JSON dataset.  The CLI is intentionally
lightweight and delegates the work to the `profile`, `rank` and
`resolve` packages; the library itself never depends on it.

LLM settings (``LLM_PROVIDER``, ``OPENAI_API_KEY``, ``AI_GATEWAY_URL``
...) are read from the environment, and a ``.env`` file in the working
directory is loaded first if present.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from .config import load_config
from .errors import TeamMatchError
from .profile.extract_skills import DEFAULT_CHUNK_SIZE, extract_skill_scores
from .profile.skill_profile import SkillProfile
from .rank.llm_providers import get_default_provider
from .rank.suggest import suggest_profile_posts_for_group, suggest_recruitment_posts, suggest_topics_for_group
from .resolve.commit import commit_plan
from .resolve.orchestrator import AutoResolver
from .resolve.repository import InMemoryRepository

logger = logging.getLogger("teammatch.cli")


def cmd_profile(args: argparse.Namespace) -> None:
    """Print the profile parsed from ``--json`` or ``--text``."""
    if args.json is not None:
        profile = SkillProfile.from_json(args.json)
    else:
        profile = SkillProfile.from_text(args.text)
    print(json.dumps(profile.to_dict(), ensure_ascii=False))


def cmd_extract(args: argparse.Namespace) -> None:
    """Extract ranked skills from a text file."""
    path = Path(args.file)
    text = path.read_text(encoding="utf-8")
    skills = extract_skill_scores(
        args.source_type,
        args.source_id or path.stem,
        text,
        provider=get_default_provider(),
        chunk_size=args.chunk_size,
    )
    if not skills:
        logger.warning("No skills extracted from %s", path)
    for i, skill in enumerate(skills):
        print(f"{i+1:02d}. {skill.name} ({skill.confidence:.2f})")


def _provider(args: argparse.Namespace):
    return None if args.no_rerank else get_default_provider()


def cmd_resolve(args: argparse.Namespace) -> None:
    """Run auto-resolve over a dataset and write the plan as JSON."""
    config = load_config(args.config)
    repository = InMemoryRepository.from_json_file(args.dataset)
    provider = _provider(args)
    try:
        result = AutoResolver(repository, provider, config).run(args.semester, args.major)
    except TeamMatchError as exc:
        logger.error("Auto-resolve aborted: %s", exc)
        raise SystemExit(2) from exc

    plan = result.to_json()
    if args.out:
        Path(args.out).write_text(plan, encoding="utf-8")
        logger.info("Plan written to %s", args.out)
    else:
        print(plan)

    print(
        f"Assigned {result.students_assigned} students, created {result.new_groups_created} groups, "
        f"assigned {result.topics_assigned} topics"
    )
    for issue in result.student_issues:
        print(f"   student {issue.student_id}: {issue.reason}")
    for issue in result.group_issues:
        print(f"   group {issue.group_id}: {issue.reason}")

    if args.commit:
        report = commit_plan(repository, result)
        print(f"Committed {report.committed} entries, {len(report.failures)} failures")
        for failure in report.failures:
            print(f"   {failure.kind} {failure.entity_id}: {failure.error}")


def cmd_suggest(args: argparse.Namespace) -> None:
    """Print ranked recruitment posts, topics or profile posts."""
    config = load_config(args.config)
    repository = InMemoryRepository.from_json_file(args.dataset)
    try:
        if args.kind == "posts":
            if not args.student or not args.semester:
                raise SystemExit("suggest posts needs --student and --semester")
            results = suggest_recruitment_posts(
                repository, args.student, args.semester, args.major, _provider(args), config, args.limit
            )
        else:
            if not args.group:
                raise SystemExit(f"suggest {args.kind} needs --group")
            lookup = suggest_topics_for_group if args.kind == "topics" else suggest_profile_posts_for_group
            results = lookup(repository, args.group, _provider(args), config, args.limit)
    except TeamMatchError as exc:
        logger.error("Suggestion failed: %s", exc)
        raise SystemExit(2) from exc

    if not results:
        print("No suggestions")
    for i, result in enumerate(results):
        print(f"{i+1:02d}. {result.title} [{result.entity_id}] {result.final_score:.2f} ({result.reason})")


def cmd_assign_topic(args: argparse.Namespace) -> None:
    """Pick a topic for one full group and optionally commit it."""
    config = load_config(args.config)
    repository = InMemoryRepository.from_json_file(args.dataset)
    try:
        assignment = AutoResolver(repository, _provider(args), config).assign_topic(args.group)
    except TeamMatchError as exc:
        logger.error("Topic assignment aborted: %s", exc)
        raise SystemExit(2) from exc
    if assignment is None:
        print(f"No eligible topic for group {args.group}")
        return
    print(f"Group {assignment.group_id} -> {assignment.topic_title} [{assignment.topic_id}] {assignment.score:.2f}")
    if args.commit:
        repository.commit_topic_assignment(assignment)
        print("Committed")


def main(argv: List[str] | None = None) -> None:
    load_dotenv()
    parser = argparse.ArgumentParser(prog="teammatch", description="Teammatch CLI")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Profile
    profile_cmd = subparsers.add_parser("profile", help="Show the skill profile parsed from input")
    source = profile_cmd.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", help="Free-text skills, e.g. 'React, Node'")
    source.add_argument("--json", help="Skills JSON document")
    profile_cmd.set_defaults(func=cmd_profile)

    # Extract
    extract_cmd = subparsers.add_parser("extract", help="Extract skills from a text document")
    extract_cmd.add_argument("--file", required=True, help="Path to a UTF-8 text file")
    extract_cmd.add_argument("--source-type", dest="source_type", default="cv", help="Document kind")
    extract_cmd.add_argument("--source-id", dest="source_id", help="Document id (defaults to file name)")
    extract_cmd.add_argument(
        "--chunk-size", dest="chunk_size", type=int, default=DEFAULT_CHUNK_SIZE, help="Characters per chunk"
    )
    extract_cmd.set_defaults(func=cmd_extract)

    # Resolve
    resolve_cmd = subparsers.add_parser("resolve", help="Auto-resolve a semester from a JSON dataset")
    resolve_cmd.add_argument("--dataset", required=True, help="Path to dataset JSON")
    resolve_cmd.add_argument("--semester", required=True, help="Semester id")
    resolve_cmd.add_argument("--major", help="Restrict the run to one major")
    resolve_cmd.add_argument("--config", help="YAML config file")
    resolve_cmd.add_argument("--out", help="Write the plan JSON here instead of stdout")
    resolve_cmd.add_argument("--commit", action="store_true", help="Commit the plan to the loaded dataset")
    resolve_cmd.add_argument("--no-rerank", dest="no_rerank", action="store_true", help="Baseline ranking only")
    resolve_cmd.set_defaults(func=cmd_resolve)

    # Suggest
    suggest_cmd = subparsers.add_parser("suggest", help="Rank posts or topics for a student or group")
    suggest_cmd.add_argument("kind", choices=["posts", "topics", "members"], help="What to suggest")
    suggest_cmd.add_argument("--dataset", required=True, help="Path to dataset JSON")
    suggest_cmd.add_argument("--student", help="Student id (posts)")
    suggest_cmd.add_argument("--semester", help="Semester id (posts)")
    suggest_cmd.add_argument("--major", help="Major whose posts to search (posts)")
    suggest_cmd.add_argument("--group", help="Group id (topics, members)")
    suggest_cmd.add_argument("--limit", type=int, help="Maximum suggestions")
    suggest_cmd.add_argument("--config", help="YAML config file")
    suggest_cmd.add_argument("--no-rerank", dest="no_rerank", action="store_true", help="Baseline ranking only")
    suggest_cmd.set_defaults(func=cmd_suggest)

    # Assign topic
    assign_cmd = subparsers.add_parser("assign-topic", help="Pick a topic for one full group")
    assign_cmd.add_argument("--dataset", required=True, help="Path to dataset JSON")
    assign_cmd.add_argument("--group", required=True, help="Group id")
    assign_cmd.add_argument("--config", help="YAML config file")
    assign_cmd.add_argument("--commit", action="store_true", help="Commit the assignment to the loaded dataset")
    assign_cmd.add_argument("--no-rerank", dest="no_rerank", action="store_true", help="Baseline ranking only")
    assign_cmd.set_defaults(func=cmd_assign_topic)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main(sys.argv[1:])
