"""
Skill profiles.

A :class:`SkillProfile` is the canonical, immutable view of a person's
(or a group's) skills: a coarse primary role plus a normalised tag
list.  Profiles are built once at the boundary from whatever shape the
raw data arrives in and are never re-inspected downstream:

* a JSON object with a role key (``primary_role``/``primaryRole``/
  ``primary``) and tag keys (``skill_tags``/``skillTags``/``skills``/
  ``tags``/``stack``),
* a JSON array of strings,
* free text (or a JSON string), split on ``, ; / |`` and whitespace.

Parsing never raises; anything unreadable becomes the empty profile so
that one bad record cannot abort a larger batch.
"""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Role(IntEnum):
    """Coarse primary role.  Declaration order is the tie-break order."""

    UNKNOWN = 0
    FRONTEND = 1
    BACKEND = 2
    OTHER = 3


_FRONTEND_KEYWORDS = (
    "frontend", "front-end", "ui", "ux", "react", "vue", "angular", "svelte", "css", "html",
    "tailwind", "bootstrap", "figma", "design", "nextjs", "nuxt", "web",
)
_BACKEND_KEYWORDS = (
    "backend", "back-end", "api", "server", "database", "sql", "rest", "graphql", "java",
    "spring", "python", "django", "flask", "dotnet", "aspnet", "node", "express", "go", "golang",
    "kafka", "microservice", "cloud", "aws", "azure",
)
_MOBILE_KEYWORDS = (
    "mobile", "android", "ios", "swift", "kotlin", "flutter", "reactnative", "react-native",
    "xamarin", "ionic",
)
_GENERAL_TECH_KEYWORDS = ("devops", "data", "machinelearning", "ml", "ai", "ar", "vr", "unity", "unreal")

# Free-text hints, coarser than the tag voting keywords.
_TEXT_FRONTEND_HINTS = ("front", "ui", "ux", "react", "design")
_TEXT_BACKEND_HINTS = ("back", "api", "server", "database", "python", "etl")

_ROLE_ALIASES: Dict[str, Role] = {
    "fe": Role.FRONTEND, "front": Role.FRONTEND, "front-end": Role.FRONTEND,
    "frontend": Role.FRONTEND, "ui": Role.FRONTEND, "ux": Role.FRONTEND,
    "be": Role.BACKEND, "back": Role.BACKEND, "back-end": Role.BACKEND,
    "backend": Role.BACKEND, "server": Role.BACKEND, "api": Role.BACKEND,
    "mobile": Role.OTHER, "android": Role.OTHER, "ios": Role.OTHER,
    "flutter": Role.OTHER, "swift": Role.OTHER, "kotlin": Role.OTHER,
    "other": Role.OTHER,
}

_ROLE_KEYS = ("primary_role", "primaryRole", "primary")
_TAG_KEYS = ("skill_tags", "skillTags", "skills", "tags", "stack")
_TERM_SEPARATORS = re.compile(r"[,;/|\n\r\t]")


def parse_role(value: Optional[str]) -> Role:
    """Map an explicit role label (``"fe"``, ``"Back-End"``, ``"mobile"``...) to a :class:`Role`."""
    if not value or not value.strip():
        return Role.UNKNOWN
    return _ROLE_ALIASES.get(value.strip().lower(), Role.UNKNOWN)


def role_display(role: Role) -> str:
    return role.name.lower()


def _matches_any(token: str, keywords: Iterable[str]) -> bool:
    return any(keyword in token for keyword in keywords)


def infer_role_from_tags(tags: Iterable[str]) -> Role:
    """Infer a role by weighted keyword voting over a tag list.

    Frontend, backend and mobile keywords vote 2 points; general tech
    keywords vote 1 point for :attr:`Role.OTHER`.  Returns
    :attr:`Role.UNKNOWN` when nothing votes.
    """
    score = {Role.FRONTEND: 0, Role.BACKEND: 0, Role.OTHER: 0}
    for tag in tags or ():
        if not tag or not tag.strip():
            continue
        token = tag.strip().lower()
        if _matches_any(token, _FRONTEND_KEYWORDS):
            score[Role.FRONTEND] += 2
        if _matches_any(token, _BACKEND_KEYWORDS):
            score[Role.BACKEND] += 2
        if _matches_any(token, _MOBILE_KEYWORDS):
            score[Role.OTHER] += 2
        if _matches_any(token, _GENERAL_TECH_KEYWORDS):
            score[Role.OTHER] += 1
    best_role, best_score = max(score.items(), key=lambda item: (item[1], -item[0]))
    return best_role if best_score > 0 else Role.UNKNOWN


def infer_role_from_text(text: Optional[str]) -> Role:
    """Infer a role from a free-text hint such as a topic description."""
    if not text or not text.strip():
        return Role.UNKNOWN
    normalized = text.lower()
    if any(hint in normalized for hint in ("frontend", "ui", "react", "figma", "flutter")):
        return Role.FRONTEND
    if any(hint in normalized for hint in ("backend", "api", "server", "database", "microservice")):
        return Role.BACKEND
    return Role.OTHER


def _normalize_tag(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    cleaned = value.strip().lower()
    return cleaned or None


def _dedupe(tags: Iterable[Any]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for tag in tags:
        normalized = _normalize_tag(tag)
        if normalized is not None and normalized not in seen:
            seen[normalized] = None
    return tuple(seen)


def split_terms(value: Optional[str]) -> List[str]:
    """Tokenise free text into normalised, de-duplicated terms."""
    if not value or not value.strip():
        return []
    tokens: List[str] = []
    for chunk in _TERM_SEPARATORS.split(value):
        tokens.extend(chunk.split(" "))
    return list(_dedupe(tokens))


def _infer_role_from_tokens(tags: Iterable[str]) -> Role:
    tags = list(tags)
    if any(_matches_any(t, _TEXT_FRONTEND_HINTS) for t in tags):
        return Role.FRONTEND
    if any(_matches_any(t, _TEXT_BACKEND_HINTS) for t in tags):
        return Role.BACKEND
    return Role.OTHER


def _collect_tags(element: Any, into: List[str]) -> None:
    if isinstance(element, list):
        into.extend(item for item in element if isinstance(item, str))
    elif isinstance(element, str):
        into.extend(split_terms(element))


@dataclass(frozen=True)
class SkillProfile:
    """Immutable role + tag profile.

    Tags are lowercase, stripped, non-empty and unique; their order is
    the order in which they were first seen.
    """

    primary_role: Role = Role.UNKNOWN
    tags: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "primary_role", Role(self.primary_role))
        object.__setattr__(self, "tags", _dedupe(self.tags))

    @property
    def has_tags(self) -> bool:
        return bool(self.tags)

    @property
    def tag_set(self) -> frozenset:
        return frozenset(self.tags)

    @property
    def is_empty(self) -> bool:
        return not self.tags and self.primary_role == Role.UNKNOWN

    @classmethod
    def empty(cls) -> "SkillProfile":
        return EMPTY_PROFILE

    @classmethod
    def from_json(cls, text: Any) -> "SkillProfile":
        """Parse a JSON document into a profile; any failure yields the empty profile."""
        if text is None:
            return EMPTY_PROFILE
        if not isinstance(text, (str, bytes)):
            return cls.from_value(text)
        if not text.strip():
            return EMPTY_PROFILE
        try:
            value = json.loads(text)
        except (ValueError, TypeError) as exc:
            logger.debug("Unparseable skill JSON treated as empty profile: %s", exc)
            return EMPTY_PROFILE
        return cls.from_value(value)

    @classmethod
    def from_value(cls, value: Any) -> "SkillProfile":
        """Build a profile from an already decoded JSON value."""
        if isinstance(value, dict):
            role_value = next(
                (value[key] for key in _ROLE_KEYS if isinstance(value.get(key), str)),
                None,
            )
            tags: List[str] = []
            for key in _TAG_KEYS:
                if key in value:
                    _collect_tags(value[key], tags)
            return cls(parse_role(role_value), tuple(tags))
        if isinstance(value, list):
            tags = []
            _collect_tags(value, tags)
            return cls(Role.UNKNOWN, tuple(tags))
        if isinstance(value, str):
            return cls.from_text(value)
        return EMPTY_PROFILE

    @classmethod
    def from_text(cls, text: Optional[str]) -> "SkillProfile":
        """Tokenise free text and infer the role by keyword containment."""
        if not text or not text.strip():
            return EMPTY_PROFILE
        tags = split_terms(text)
        return cls(_infer_role_from_tokens(tags), tuple(tags))

    @classmethod
    def combine(cls, profiles: Iterable["SkillProfile"]) -> "SkillProfile":
        """Union the tags of several profiles and pick the dominant known role.

        The most frequent non-unknown role wins; ties go to the role
        declared first in :class:`Role`.
        """
        tags: List[str] = []
        counter: Counter = Counter()
        for profile in profiles:
            tags.extend(profile.tags)
            if profile.primary_role != Role.UNKNOWN:
                counter[profile.primary_role] += 1
        if counter:
            dominant = min(counter, key=lambda role: (-counter[role], role))
        else:
            dominant = Role.UNKNOWN
        return cls(dominant, tuple(tags))

    def find_matches(self, other: "SkillProfile") -> List[str]:
        """Tags shared with ``other``, in ``other``'s order."""
        if not self.tags or not other.tags:
            return []
        own = self.tag_set
        return [tag for tag in other.tags if tag in own]

    def with_role(self, role: Role) -> "SkillProfile":
        return SkillProfile(role, self.tags)

    def to_dict(self) -> Dict[str, Any]:
        return {"primary_role": role_display(self.primary_role), "skill_tags": list(self.tags)}


EMPTY_PROFILE = SkillProfile()
