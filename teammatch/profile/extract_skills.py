"""
Skill extraction from long documents.

Long inputs (CVs, project briefs) are split into bounded chunks, each
chunk is sent to the LLM extraction call, and the per-chunk answers are
merged into one ranked skill list.  A chunk that fails contributes
nothing; the rest of the document still counts.

Chunks are processed one after another so that a single document never
fans out into a burst of concurrent LLM calls.  Merging keeps the
highest confidence seen for each skill, so the result does not depend
on chunk order.
"""

from __future__ import annotations

import logging
import math
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from ..rank.llm_providers import LLMProvider, get_default_provider
from ..rank.llm_schema import SkillExtractionRequest

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 3500
MAX_CHUNKS = 12
MAX_SKILLS = 50


@dataclass(frozen=True)
class ExtractedSkill:
    name: str
    confidence: float
    evidence: Optional[str] = None


def chunk_text(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE, max_chunks: int = MAX_CHUNKS) -> List[str]:
    """Split ``text`` into at most ``max_chunks`` chunks of at most ``chunk_size`` characters.

    A chunk is cut at the last newline inside its window when that
    newline lies in the second half of the window, which keeps
    paragraphs together.  Text beyond ``max_chunks`` chunks is dropped.
    A non-positive ``chunk_size`` means :data:`DEFAULT_CHUNK_SIZE`.
    """
    if chunk_size <= 0:
        logger.debug("chunk_size %d is not positive, using %d", chunk_size, DEFAULT_CHUNK_SIZE)
        chunk_size = DEFAULT_CHUNK_SIZE
    text = (text or "").replace("\r\n", "\n")
    chunks: List[str] = []
    start = 0
    while start < len(text) and len(chunks) < max_chunks:
        window = text[start:start + chunk_size]
        length = len(window)
        if start + length < len(text):
            last_break = window.rfind("\n")
            if last_break > chunk_size // 2:
                length = last_break + 1
        chunks.append(text[start:start + length])
        start += length
    if start < len(text):
        logger.debug("Document truncated after %d chunks (%d chars dropped)", max_chunks, len(text) - start)
    return chunks


def _coerce_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    return confidence if math.isfinite(confidence) else 0.0


def parse_extraction_response(data: Any) -> List[ExtractedSkill]:
    """Read ``{"skills": [...]}``; anything malformed is skipped."""
    if not isinstance(data, dict):
        return []
    items = data.get("skills")
    if not isinstance(items, list):
        return []
    skills: List[ExtractedSkill] = []
    for item in items:
        if isinstance(item, str):
            name, confidence, evidence = item, 1.0, None
        elif isinstance(item, dict) and isinstance(item.get("name"), str):
            name = item["name"]
            confidence = _coerce_confidence(item.get("confidence"))
            evidence = item.get("evidence") if isinstance(item.get("evidence"), str) else None
        else:
            continue
        name = name.strip()
        if name:
            skills.append(ExtractedSkill(name, confidence, evidence))
    return skills


def merge_skill_scores(chunk_results: Iterable[Iterable[ExtractedSkill]], limit: int = MAX_SKILLS) -> List[ExtractedSkill]:
    """Merge per-chunk results keeping the maximum confidence per skill.

    Skill names compare case-insensitively; the first spelling seen is
    kept.  The output is sorted by descending confidence, then by name
    (case-insensitive), and capped at ``limit`` entries.
    """
    merged: Dict[str, ExtractedSkill] = {}
    for skills in chunk_results:
        for skill in skills:
            name = skill.name.strip()
            if not name:
                continue
            confidence = _coerce_confidence(skill.confidence)
            key = name.lower()
            current = merged.get(key)
            if current is None:
                merged[key] = ExtractedSkill(name, confidence, skill.evidence)
            elif confidence > current.confidence:
                merged[key] = ExtractedSkill(current.name, confidence, skill.evidence or current.evidence)
    ordered = sorted(merged.values(), key=lambda s: (-s.confidence, s.name.lower()))
    return ordered[:limit]


def _sub_source_id(source_id: Union[str, uuid.UUID], index: int) -> str:
    base = source_id.hex if isinstance(source_id, uuid.UUID) else str(source_id)
    return f"{base}:{index + 1}"


def extract_skill_scores(
    source_type: str,
    source_id: Union[str, uuid.UUID],
    full_text: str,
    provider: Optional[LLMProvider] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    cancel_event: Optional[threading.Event] = None,
) -> List[ExtractedSkill]:
    """Extract and rank skills from a document.

    Args:
        source_type: Kind of document (``"cv"``, ``"topic"``...), passed
            through to the LLM.
        source_id: Identifier of the document; chunk ``i`` is sent as
            ``"{source_id}:{i + 1}"``.
        full_text: The document text.
        provider: LLM provider.  Defaults to :func:`get_default_provider`.
        chunk_size: Maximum characters per chunk.
        cancel_event: When set, no further chunks are sent and the
            chunks already answered are merged.

    Returns:
        Skills sorted by descending confidence, at most ``MAX_SKILLS``.
    """
    chunks = chunk_text(full_text, chunk_size)
    if not chunks:
        return []
    provider = provider or get_default_provider()
    results: List[List[ExtractedSkill]] = []
    for index, chunk in enumerate(chunks):
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Skill extraction cancelled after %d of %d chunks", index, len(chunks))
            break
        if not chunk.strip():
            continue
        request = SkillExtractionRequest(source_type, _sub_source_id(source_id, index), chunk)
        try:
            skills = parse_extraction_response(provider.extract_skills(request))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Skill extraction failed for chunk %s: %s", request.source_id, exc)
            continue
        logger.debug("Chunk %s yielded %d skills", request.source_id, len(skills))
        results.append(skills)
    return merge_skill_scores(results)


def extract_skills(
    source_type: str,
    source_id: Union[str, uuid.UUID],
    full_text: str,
    provider: Optional[LLMProvider] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    cancel_event: Optional[threading.Event] = None,
) -> List[str]:
    """Like :func:`extract_skill_scores` but returns only the skill names."""
    return [
        skill.name
        for skill in extract_skill_scores(source_type, source_id, full_text, provider, chunk_size, cancel_event)
    ]
