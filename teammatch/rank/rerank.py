"""
LLM reranking stage.

:func:`rerank` takes a baseline candidate list, sends the top of it to
an LLM provider and reconciles the answer with the baseline.  It never
raises: a missing provider, a timeout, a transport error, an ``error``
field in the answer, a malformed body or a context that cannot be
turned into a request all yield the baseline ranking unchanged,
labelled ``"rerank unavailable"`` (or ``"baseline only"`` when
reranking was not attempted).

Only the first ``top_n`` baseline candidates are sent.  Candidates
beyond that keep their baseline score and are merged with the reranked
block, so the final list is always in descending score order.
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Dict, Iterable, List, Optional

from ..config import RerankSettings
from ..errors import RerankError
from .aggregate import BASELINE_ONLY, RERANK_UNAVAILABLE, baseline_results, reconcile
from .baseline import rank_candidates
from .llm_providers import LLMProvider, is_placeholder
from .llm_schema import Candidate, RankedResult, RerankRequest, TeamContext

logger = logging.getLogger(__name__)

MAX_TEAM_SKILLS_IN_QUERY = 28


def build_query_text(query_type: str, raw_query_text: str, context: Optional[TeamContext] = None) -> str:
    """Prefix the raw query with the team's name, need and role mix."""
    raw_query_text = (raw_query_text or "").strip()
    if context is None:
        return raw_query_text
    parts = [context.team_name, f"Mode: {query_type}"]
    if context.primary_need and context.primary_need.strip():
        parts.append(f"Primary need: {context.primary_need}")
    parts.append(
        f"Current mix: FE {context.current_mix_fe}, BE {context.current_mix_be}, Other {context.current_mix_other}"
    )
    if context.skills:
        parts.append("Team skills: " + ", ".join(context.skills[:MAX_TEAM_SKILLS_IN_QUERY]))
    if raw_query_text:
        parts.append(f"Query: {raw_query_text}")
    return " | ".join(parts)


def validate_rerank_response(data: Any, known_keys: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Check a rerank body and return its usable items keyed by candidate key.

    Unknown keys, duplicate keys (after the first), non-object items
    and items without a finite ``finalScore`` are dropped.  Scores are
    clamped to ``0..100``.

    Raises:
        RerankError: If the body is not an object, carries an
            ``error``, or has no ``ranked`` list.
    """
    if not isinstance(data, dict):
        raise RerankError("rerank response is not an object")
    if data.get("error"):
        raise RerankError(f"rerank reported error: {data['error']}")
    ranked = data.get("ranked")
    if not isinstance(ranked, list):
        raise RerankError("rerank response has no 'ranked' list")
    known = set(known_keys)
    items: Dict[str, Dict[str, Any]] = {}
    for item in ranked:
        if not isinstance(item, dict):
            logger.warning("Dropping non-object rerank item: %r", item)
            continue
        key = item.get("key")
        if not isinstance(key, str) or key not in known:
            logger.warning("Dropping rerank item with unknown key %r", key)
            continue
        if key in items:
            logger.debug("Ignoring duplicate rerank item for key %s", key)
            continue
        score = item.get("finalScore")
        if isinstance(score, bool) or not isinstance(score, (int, float)) or not math.isfinite(score):
            logger.warning("Dropping rerank item %s without a usable finalScore", key)
            continue
        items[key] = dict(item, finalScore=min(max(float(score), 0.0), 100.0))
    return items


def _call_with_timeout(provider: LLMProvider, request: RerankRequest, timeout: float) -> Any:
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(provider.rerank, request)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            raise RerankError(f"rerank timed out after {timeout}s") from exc
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def rerank(
    query_type: str,
    query_text: str,
    candidates: Iterable[Candidate],
    provider: Optional[LLMProvider],
    context: Optional[TeamContext] = None,
    settings: Optional[RerankSettings] = None,
    cancel_event: Optional[threading.Event] = None,
) -> List[RankedResult]:
    """Rerank baseline candidates with an LLM, falling back to the baseline.

    Args:
        query_type: What is being ranked, e.g. ``"auto_assign_team"``.
        query_text: Free-text description of the need.
        candidates: Candidates with baseline scores.  They are put into
            baseline order first, so callers need not pre-sort.
        provider: LLM provider, or ``None`` to skip reranking.
        context: Optional team context for balance-aware ranking.
        settings: Rerank settings; defaults apply when omitted.
        cancel_event: When already set, reranking is skipped.

    Returns:
        One :class:`RankedResult` per candidate.  Never raises.
    """
    settings = settings or RerankSettings()
    baseline = rank_candidates(candidates)
    if not baseline:
        return []
    if not settings.enabled or is_placeholder(provider):
        return baseline_results(baseline, BASELINE_ONLY)
    if cancel_event is not None and cancel_event.is_set():
        return baseline_results(baseline, BASELINE_ONLY)

    head = baseline[: settings.top_n]
    tail = baseline[settings.top_n:]
    try:
        request = RerankRequest(
            query_type=query_type,
            query_text=build_query_text(query_type, query_text, context),
            candidates=head,
            context=context,
            top_n=len(head),
            with_reasons=settings.with_reasons,
        )
        data = _call_with_timeout(provider, request, settings.timeout_seconds)
        items = validate_rerank_response(data, (c.key for c in head))
        results = reconcile(head, items, settings.llm_weight, query_type, context)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Rerank unavailable for %s, using baseline order: %s", query_type, exc)
        return baseline_results(baseline, RERANK_UNAVAILABLE)

    logger.debug("Reranked %d of %d candidates for %s", len(items), len(baseline), query_type)
    # Equal scores keep baseline order.
    position: Dict[str, int] = {}
    for index, candidate in enumerate(baseline):
        position.setdefault(candidate.key, index)
    merged = results + baseline_results(tail, BASELINE_ONLY)
    merged.sort(key=lambda r: (-r.final_score, position[r.key]))
    return merged
