"""
Phrasing selection policy.

Chooses which phrasing of a concept to present. Pure function of the phrasing
set and options; no I/O.

Order of preference:
1. canonical  - the concept's designated phrasing, if still active
2. least-seen - fewest attempts, then oldest last attempt, then oldest created
3. random     - uniform pick, only when least-seen is disabled
4. none       - no active phrasing; the concept must not be presented
"""

from __future__ import annotations
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from recall.fsrs.memory_state import coerce_datetime
from recall.queue_builders.pool_types import PhrasingSelection

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class SelectionOptions:
    canonical_phrasing_id: Optional[str] = None
    exclude_phrasing_id: Optional[str] = None  # e.g. the phrasing just shown
    prefer_least_seen: bool = True
    rng: Optional[random.Random] = None


def is_active(phrasing: Mapping[str, Any]) -> bool:
    return not phrasing.get("archived_at") and not phrasing.get("deleted_at")


def _attempts(phrasing: Mapping[str, Any]) -> int:
    value = phrasing.get("attempt_count")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def _least_seen_key(phrasing: Mapping[str, Any]) -> tuple:
    # Never-attempted and undated phrasings sort first, like epoch 0
    last_attempted = coerce_datetime(phrasing.get("last_attempted_at")) or _EPOCH
    created = coerce_datetime(phrasing.get("created_at")) or _EPOCH
    return (_attempts(phrasing), last_attempted, created)


def select_phrasing(
    phrasings: Iterable[Mapping[str, Any]],
    options: Optional[SelectionOptions] = None
) -> PhrasingSelection:
    """
    Pick one phrasing to present.

    Args:
        phrasings: Candidate phrasing documents (inactive ones are ignored)
        options: Canonical id, exclusion, least-seen toggle and random source

    Returns:
        PhrasingSelection with the phrasing (or None) and the reason
    """
    options = options or SelectionOptions()

    active = [
        p for p in phrasings
        if isinstance(p, Mapping)
        and is_active(p)
        and not (options.exclude_phrasing_id and p.get("_id") == options.exclude_phrasing_id)
    ]
    if not active:
        return PhrasingSelection(phrasing=None, reason="none")

    if options.canonical_phrasing_id:
        for phrasing in active:
            if phrasing.get("_id") == options.canonical_phrasing_id:
                return PhrasingSelection(phrasing=dict(phrasing), reason="canonical")

    if options.prefer_least_seen:
        head = min(active, key=_least_seen_key)
        return PhrasingSelection(phrasing=dict(head), reason="least-seen")

    rand = options.rng.random if options.rng is not None else random.random
    index = min(int(rand() * len(active)), len(active) - 1)
    return PhrasingSelection(phrasing=dict(active[index]), reason="random")
