"""
Review Queue - Strict-Priority Item Selection

Scores candidate items and picks the one to present next.

Priority (lower score = more urgent):
1. Never-practiced items: -2 (just created) rising toward -1 as they age
2. Practiced items: modeled retrievability, 0 (forgotten) to 1 (certain)

Every never-practiced item outranks every practiced item. There is no daily
limit: if 300 items are due, 300 items are due.

Ties are broken by shuffling only the most urgent tier (scores within
URGENCY_DELTA of the head), which varies the order without ever promoting a
less urgent item.
"""

from __future__ import annotations
import math
import random
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional

from recall.fsrs.constants import (
    DUE_FETCH_WINDOW,
    FRESHNESS_HALF_LIFE_HOURS,
    NEW_FETCH_WINDOW,
    RECENT_INTERACTIONS_LIMIT,
    ItemStatus,
)
from recall.fsrs.memory_state import (
    ItemState,
    coerce_datetime,
    ensure_utc,
    hours_between,
    utc_now,
)
from recall.fsrs.scheduler import FsrsEngine, SchedulingEngine
from recall.queue_builders.pool_types import NextReview, ScoredCandidate
from recall.queue_builders.pool_utils import merge_unique, shuffle_urgency_tier, sort_by_score
from recall.store import DocumentStore, DESC
from recall.store.indexes import INTERACTIONS, ITEMS

StateReader = Callable[[Mapping[str, Any], datetime], ItemState]

# Largest score a never-practiced item may get. -1 - e^(-h/24) rounds to
# exactly -1.0 for items older than about 37 days.
NEW_ITEM_SCORE_CEILING = math.nextafter(-1.0, -2.0)


def freshness_decay(hours_since_created: float) -> float:
    """
    Freshness boost from 1.0 (just created) decaying toward 0.

    Negative ages (clock skew) count as maximally fresh.
    """
    if hours_since_created < 0:
        return 1.0
    return math.exp(-hours_since_created / FRESHNESS_HALF_LIFE_HOURS)


def retrievability_score(
    document: Mapping[str, Any],
    now: datetime,
    engine: SchedulingEngine,
    read_state: StateReader = ItemState.from_document
) -> float:
    """
    Urgency score for one candidate.

    Args:
        document: Item (or concept) document
        now: Scoring time
        engine: Memory engine for practiced candidates
        read_state: Adapter from the document to its ItemState

    Returns:
        Score in [-2, -1) for never-practiced candidates, [0, 1] otherwise
    """
    state = read_state(document, now)
    if state.is_new:
        created_at = coerce_datetime(document.get("created_at"))
        hours = hours_between(created_at, now) if created_at is not None else 0.0
        return min(-1.0 - freshness_decay(hours), NEW_ITEM_SCORE_CEILING)
    return engine.get_retrievability(state, now)


def score_candidates(
    documents: Iterable[Mapping[str, Any]],
    now: datetime,
    engine: SchedulingEngine,
    read_state: StateReader = ItemState.from_document
) -> list[ScoredCandidate]:
    return [
        ScoredCandidate(document=dict(doc), score=retrievability_score(doc, now, engine, read_state))
        for doc in documents
    ]


def order_candidates(
    documents: Iterable[Mapping[str, Any]],
    now: Optional[datetime] = None,
    engine: Optional[SchedulingEngine] = None,
    rng: Optional[random.Random] = None,
    read_state: StateReader = ItemState.from_document
) -> list[ScoredCandidate]:
    """
    Full presentation order for a candidate set.

    Sorted ascending by score with the urgency tier shuffled. Every candidate
    is returned; nothing is truncated.
    """
    now = ensure_utc(now) if now is not None else utc_now()
    engine = engine or FsrsEngine()
    ordered = sort_by_score(score_candidates(documents, now, engine, read_state))
    return shuffle_urgency_tier(ordered, rng)


def select_next(
    documents: Iterable[Mapping[str, Any]],
    now: Optional[datetime] = None,
    engine: Optional[SchedulingEngine] = None,
    rng: Optional[random.Random] = None,
    read_state: StateReader = ItemState.from_document
) -> Optional[ScoredCandidate]:
    """Head of order_candidates, or None for an empty set."""
    ordered = order_candidates(documents, now, engine, rng, read_state)
    return ordered[0] if ordered else None


# ---- Store reads ----

def fetch_item_candidates(
    store: DocumentStore,
    owner_id: str,
    now: datetime,
    due_window: int = DUE_FETCH_WINDOW,
    new_window: int = NEW_FETCH_WINDOW
) -> list[dict]:
    """
    Bounded candidate fetch: most overdue items plus a few never-practiced ones.

    The windows only limit reads per call. Whatever is not fetched now is
    fetched on a later call once the head has been answered.
    """
    due = (
        store.query(ITEMS)
        .with_index("by_owner_next_review", owner_id=owner_id)
        .lte("next_review_at", now)
        .where(deleted_at=None, archived_at=None)
        .take(due_window)
    )
    new = (
        store.query(ITEMS)
        .with_index("by_owner_state", owner_id=owner_id, state=ItemStatus.NEW.value)
        .where(deleted_at=None, archived_at=None)
        .take(new_window)
    )
    return merge_unique(due, new)


def recent_interactions(
    store: DocumentStore,
    owner_id: str,
    subject_id: str,
    limit: int = RECENT_INTERACTIONS_LIMIT
) -> list[dict]:
    """Most recent interactions for a subject, newest first."""
    return (
        store.query(INTERACTIONS)
        .with_index("by_subject", subject_id=subject_id)
        .where(owner_id=owner_id)
        .order(DESC)
        .take(limit)
    )


def get_next_review(
    store: DocumentStore,
    owner_id: str,
    now: Optional[datetime] = None,
    engine: Optional[SchedulingEngine] = None,
    rng: Optional[random.Random] = None
) -> Optional[NextReview]:
    """
    Pick the next item to present for an owner.

    Args:
        store: Document store
        owner_id: Owner to schedule for
        now: Current time (defaults to now)
        engine: Memory engine (defaults to FsrsEngine)
        rng: Random source for the urgency-tier shuffle

    Returns:
        NextReview, or None when nothing is due
    """
    now = ensure_utc(now) if now is not None else utc_now()
    candidates = fetch_item_candidates(store, owner_id, now)
    head = select_next(candidates, now, engine, rng)
    if head is None:
        return None

    return NextReview(
        document=head.document,
        score=head.score,
        interactions=recent_interactions(store, owner_id, head.doc_id),
    )
