"""
Concept Queue - next concept and phrasing to present.

Concepts are ordered exactly like flat items (see item_builder), reading the
memory state embedded under ``fsrs``. A concept is only presented together
with one of its active phrasings; concepts without one are skipped.
"""

from __future__ import annotations
import random
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from recall.fsrs.constants import (
    MAX_CONCEPT_CANDIDATES,
    MAX_PHRASINGS,
    ItemStatus,
)
from recall.fsrs.memory_state import ItemState, ensure_utc, utc_now
from recall.fsrs.scheduler import SchedulingEngine
from recall.queue_builders.item_builder import order_candidates, recent_interactions
from recall.queue_builders.pool_types import NextReview, ScoredCandidate
from recall.queue_builders.selection_policy import SelectionOptions, select_phrasing
from recall.store import DocumentStore
from recall.store.indexes import CONCEPTS, PHRASINGS


def is_selectable(concept: Mapping[str, Any]) -> bool:
    """Concepts need at least one phrasing and must not be soft-deleted."""
    count = concept.get("phrasing_count") or 0
    return count > 0 and not concept.get("deleted_at")


def prioritize_concepts(
    concepts: Iterable[Mapping[str, Any]],
    now: Optional[datetime] = None,
    engine: Optional[SchedulingEngine] = None,
    rng: Optional[random.Random] = None
) -> list[ScoredCandidate]:
    """Selectable concepts in presentation order (urgency tier shuffled)."""
    return order_candidates(
        [c for c in concepts if is_selectable(c)],
        now,
        engine,
        rng,
        read_state=ItemState.from_concept,
    )


def fetch_concept_candidates(
    store: DocumentStore,
    owner_id: str,
    now: datetime,
    limit: int = MAX_CONCEPT_CANDIDATES
) -> list[dict]:
    """
    Due concepts, or never-practiced ones when nothing is due.

    Concepts scheduled in the future are never returned.
    """
    due = (
        store.query(CONCEPTS)
        .with_index("by_owner_next_review", owner_id=owner_id)
        .lte("fsrs.next_review_at", now)
        .where(deleted_at=None)
        .take(limit)
    )
    if due:
        return due

    return (
        store.query(CONCEPTS)
        .with_index("by_owner_state", owner_id=owner_id, fsrs__state=ItemStatus.NEW.value)
        .where(deleted_at=None)
        .take(limit)
    )


def active_phrasings(
    store: DocumentStore,
    owner_id: str,
    concept_id: str,
    limit: int = MAX_PHRASINGS
) -> list[dict]:
    return (
        store.query(PHRASINGS)
        .with_index("by_concept", concept_id=concept_id)
        .where(owner_id=owner_id, archived_at=None, deleted_at=None)
        .take(limit)
    )


def get_next_concept(
    store: DocumentStore,
    owner_id: str,
    now: Optional[datetime] = None,
    engine: Optional[SchedulingEngine] = None,
    rng: Optional[random.Random] = None,
    exclude_phrasing_id: Optional[str] = None
) -> Optional[NextReview]:
    """
    Pick the next concept and phrasing to present.

    Args:
        store: Document store
        owner_id: Owner to schedule for
        now: Current time (defaults to now)
        engine: Memory engine (defaults to FsrsEngine)
        rng: Random source for the urgency-tier shuffle
        exclude_phrasing_id: Phrasing to avoid (typically the one just shown)

    Returns:
        NextReview with the concept document and chosen phrasing, or None
    """
    now = ensure_utc(now) if now is not None else utc_now()
    candidates = fetch_concept_candidates(store, owner_id, now)

    for candidate in prioritize_concepts(candidates, now, engine, rng):
        concept = candidate.document
        selection = select_phrasing(
            active_phrasings(store, owner_id, candidate.doc_id),
            SelectionOptions(
                canonical_phrasing_id=concept.get("canonical_phrasing_id"),
                exclude_phrasing_id=exclude_phrasing_id,
            ),
        )
        if selection.phrasing is None:
            continue

        return NextReview(
            document=concept,
            score=candidate.score,
            interactions=recent_interactions(store, owner_id, candidate.doc_id),
            phrasing=selection.phrasing,
            selection_reason=selection.reason,
        )

    return None
