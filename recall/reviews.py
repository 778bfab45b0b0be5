"""
Review Service - item creation and response recording.

Main workflow for a response:
1. Load and validate the item
2. Schedule the outcome with the memory engine
3. Insert the interaction, patch the item, apply the ledger delta

Step 3 happens in one store transaction so the ledger never sees half of a
review.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from recall.fsrs.constants import DEFAULT_REPLAY_LIMIT, ItemStatus
from recall.fsrs.memory_state import ItemState, ensure_utc, utc_now
from recall.fsrs.replay import ReplayResult, replay_interactions
from recall.fsrs.scheduler import FsrsEngine, ScheduleResult, SchedulingEngine
from recall.schemas import Interaction, InteractionSnapshot, MemoryFields, MemoryItem
from recall.stats.deltas import creation_delta, is_counted, review_delta
from recall.stats.ledger import apply_stats_delta
from recall.stats.types import StatDeltas
from recall.store import DocumentStore
from recall.store.indexes import INTERACTIONS, ITEMS
from recall.validation import require_owned

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReviewOutcome:
    """What the caller shows after a response."""
    subject_id: str
    interaction_id: str
    new_state: ItemStatus
    next_review_at: datetime
    scheduled_days: int
    interval_days: float


def build_interaction(
    owner_id: str,
    subject_id: str,
    answer: str,
    is_correct: bool,
    now: datetime,
    result: ScheduleResult,
    phrasing_id: Optional[str] = None,
    time_spent_ms: Optional[int] = None,
    session_id: Optional[str] = None
) -> Interaction:
    return Interaction(
        owner_id=owner_id,
        subject_id=subject_id,
        phrasing_id=phrasing_id,
        answer=answer,
        is_correct=is_correct,
        attempted_at=now,
        time_spent_ms=time_spent_ms,
        session_id=session_id,
        snapshot=InteractionSnapshot(
            scheduled_days=result.state.scheduled_days,
            next_state=result.state.state,
            next_review_at=result.next_review_at,
        ),
    )


def attempt_fields(document: Mapping[str, Any], is_correct: bool, now: datetime) -> dict:
    """Denormalized attempt counters after one more response."""
    return {
        "attempt_count": int(document.get("attempt_count") or 0) + 1,
        "correct_count": int(document.get("correct_count") or 0) + (1 if is_correct else 0),
        "last_attempted_at": now,
    }


# ---- Creation ----

def create_items(
    store: DocumentStore,
    owner_id: str,
    contents: Iterable[Mapping[str, Any]],
    now: Optional[datetime] = None,
    engine: Optional[SchedulingEngine] = None,
    concept_id: Optional[str] = None
) -> list[str]:
    """
    Create items in the "new" state, due immediately.

    Args:
        store: Document store
        owner_id: Owner of the new items
        contents: One content payload per item
        now: Creation time
        engine: Memory engine used to initialize state
        concept_id: Optional concept the items belong to

    Returns:
        Ids of the created items
    """
    now = ensure_utc(now) if now is not None else utc_now()
    engine = engine or FsrsEngine()
    initial = MemoryFields.from_state(engine.initialize(now))

    item_ids = []
    with store.transaction() as tx:
        total = StatDeltas()
        for content in contents:
            item = MemoryItem(
                **initial.model_dump(),
                owner_id=owner_id,
                created_at=now,
                concept_id=concept_id,
                content=dict(content),
            )
            item_ids.append(tx.insert(ITEMS, item.model_dump(by_alias=True)))
            total = total + creation_delta()

        apply_stats_delta(tx, owner_id, total, now)

    logger.debug("Created %d items for owner %s", len(item_ids), owner_id)
    return item_ids


# ---- Responses ----

def record_response(
    store: DocumentStore,
    owner_id: str,
    item_id: str,
    answer: str,
    is_correct: bool,
    now: Optional[datetime] = None,
    time_spent_ms: Optional[int] = None,
    session_id: Optional[str] = None,
    engine: Optional[SchedulingEngine] = None
) -> ReviewOutcome:
    """
    Record one response and reschedule the item.

    Archived or deleted items are still scheduled, but they no longer count
    toward the ledger, so no delta is applied for them.

    Raises:
        ItemNotFoundError: If the item does not exist
        UnauthorizedItemError: If the item belongs to another owner
    """
    now = ensure_utc(now) if now is not None else utc_now()
    engine = engine or FsrsEngine()

    with store.transaction() as tx:
        item = require_owned(tx, ITEMS, item_id, owner_id)
        previous = ItemState.from_document(item, now)
        result = engine.schedule(previous, is_correct, now)

        interaction = build_interaction(
            owner_id, item_id, answer, is_correct, now, result,
            time_spent_ms=time_spent_ms,
            session_id=session_id,
        )
        interaction_id = tx.insert(INTERACTIONS, interaction.model_dump(by_alias=True))

        tx.patch(ITEMS, item_id, {
            **attempt_fields(item, is_correct, now),
            **MemoryFields.from_state(result.state).model_dump(),
            "updated_at": now,
        })

        if is_counted(item):
            delta = review_delta(
                item.get("state"),
                result.state.state,
                item.get("next_review_at"),
                result.next_review_at,
                now,
            )
            apply_stats_delta(tx, owner_id, delta, now)

    return ReviewOutcome(
        subject_id=item_id,
        interaction_id=interaction_id,
        new_state=result.state.state,
        next_review_at=result.next_review_at,
        scheduled_days=result.state.scheduled_days,
        interval_days=result.interval_days,
    )


def rebuild_item_state(
    store: DocumentStore,
    owner_id: str,
    item_id: str,
    limit: Optional[int] = DEFAULT_REPLAY_LIMIT,
    engine: Optional[SchedulingEngine] = None
) -> ReplayResult:
    """
    Reconstruct an item's memory state from its recorded interactions.

    Replay starts from a fresh state at the item's creation time. Used for
    audits and migrations; the item itself is not modified.
    """
    item = require_owned(store, ITEMS, item_id, owner_id)
    interactions = (
        store.query(INTERACTIONS)
        .with_index("by_subject", subject_id=item_id)
        .where(owner_id=owner_id)
        .collect()
    )
    engine = engine or FsrsEngine()
    created_at = item.get("created_at")
    start = engine.initialize(ensure_utc(created_at) if isinstance(created_at, datetime) else None)
    return replay_interactions(start, interactions, limit=limit, engine=engine)
