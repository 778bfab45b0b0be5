"""
Ledger delta calculation.

Pure functions turning item lifecycle events into StatDeltas. The caller
applies the result with apply_stats_delta in the same transaction as the item
write.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from recall.fsrs.constants import ItemStatus
from recall.fsrs.memory_state import coerce_datetime
from recall.stats.constants import DUE_NOW, NEW, STATE_BUCKETS
from recall.stats.types import StatDeltas


def bucket_for(state: Any) -> str:
    """Counter field for a state; unknown or missing states count as new."""
    if isinstance(state, ItemStatus):
        state = state.value
    return STATE_BUCKETS.get(state, NEW)


def is_due_at(next_review_at: Any, now: datetime) -> bool:
    """Items without a next review time are always due."""
    when = coerce_datetime(next_review_at)
    return when is None or when <= now


def creation_delta() -> StatDeltas:
    """A new item: one more card, new, and due immediately."""
    return StatDeltas(total_cards=1, new_count=1, due_now_count=1)


def transition_delta(old_state: Any, new_state: Any) -> StatDeltas:
    """
    Move one card between buckets.

    Returns an empty delta when both states share a bucket (e.g. learning to
    relearning).
    """
    old_bucket = bucket_for(old_state)
    new_bucket = bucket_for(new_state)
    if old_bucket == new_bucket:
        return StatDeltas()
    return StatDeltas().bump(old_bucket, -1).bump(new_bucket, 1)


def due_crossing_delta(
    old_next_review: Any,
    new_next_review: Any,
    now: datetime
) -> StatDeltas:
    """-1 when an item leaves the due set, +1 when it enters it."""
    was_due = is_due_at(old_next_review, now)
    is_due = is_due_at(new_next_review, now)
    if was_due and not is_due:
        return StatDeltas(due_now_count=-1)
    if not was_due and is_due:
        return StatDeltas(due_now_count=1)
    return StatDeltas()


def review_delta(
    old_state: Any,
    new_state: Any,
    old_next_review: Any,
    new_next_review: Any,
    now: datetime
) -> StatDeltas:
    """Combined bucket and due-boundary change for one scheduled response."""
    return (
        transition_delta(old_state, new_state)
        + due_crossing_delta(old_next_review, new_next_review, now)
    )


def is_counted(document: Mapping[str, Any]) -> bool:
    """Archived and soft-deleted items are excluded from the ledger."""
    return not document.get("archived_at") and not document.get("deleted_at")


def presence_delta(
    document: Mapping[str, Any],
    now: datetime,
    next_review_field: str = "next_review_at",
    state_field: str = "state"
) -> StatDeltas:
    """
    What one counted item contributes to the ledger.

    Negate it to remove the item (archive, soft-delete, permanent delete).
    """
    delta = StatDeltas(total_cards=1).bump(bucket_for(document.get(state_field)), 1)
    if is_due_at(document.get(next_review_field), now):
        delta = delta.bump(DUE_NOW, 1)
    return delta


def visibility_delta(
    before: Mapping[str, Any],
    after: Mapping[str, Any],
    now: datetime
) -> Optional[StatDeltas]:
    """
    Delta for a lifecycle change (archive/unarchive, delete/restore).

    Only changes the ledger when the item's counted-ness actually flips.
    ``after`` is ``before`` with the lifecycle fields patched.
    """
    was_counted = is_counted(before)
    now_counted = is_counted(after)
    if was_counted == now_counted:
        return None
    delta = presence_delta(before, now)
    return delta if now_counted else -delta
