"""
Bulk Item Operations

Archive, unarchive, soft delete, restore and permanently delete many items
at once. Every operation runs in one transaction:
1. Fetch ALL items
2. Validate ALL (existence and ownership)
3. Mutate ALL and apply one combined ledger delta

Either every item changes or none does.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from recall.fsrs.memory_state import ensure_utc, utc_now
from recall.stats.deltas import is_counted, presence_delta, visibility_delta
from recall.stats.ledger import apply_stats_delta
from recall.stats.types import StatDeltas
from recall.store import DocumentStore
from recall.store.indexes import ITEMS
from recall.validation import validate_bulk_ownership


def _set_lifecycle(
    store: DocumentStore,
    owner_id: str,
    item_ids: Iterable[str],
    field_name: str,
    value: Optional[datetime],
    now: Optional[datetime]
) -> int:
    now = ensure_utc(now) if now is not None else utc_now()
    with store.transaction() as tx:
        items = validate_bulk_ownership(tx, owner_id, item_ids)

        total = StatDeltas()
        for item in items:
            fields: dict[str, Any] = {field_name: value, "updated_at": now}
            delta = visibility_delta(item, {**item, **fields}, now)
            if delta is not None:
                total = total + delta
            tx.patch(ITEMS, item["_id"], fields)

        apply_stats_delta(tx, owner_id, total, now)
    return len(items)


def archive_items(
    store: DocumentStore,
    owner_id: str,
    item_ids: Iterable[str],
    now: Optional[datetime] = None
) -> int:
    """
    Hide items from review without deleting them.

    Returns:
        Number of items archived
    """
    now = ensure_utc(now) if now is not None else utc_now()
    return _set_lifecycle(store, owner_id, item_ids, "archived_at", now, now)


def unarchive_items(
    store: DocumentStore,
    owner_id: str,
    item_ids: Iterable[str],
    now: Optional[datetime] = None
) -> int:
    """Return archived items to the review queue."""
    return _set_lifecycle(store, owner_id, item_ids, "archived_at", None, now)


def soft_delete_items(
    store: DocumentStore,
    owner_id: str,
    item_ids: Iterable[str],
    now: Optional[datetime] = None
) -> int:
    """
    Move items to the trash.

    Memory state and interaction history are preserved for restore.
    """
    now = ensure_utc(now) if now is not None else utc_now()
    return _set_lifecycle(store, owner_id, item_ids, "deleted_at", now, now)


def restore_items(
    store: DocumentStore,
    owner_id: str,
    item_ids: Iterable[str],
    now: Optional[datetime] = None
) -> int:
    """Undo soft_delete_items."""
    return _set_lifecycle(store, owner_id, item_ids, "deleted_at", None, now)


def permanently_delete_items(
    store: DocumentStore,
    owner_id: str,
    item_ids: Iterable[str],
    now: Optional[datetime] = None
) -> int:
    """
    Remove items for good. Cannot be undone.

    Items still counted by the ledger (neither archived nor deleted) are
    subtracted from it.
    """
    now = ensure_utc(now) if now is not None else utc_now()
    with store.transaction() as tx:
        items = validate_bulk_ownership(tx, owner_id, item_ids)

        total = StatDeltas()
        for item in items:
            if is_counted(item):
                total = total + -presence_delta(item, now)
            tx.delete(ITEMS, item["_id"])

        apply_stats_delta(tx, owner_id, total, now)
    return len(items)
