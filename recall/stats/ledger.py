"""
Stats Ledger - per-owner aggregate counters.

Counters are patched incrementally alongside item mutations so reads are O(1)
instead of a collection scan. Every write clamps to >= 0; the first delta for
an owner creates the row.

Duplicated or skipped deltas drift silently; the reconciler (reconcile.py)
corrects sampled owners out of band.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from recall.fsrs.memory_state import ensure_utc, utc_now
from recall.identity import ensure_owner
from recall.schemas import StatsLedger
from recall.stats.constants import COUNTER_FIELDS
from recall.stats.types import DueCount, StatDeltas
from recall.store import DocumentStore
from recall.store.indexes import STATS_LEDGERS

logger = logging.getLogger(__name__)


def find_ledger_document(store: DocumentStore, owner_id: str) -> Optional[dict]:
    return (
        store.query(STATS_LEDGERS)
        .with_index("by_owner", owner_id=owner_id)
        .first()
    )


def get_ledger(store: DocumentStore, owner_id: str) -> Optional[StatsLedger]:
    """The owner's ledger row, or None when no delta was ever applied."""
    document = find_ledger_document(store, owner_id)
    if document is None:
        return None
    return StatsLedger.model_validate(document)


def apply_stats_delta(
    store: DocumentStore,
    owner_id: str,
    delta: Optional[StatDeltas],
    now: Optional[datetime] = None
) -> Optional[StatsLedger]:
    """
    Apply signed counter changes to an owner's ledger.

    Args:
        store: Document store (pass the transaction-bound store)
        owner_id: Ledger owner
        delta: Changes to apply; None or empty is a no-op
        now: Timestamp recorded as last_calculated

    Returns:
        The ledger as written, or None for a no-op
    """
    if delta is None or delta.is_empty:
        return None

    now = ensure_utc(now) if now is not None else utc_now()
    existing = find_ledger_document(store, owner_id)
    current = existing or {}

    values = {
        name: max(0, int(current.get(name) or 0) + getattr(delta, name))
        for name in COUNTER_FIELDS
    }
    values["next_review_time"] = (
        delta.next_review_time
        if delta.next_review_time is not None
        else current.get("next_review_time")
    )
    values["last_calculated"] = now

    if existing is not None:
        store.patch(STATS_LEDGERS, existing["_id"], values)
        return StatsLedger.model_validate({**existing, **values})

    # A new ledger row means a new owner; register it so the reconciler can sample it.
    ensure_owner(store, owner_id, now)
    ledger = StatsLedger(owner_id=owner_id, **values)
    store.insert(STATS_LEDGERS, ledger.model_dump(by_alias=True))
    return ledger


def write_ledger(
    store: DocumentStore,
    owner_id: str,
    values: dict,
    existing: Optional[dict] = None
) -> StatsLedger:
    """Overwrite (or create) an owner's ledger with absolute values."""
    ledger = StatsLedger(owner_id=owner_id, **values)
    fields = ledger.model_dump(exclude={"id", "owner_id"})
    if existing is not None:
        store.patch(STATS_LEDGERS, existing["_id"], fields)
        return StatsLedger.model_validate({**existing, **fields})

    store.insert(STATS_LEDGERS, ledger.model_dump(by_alias=True))
    return ledger


def get_card_stats(store: DocumentStore, owner_id: str) -> StatsLedger:
    """Ledger counters, all zero for owners without a row."""
    return get_ledger(store, owner_id) or StatsLedger(owner_id=owner_id)


def get_due_count(store: DocumentStore, owner_id: str) -> DueCount:
    """
    Due volume from the ledger, uncapped.

    New items are always due, so they are subtracted from due_now_count and
    reported on their own.
    """
    ledger = get_ledger(store, owner_id)
    if ledger is None:
        logger.warning("Missing stats ledger for owner %s; returning zeros", owner_id)
        return DueCount(due_count=0, new_count=0)

    return DueCount(
        due_count=max(ledger.due_now_count - ledger.new_count, 0),
        new_count=ledger.new_count,
    )
