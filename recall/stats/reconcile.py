"""
Stats Reconciliation - sampled drift detection and correction.

Runs out of band (see scripts/maintenance/reconcile_stats.py):
1. Sample owners around a random creation-time pivot (about 2x sample reads)
2. Recount each owner's counted items in fixed-size keyset-paginated batches
3. Overwrite the ledger when any bucket drifts beyond the threshold

Per-owner failures are logged and counted; they never abort the pass.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Iterable, Optional

from recall.fsrs.memory_state import coerce_datetime, ensure_utc, utc_now
from recall.stats.constants import (
    DEFAULT_DRIFT_THRESHOLD,
    DEFAULT_SAMPLE_SIZE,
    DRIFT_FIELDS,
    ITEM_BATCH_SIZE,
    OWNER_SAMPLE_FALLBACK_LIMIT,
)
from recall.stats.deltas import bucket_for, is_due_at
from recall.stats.ledger import find_ledger_document, write_ledger
from recall.stats.types import OwnerCounts, OwnerOutcome, ReconcileResult
from recall.store import DocumentStore, DESC
from recall.store.indexes import ITEMS, OWNERS

logger = logging.getLogger(__name__)


# ---- Owner sampling ----

def _created_at(owner: dict) -> Optional[datetime]:
    return coerce_datetime(owner.get("created_at"))


def _append_unique(target: list[dict], source: Iterable[dict], seen: set, limit: int) -> None:
    for owner in source:
        if len(target) >= limit:
            return
        if owner["_id"] in seen:
            continue
        seen.add(owner["_id"])
        target.append(owner)


def sample_owners(
    store: DocumentStore,
    sample_size: int,
    rng: Optional[random.Random] = None
) -> list[dict]:
    """
    Draw a roughly uniform owner sample without loading every owner.

    Picks a random pivot between the oldest and newest creation time, takes
    owners from the pivot forward, then wraps to the start of the index.

    Args:
        store: Document store
        sample_size: Maximum owners to return
        rng: Random source for the pivot

    Returns:
        Up to sample_size distinct owner documents
    """
    if sample_size <= 0:
        return []

    by_created = store.query(OWNERS).with_index("by_creation_time")
    first = by_created.first()
    if first is None:
        return []
    last = by_created.order(DESC).first() or first

    oldest = _created_at(first)
    newest = _created_at(last)
    if oldest is None or newest is None:
        # No usable timestamps to pivot on
        return by_created.take(sample_size)

    span = max(0.0, (newest - oldest).total_seconds())
    rand = rng.random if rng is not None else random.random
    pivot = oldest + (newest - oldest) * rand() if span > 0 else oldest

    sampled: list[dict] = []
    seen: set = set()

    _append_unique(sampled, by_created.gte("created_at", pivot).take(sample_size), seen, sample_size)

    if len(sampled) < sample_size:
        wrap = by_created.lt("created_at", pivot).take(sample_size - len(sampled))
        _append_unique(sampled, wrap, seen, sample_size)

    if len(sampled) < sample_size:
        fallback = by_created.take(min(OWNER_SAMPLE_FALLBACK_LIMIT, sample_size - len(sampled)))
        _append_unique(sampled, fallback, seen, sample_size)

    return sampled or [first]


# ---- Recount ----

def accumulate(documents: Iterable[dict], counts: OwnerCounts, now: datetime) -> None:
    """Add one batch of counted items to the running totals."""
    for document in documents:
        counts.documents_read += 1
        counts.total_cards += 1
        bucket = bucket_for(document.get("state"))
        setattr(counts, bucket, getattr(counts, bucket) + 1)

        next_review = coerce_datetime(document.get("next_review_at"))
        if is_due_at(next_review, now):
            counts.due_now_count += 1
        elif counts.next_review_time is None or next_review < counts.next_review_time:
            counts.next_review_time = next_review


def recalculate_owner_counts(
    store: DocumentStore,
    owner_id: str,
    now: Optional[datetime] = None,
    batch_size: int = ITEM_BATCH_SIZE
) -> OwnerCounts:
    """
    Recount an owner's non-archived, non-deleted items.

    Reads proceed in batches of batch_size through keyset cursors, so total
    reads are bounded by ceil(items / batch_size) * batch_size and concurrent
    writes never break the scan.
    """
    now = ensure_utc(now) if now is not None else utc_now()
    query = (
        store.query(ITEMS)
        .with_index("by_owner", owner_id=owner_id)
        .where(deleted_at=None, archived_at=None)
    )

    counts = OwnerCounts()
    page = query.paginate(cursor=None, num_items=batch_size)
    accumulate(page.page, counts, now)
    while not page.is_done:
        page = query.paginate(cursor=page.continue_cursor, num_items=batch_size)
        accumulate(page.page, counts, now)

    return counts


def measure_drift(ledger: dict, counts: OwnerCounts) -> dict[str, int]:
    return {
        name: abs(int(ledger.get(name) or 0) - getattr(counts, name))
        for name in DRIFT_FIELDS
    }


def _ledger_values(counts: OwnerCounts, now: datetime) -> dict:
    return {
        "total_cards": counts.total_cards,
        "new_count": counts.new_count,
        "learning_count": counts.learning_count,
        "mature_count": counts.mature_count,
        "due_now_count": counts.due_now_count,
        "next_review_time": counts.next_review_time,
        "last_calculated": now,
    }


# ---- Pass ----

def reconcile_owner(
    store: DocumentStore,
    owner_id: str,
    drift_threshold: int = DEFAULT_DRIFT_THRESHOLD,
    now: Optional[datetime] = None
) -> OwnerOutcome:
    """
    Recount one owner and correct the ledger if needed.

    Returns:
        "accurate", "initialized" (ledger was missing) or "corrected"
    """
    now = ensure_utc(now) if now is not None else utc_now()
    ledger = find_ledger_document(store, owner_id)
    counts = recalculate_owner_counts(store, owner_id, now)

    if ledger is None:
        if counts.total_cards == 0:
            return "accurate"
        write_ledger(store, owner_id, _ledger_values(counts, now))
        logger.info("Initialized missing stats ledger for owner %s", owner_id)
        return "initialized"

    drift = measure_drift(ledger, counts)
    if max(drift.values()) <= drift_threshold:
        return "accurate"

    logger.warning("Drift detected for owner %s: %s", owner_id, drift)
    write_ledger(store, owner_id, _ledger_values(counts, now), existing=ledger)
    return "corrected"


def reconcile(
    store: DocumentStore,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    drift_threshold: int = DEFAULT_DRIFT_THRESHOLD,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None
) -> ReconcileResult:
    """
    Run one reconciliation pass.

    Args:
        store: Document store
        sample_size: Owners to check
        drift_threshold: Largest tolerated per-bucket difference
        rng: Random source for owner sampling
        now: Reference time for due counts

    Returns:
        ReconcileResult with status completed (no failures), partial (some
        owners failed) or failed (every owner failed, or sampling failed)
    """
    now = ensure_utc(now) if now is not None else utc_now()
    result = ReconcileResult()
    logger.info(
        "Reconciliation started (sample_size=%d, drift_threshold=%d)",
        sample_size,
        drift_threshold,
    )

    try:
        owners = sample_owners(store, sample_size, rng)
    except Exception:
        logger.exception("Owner sampling failed")
        result.status = "failed"
        return result

    result.owners_sampled = len(owners)
    if not owners:
        logger.info("No owners to reconcile")
        return result

    for owner in owners:
        owner_id = str(owner["_id"])
        result.owners_checked += 1
        try:
            with store.transaction() as tx:
                outcome = reconcile_owner(tx, owner_id, drift_threshold, now)
        except Exception:
            result.errors += 1
            result.failed_owner_ids.append(owner_id)
            logger.exception("Error reconciling owner %s", owner_id)
            continue

        if outcome == "corrected":
            result.drift_detected += 1
        if outcome != "accurate":
            result.corrections += 1

    if result.errors == 0:
        result.status = "completed"
    elif result.errors < result.owners_checked:
        result.status = "partial"
    else:
        result.status = "failed"

    logger.info("Reconciliation %s: %s", result.status, result.message)
    return result
