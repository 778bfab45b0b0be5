"""
Tests for stats reconciliation.

Covers:
1. Bounded reads for owner sampling and item recounts
2. Drift correction above the threshold, no writes below it
3. Missing ledgers initialized from the recount
4. Per-owner failures reported as partial / failed without aborting the pass
"""

import logging
import math
import random
from datetime import timedelta

import pytest

from conftest import InMemoryDocumentStore, make_item
from recall.identity import ensure_owner
from recall.reviews import create_items, record_response
from recall.stats import get_ledger, reconcile, recalculate_owner_counts, sample_owners
from recall.stats.ledger import find_ledger_document
from recall.store.indexes import ITEMS, OWNERS, STATS_LEDGERS


OWNER = "owner-1"


class FlakyStore(InMemoryDocumentStore):
    """Fails every item read for one owner, or every owner read."""

    def __init__(self, failing_owner=None, fail_owner_reads=False):
        super().__init__()
        self.failing_owner = failing_owner
        self.fail_owner_reads = fail_owner_reads

    def run_query(self, query, limit=None, after=None):
        if self.fail_owner_reads and query.table == OWNERS:
            raise RuntimeError("owners unavailable")
        if query.table == ITEMS and ("owner_id", self.failing_owner) in query.equals:
            raise RuntimeError("simulated read failure")
        return super().run_query(query, limit, after)


def _seed_owners(store, count, t0):
    for n in range(count):
        ensure_owner(store, f"owner-{n:03d}", now=t0 + timedelta(hours=n))


def _corrupt_ledger(store, owner_id, **fields):
    ledger = find_ledger_document(store, owner_id)
    store.patch(STATS_LEDGERS, ledger["_id"], fields)


# ---- Recount ----

@pytest.mark.parametrize("item_count", [0, 199, 200, 1200, 1201])
def test_recount_reads_are_bounded_by_batches(store, t0, item_count):
    create_items(store, OWNER, [{"n": n} for n in range(item_count)], now=t0)
    store.reset_reads()

    counts = recalculate_owner_counts(store, OWNER, t0, batch_size=200)

    assert counts.total_cards == item_count
    assert counts.new_count == item_count
    assert counts.documents_read == item_count
    assert store.reads_by_table.get(ITEMS, 0) <= math.ceil(item_count / 200) * 200


def test_recount_skips_archived_deleted_and_foreign_items(store, t0):
    store.insert(ITEMS, make_item(OWNER))
    store.insert(ITEMS, make_item(OWNER, archived_at=t0))
    store.insert(ITEMS, make_item(OWNER, deleted_at=t0))
    store.insert(ITEMS, make_item("other"))

    assert recalculate_owner_counts(store, OWNER, t0).total_cards == 1


def test_recount_buckets_and_next_review_time(store, t0):
    ids = create_items(store, OWNER, [{"n": n} for n in range(3)], now=t0)
    outcome = record_response(store, OWNER, ids[0], "a", True, now=t0)

    counts = recalculate_owner_counts(store, OWNER, t0)

    assert counts.new_count == 2
    assert counts.learning_count == 1
    assert counts.due_now_count == 2
    assert counts.next_review_time == outcome.next_review_at


# ---- Sampling ----

def test_sampling_reads_stay_near_sample_size(store, t0, rng):
    _seed_owners(store, 50, t0)
    store.reset_reads()

    owners = sample_owners(store, 10, rng)

    assert len(owners) == 10
    assert len({o["_id"] for o in owners}) == 10
    assert store.reads_by_table[OWNERS] <= 2 * 10 + 2


def test_sampling_more_than_available_returns_each_owner_once(store, t0, rng):
    _seed_owners(store, 5, t0)
    store.reset_reads()

    owners = sample_owners(store, 10, rng)

    assert sorted(o["_id"] for o in owners) == [f"owner-{n:03d}" for n in range(5)]
    assert store.reads_by_table[OWNERS] <= 2 * 10 + 2


def test_sampling_reaches_every_owner_across_pivots(store, t0):
    _seed_owners(store, 50, t0)

    seen = set()
    for seed in range(60):
        seen.update(o["_id"] for o in sample_owners(store, 10, random.Random(seed)))

    assert len(seen) == 50


def test_sampling_without_owners(store, rng):
    assert sample_owners(store, 10, rng) == []
    assert sample_owners(store, 0, rng) == []


# ---- Reconcile pass ----

def test_drift_above_threshold_is_corrected(store, t0, rng):
    ensure_owner(store, OWNER, now=t0)
    create_items(store, OWNER, [{"n": n} for n in range(20)], now=t0)
    _corrupt_ledger(store, OWNER, total_cards=3, new_count=3, due_now_count=40)

    result = reconcile(store, sample_size=10, drift_threshold=5, rng=rng, now=t0)

    assert result.status == "completed"
    assert result.owners_checked == 1
    assert result.drift_detected == 1
    assert result.corrections == 1
    ledger = get_ledger(store, OWNER)
    assert ledger.total_cards == 20
    assert ledger.new_count == 20
    assert ledger.due_now_count == 20
    assert ledger.last_calculated == t0
    assert "corrected drift for 1 of 1" in result.message


def test_owner_created_through_items_is_sampled(store, t0, rng):
    create_items(store, "alice", [{"n": n} for n in range(20)], now=t0)
    _corrupt_ledger(store, "alice", total_cards=70)

    assert store.get(OWNERS, "alice") is not None

    result = reconcile(store, sample_size=10, drift_threshold=0, rng=rng, now=t0)

    assert result.owners_sampled == 1
    assert result.corrections == 1
    assert get_ledger(store, "alice").total_cards == 20


def test_drift_within_threshold_is_left_alone(store, t0, rng):
    ensure_owner(store, OWNER, now=t0)
    create_items(store, OWNER, [{"n": n} for n in range(20)], now=t0)
    _corrupt_ledger(store, OWNER, new_count=15)

    result = reconcile(store, sample_size=10, drift_threshold=5, rng=rng, now=t0)

    assert result.status == "completed"
    assert result.corrections == 0
    assert get_ledger(store, OWNER).new_count == 15
    assert result.message == "All 1 owners have accurate stats"


def test_missing_ledger_is_initialized(store, t0, rng):
    ensure_owner(store, OWNER, now=t0)
    for _ in range(3):
        store.insert(ITEMS, make_item(OWNER))

    result = reconcile(store, sample_size=10, rng=rng, now=t0)

    assert result.corrections == 1
    assert result.drift_detected == 0
    assert get_ledger(store, OWNER).total_cards == 3


def test_owner_without_items_gets_no_ledger(store, t0, rng):
    ensure_owner(store, OWNER, now=t0)

    result = reconcile(store, sample_size=10, rng=rng, now=t0)

    assert result.corrections == 0
    assert get_ledger(store, OWNER) is None


def test_no_owners(store, rng):
    result = reconcile(store, sample_size=10, rng=rng)

    assert result.status == "completed"
    assert result.owners_sampled == 0
    assert result.message == "No owners found"


def test_one_failing_owner_yields_partial(t0, rng, caplog):
    store = FlakyStore(failing_owner="owner-001")
    _seed_owners(store, 3, t0)
    for n in range(3):
        owner_id = f"owner-{n:03d}"
        create_items(store, owner_id, [{"n": i} for i in range(10)], now=t0)
        _corrupt_ledger(store, owner_id, total_cards=0, new_count=0)

    with caplog.at_level(logging.ERROR, logger="recall.stats.reconcile"):
        result = reconcile(store, sample_size=10, rng=rng, now=t0)

    assert result.status == "partial"
    assert result.owners_checked == 3
    assert result.errors == 1
    assert result.failed_owner_ids == ["owner-001"]
    assert result.corrections == 2
    assert get_ledger(store, "owner-000").total_cards == 10
    assert get_ledger(store, "owner-001").total_cards == 0
    assert "Error reconciling owner owner-001" in caplog.text


def test_every_owner_failing_yields_failed(t0, rng):
    store = FlakyStore(failing_owner=OWNER)
    ensure_owner(store, OWNER, now=t0)

    result = reconcile(store, sample_size=10, rng=rng, now=t0)

    assert result.status == "failed"
    assert result.errors == 1


def test_sampling_failure_yields_failed(t0, rng):
    store = FlakyStore(fail_owner_reads=True)

    result = reconcile(store, sample_size=10, rng=rng, now=t0)

    assert result.status == "failed"
    assert result.owners_sampled == 0
