"""
Tests for bulk item operations.

Each operation validates every id before writing anything: a single missing
or foreign id leaves the store and the ledger exactly as they were.
"""

import pytest

from conftest import make_item
from recall.errors import BulkValidationError, ItemNotFoundError, UnauthorizedItemError
from recall.items_bulk import (
    archive_items,
    permanently_delete_items,
    restore_items,
    soft_delete_items,
    unarchive_items,
)
from recall.reviews import create_items
from recall.stats import get_card_stats
from recall.store.indexes import ITEMS, STATS_LEDGERS
from recall.validation import require_owned, unique_ids


OWNER = "owner-1"
OTHER = "owner-2"

OPERATIONS = [
    archive_items,
    unarchive_items,
    soft_delete_items,
    restore_items,
    permanently_delete_items,
]


@pytest.fixture
def seeded(store, t0):
    mine = create_items(store, OWNER, [{"n": n} for n in range(3)], now=t0)
    [theirs] = create_items(store, OTHER, [{"n": 0}], now=t0)
    return mine, theirs


def _snapshot(store):
    return store.all(ITEMS), store.all(STATS_LEDGERS)


# ---- All-or-nothing ----

@pytest.mark.parametrize("operation", OPERATIONS)
def test_missing_id_changes_nothing(store, t0, seeded, operation):
    mine, _ = seeded
    before = _snapshot(store)

    with pytest.raises(ItemNotFoundError) as excinfo:
        operation(store, OWNER, mine + ["missing-id"], now=t0)

    assert str(excinfo.value) == "Item not found: missing-id"
    assert excinfo.value.doc_id == "missing-id"
    assert _snapshot(store) == before


@pytest.mark.parametrize("operation", OPERATIONS)
def test_foreign_id_changes_nothing(store, t0, seeded, operation):
    mine, theirs = seeded
    before = _snapshot(store)

    with pytest.raises(UnauthorizedItemError) as excinfo:
        operation(store, OWNER, [theirs] + mine, now=t0)

    assert str(excinfo.value) == f"Unauthorized access to item: {theirs}"
    assert _snapshot(store) == before


def test_errors_are_value_errors():
    assert issubclass(ItemNotFoundError, BulkValidationError)
    assert issubclass(UnauthorizedItemError, ValueError)


def test_failure_inside_transaction_rolls_back(store, t0, seeded, monkeypatch):
    mine, _ = seeded
    before = _snapshot(store)
    original_patch = store.patch
    calls = []

    def failing_patch(table, doc_id, fields):
        calls.append(doc_id)
        if len(calls) == 2:
            raise RuntimeError("write failed")
        original_patch(table, doc_id, fields)

    monkeypatch.setattr(store, "patch", failing_patch)

    with pytest.raises(RuntimeError):
        archive_items(store, OWNER, mine, now=t0)

    assert _snapshot(store) == before


# ---- Lifecycle ----

def test_archive_is_idempotent(store, t0, seeded):
    mine, _ = seeded

    assert archive_items(store, OWNER, mine[:2], now=t0) == 2
    first = get_card_stats(store, OWNER)
    assert first.total_cards == 1

    assert archive_items(store, OWNER, mine[:2], now=t0) == 2
    assert get_card_stats(store, OWNER).total_cards == first.total_cards


def test_duplicate_ids_are_ignored(store, t0, seeded):
    mine, _ = seeded

    count = soft_delete_items(store, OWNER, [mine[0], mine[0], mine[1]], now=t0)

    assert count == 2
    ledger = get_card_stats(store, OWNER)
    assert ledger.total_cards == 1
    assert ledger.new_count == 1


def test_unarchive_and_restore_bring_items_back(store, t0, seeded):
    mine, _ = seeded
    archive_items(store, OWNER, mine, now=t0)
    soft_delete_items(store, OWNER, mine[:1], now=t0)

    unarchive_items(store, OWNER, mine, now=t0)
    assert get_card_stats(store, OWNER).total_cards == 2

    restore_items(store, OWNER, mine[:1], now=t0)
    assert get_card_stats(store, OWNER).total_cards == 3

    item = store.get(ITEMS, mine[0])
    assert item["archived_at"] is None
    assert item["deleted_at"] is None
    assert item["updated_at"] == t0


def test_permanent_delete_removes_documents(store, t0, seeded):
    mine, theirs = seeded
    soft_delete_items(store, OWNER, mine[:1], now=t0)

    assert permanently_delete_items(store, OWNER, mine[:2], now=t0) == 2

    assert store.get(ITEMS, mine[0]) is None
    assert store.get(ITEMS, mine[1]) is None
    assert store.get(ITEMS, theirs) is not None
    ledger = get_card_stats(store, OWNER)
    assert ledger.total_cards == 1
    assert get_card_stats(store, OTHER).total_cards == 1


def test_empty_request_is_a_no_op(store, t0, seeded):
    before = _snapshot(store)
    assert archive_items(store, OWNER, [], now=t0) == 0
    assert _snapshot(store) == before


# ---- Validation helpers ----

def test_unique_ids_keeps_first_seen_order():
    assert unique_ids(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


def test_require_owned_labels_errors(store):
    store.insert(ITEMS, make_item(OTHER, _id="x"))

    with pytest.raises(UnauthorizedItemError, match="Unauthorized access to concept: x"):
        require_owned(store, ITEMS, "x", OWNER, kind="Concept")
    with pytest.raises(ItemNotFoundError, match="Concept not found: y"):
        require_owned(store, ITEMS, "y", OWNER, kind="Concept")
