"""
Shared test fixtures.

InMemoryDocumentStore follows MongoDB semantics closely enough for the
services: millisecond datetimes, None matching missing fields, null values
sorting first and range operators never matching null. It counts every
document it hands out so tests can bound reads.
"""

from __future__ import annotations

import copy
import operator
import random
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Mapping, Optional

import pytest

from recall.store.base import DocumentStore, new_id
from recall.store.query import CursorPosition, Query, RANGE_OPERATORS, get_path


_COMPARATORS = dict(zip(RANGE_OPERATORS, (operator.lt, operator.le, operator.gt, operator.ge)))


def _bson_precision(value: Any) -> Any:
    """Truncate datetimes to milliseconds, as BSON storage does."""
    if isinstance(value, datetime):
        return value.replace(microsecond=(value.microsecond // 1000) * 1000)
    if isinstance(value, dict):
        return {key: _bson_precision(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_bson_precision(item) for item in value]
    return value


def _sort_value(value: Any) -> tuple:
    return (0, None) if value is None else (1, value)


class InMemoryDocumentStore(DocumentStore):

    def __init__(self):
        self.tables: dict[str, dict[str, dict]] = {}
        self.reads = 0
        self.reads_by_table: dict[str, int] = {}
        self.in_transaction = False

    def _table(self, table: str) -> dict[str, dict]:
        return self.tables.setdefault(table, {})

    def _count(self, table: str, amount: int) -> None:
        self.reads += amount
        self.reads_by_table[table] = self.reads_by_table.get(table, 0) + amount

    def reset_reads(self) -> None:
        self.reads = 0
        self.reads_by_table = {}

    def all(self, table: str) -> list[dict]:
        """Uncounted raw access for assertions."""
        return [copy.deepcopy(doc) for doc in self._table(table).values()]

    # ---- DocumentStore ----

    def get(self, table: str, doc_id: str) -> Optional[dict]:
        document = self._table(table).get(doc_id)
        if document is None:
            return None
        self._count(table, 1)
        return copy.deepcopy(document)

    def insert(self, table: str, document: Mapping[str, Any]) -> str:
        payload = _bson_precision(copy.deepcopy(dict(document)))
        payload.setdefault("_id", new_id())
        if payload["_id"] in self._table(table):
            raise KeyError(f"Duplicate _id in {table}: {payload['_id']}")
        self._table(table)[payload["_id"]] = payload
        return payload["_id"]

    def patch(self, table: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        document = self._table(table).get(doc_id)
        if document is None:
            raise KeyError(f"{table} document not found: {doc_id}")
        document.update(_bson_precision(copy.deepcopy(dict(fields))))

    def delete(self, table: str, doc_id: str) -> None:
        self._table(table).pop(doc_id, None)

    def _matches(self, query: Query, document: dict, after: Optional[CursorPosition]) -> bool:
        for field_name, expected in query.equals + query.filters:
            if get_path(document, field_name) != expected:
                return False

        for field_name, op, bound in query.bounds:
            value = get_path(document, field_name)
            if value is None or not _COMPARATORS[op](value, bound):
                return False

        if after is not None:
            sort_field = query.sort_field
            value = get_path(document, sort_field) if sort_field else None
            key = (_sort_value(value), document["_id"])
            position = (_sort_value(after.value), after.doc_id)
            if query.descending:
                return key < position
            return key > position

        return True

    def run_query(
        self,
        query: Query,
        limit: Optional[int] = None,
        after: Optional[CursorPosition] = None
    ) -> list[dict]:
        sort_field = query.sort_field
        matched = [
            doc for doc in self._table(query.table).values()
            if self._matches(query, doc, after)
        ]
        matched.sort(
            key=lambda doc: (
                _sort_value(get_path(doc, sort_field) if sort_field else None),
                doc["_id"],
            ),
            reverse=query.descending,
        )
        if limit is not None:
            matched = matched[:limit]
        self._count(query.table, len(matched))
        return [copy.deepcopy(doc) for doc in matched]

    @contextmanager
    def transaction(self) -> Iterator["InMemoryDocumentStore"]:
        if self.in_transaction:
            yield self
            return

        snapshot = copy.deepcopy(self.tables)
        self.in_transaction = True
        try:
            yield self
        except BaseException:
            self.tables = snapshot
            raise
        finally:
            self.in_transaction = False


# ---- Fixtures ----

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


def make_item(
    owner_id: str,
    state: str = "new",
    reps: int = 0,
    created_at: datetime = T0,
    next_review_at: Optional[datetime] = T0,
    stability: float = 0.0,
    difficulty: float = 0.0,
    last_review_at: Optional[datetime] = None,
    **extra: Any
) -> dict:
    """Raw item document for seeding the store directly."""
    document = {
        "_id": new_id(),
        "owner_id": owner_id,
        "created_at": created_at,
        "state": state,
        "stability": stability,
        "difficulty": difficulty,
        "elapsed_days": 0,
        "scheduled_days": 0,
        "reps": reps,
        "lapses": 0,
        "last_review_at": last_review_at,
        "next_review_at": next_review_at,
        "attempt_count": reps,
        "correct_count": reps,
        "archived_at": None,
        "deleted_at": None,
    }
    document.update(extra)
    return document


def make_review_item(owner_id: str, now: datetime, days_overdue: float, stability: float = 5.0) -> dict:
    """A practiced item in review state, overdue by the given days."""
    return make_item(
        owner_id,
        state="review",
        reps=3,
        created_at=now - timedelta(days=60),
        next_review_at=now - timedelta(days=days_overdue),
        last_review_at=now - timedelta(days=days_overdue + stability),
        stability=stability,
        difficulty=5.0,
    )
