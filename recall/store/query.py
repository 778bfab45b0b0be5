"""
Index-backed query builder with cursor pagination.

Queries are immutable: every builder call returns a new Query. Terminal
methods (first, take, paginate) hand the query to the store that created it.

Ordering always follows the index: documents sort by the first index field not
pinned by an equality, then by ``_id``. Cursors are keyset cursors (the sort
value and ``_id`` of the last document returned), so a scan stays correct
while other writers insert, patch or delete documents in the same range.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field, replace
from datetime import timezone
from typing import TYPE_CHECKING, Any, Mapping, Optional

from bson import json_util

from recall.store.indexes import index_fields

if TYPE_CHECKING:
    from recall.store.base import DocumentStore


ASC = "asc"
DESC = "desc"

RANGE_OPERATORS = ("lt", "lte", "gt", "gte")

# Missing fields compare as None, which sorts before every other value
_MISSING = None

# Cursor datetimes decode as aware UTC, matching a tz_aware MongoClient
_CURSOR_JSON_OPTIONS = json_util.RELAXED_JSON_OPTIONS.with_options(tz_aware=True, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Page:
    """One page of a paginated query."""
    page: list[dict]
    continue_cursor: Optional[str]
    is_done: bool


@dataclass(frozen=True)
class CursorPosition:
    """Decoded keyset cursor."""
    value: Any
    doc_id: str


def get_path(document: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted field path, returning None when any part is missing."""
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return _MISSING
        current = current.get(part, _MISSING)
    return current


def encode_cursor(position: CursorPosition) -> str:
    payload = json_util.dumps(
        {"v": position.value, "id": position.doc_id},
        json_options=_CURSOR_JSON_OPTIONS,
    )
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> CursorPosition:
    """
    Decode a cursor produced by encode_cursor.

    Raises:
        ValueError: If the cursor is not a valid token
    """
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
        payload = json_util.loads(raw, json_options=_CURSOR_JSON_OPTIONS)
        return CursorPosition(value=payload["v"], doc_id=payload["id"])
    except (ValueError, KeyError, TypeError) as exc:
        raise ValueError(f"Invalid pagination cursor: {cursor!r}") from exc


@dataclass(frozen=True)
class Query:
    """
    Immutable query description.

    Example:
        store.query("items")
            .with_index("by_owner_next_review", owner_id=owner_id)
            .lte("next_review_at", now)
            .where(deleted_at=None, archived_at=None)
            .take(25)
    """
    store: "DocumentStore" = field(compare=False, repr=False)
    table: str
    index: Optional[str] = None
    equals: tuple[tuple[str, Any], ...] = ()
    bounds: tuple[tuple[str, str, Any], ...] = ()
    filters: tuple[tuple[str, Any], ...] = ()
    direction: str = ASC

    # ---- Builders ----

    def with_index(self, name: str, **equals: Any) -> "Query":
        """
        Select an index and pin a prefix of its fields by equality.

        Dotted fields (e.g. ``fsrs.state``) are passed with ``__`` in place of
        the dots: ``with_index("by_owner_state", owner_id=x, fsrs__state="new")``.
        """
        fields = index_fields(self.table, name)
        pinned = {key.replace("__", "."): value for key, value in equals.items()}
        prefix = fields[:len(pinned)]
        if set(pinned) != set(prefix):
            raise ValueError(
                f"Equality fields {sorted(pinned)} must be a prefix of index '{name}' {fields}"
            )
        return replace(
            self,
            index=name,
            equals=tuple((name_, pinned[name_]) for name_ in prefix),
        )

    def _bound(self, operator: str, field_name: str, value: Any) -> "Query":
        return replace(self, bounds=self.bounds + ((field_name, operator, value),))

    def lt(self, field_name: str, value: Any) -> "Query":
        return self._bound("lt", field_name, value)

    def lte(self, field_name: str, value: Any) -> "Query":
        return self._bound("lte", field_name, value)

    def gt(self, field_name: str, value: Any) -> "Query":
        return self._bound("gt", field_name, value)

    def gte(self, field_name: str, value: Any) -> "Query":
        return self._bound("gte", field_name, value)

    def where(self, **fields: Any) -> "Query":
        """Post-index equality filters (None matches missing fields)."""
        extra = tuple((key.replace("__", "."), value) for key, value in fields.items())
        return replace(self, filters=self.filters + extra)

    def order(self, direction: str) -> "Query":
        if direction not in (ASC, DESC):
            raise ValueError(f"Order must be '{ASC}' or '{DESC}', got {direction!r}")
        return replace(self, direction=direction)

    # ---- Derived properties ----

    @property
    def descending(self) -> bool:
        return self.direction == DESC

    @property
    def sort_field(self) -> Optional[str]:
        """First index field not pinned by equality (None = sort by _id only)."""
        if self.index is None:
            return None
        fields = index_fields(self.table, self.index)
        if len(self.equals) < len(fields):
            return fields[len(self.equals)]
        return None

    def position_of(self, document: Mapping[str, Any]) -> CursorPosition:
        sort_field = self.sort_field
        value = get_path(document, sort_field) if sort_field else None
        return CursorPosition(value=value, doc_id=str(document["_id"]))

    # ---- Terminal operations ----

    def take(self, limit: int) -> list[dict]:
        if limit <= 0:
            return []
        return self.store.run_query(self, limit=limit)

    def first(self) -> Optional[dict]:
        results = self.take(1)
        return results[0] if results else None

    def collect(self) -> list[dict]:
        """All matching documents. Only for bounded result sets."""
        return self.store.run_query(self, limit=None)

    def paginate(self, cursor: Optional[str] = None, num_items: int = 100) -> Page:
        """
        Fetch the next page after ``cursor``.

        Args:
            cursor: continue_cursor from the previous page, or None to start
            num_items: Page size

        Returns:
            Page with documents, the next cursor and whether the scan is done
        """
        if num_items <= 0:
            raise ValueError("num_items must be positive")

        after = decode_cursor(cursor) if cursor else None
        documents = self.store.run_query(self, limit=num_items, after=after)
        if not documents:
            return Page(page=[], continue_cursor=cursor, is_done=True)

        next_cursor = encode_cursor(self.position_of(documents[-1]))
        return Page(
            page=documents,
            continue_cursor=next_cursor,
            is_done=len(documents) < num_items,
        )


# ---- MongoDB translation ----

def build_mongo_filter(query: Query, after: Optional[CursorPosition] = None) -> dict:
    """
    Translate a query (and optional keyset position) into a MongoDB filter.
    """
    clauses: list[dict] = []

    for field_name, value in query.equals + query.filters:
        clauses.append({field_name: value})

    for field_name, operator, value in query.bounds:
        clauses.append({field_name: {f"${operator}": value}})

    if after is not None:
        clauses.append(_mongo_after_clause(query, after))

    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _mongo_after_clause(query: Query, after: CursorPosition) -> dict:
    id_op = "$lt" if query.descending else "$gt"
    sort_field = query.sort_field

    if sort_field is None:
        return {"_id": {id_op: after.doc_id}}

    # MongoDB range operators never match null, and null sorts first, so
    # null positions need their own branches.
    if after.value is None:
        if query.descending:
            return {sort_field: None, "_id": {id_op: after.doc_id}}
        return {"$or": [
            {sort_field: None, "_id": {id_op: after.doc_id}},
            {sort_field: {"$ne": None}},
        ]}

    value_op = "$lt" if query.descending else "$gt"
    branches = [
        {sort_field: {value_op: after.value}},
        {sort_field: after.value, "_id": {id_op: after.doc_id}},
    ]
    if query.descending:
        branches.append({sort_field: None})
    return {"$or": branches}


def build_mongo_sort(query: Query) -> list[tuple[str, int]]:
    direction = -1 if query.descending else 1
    sort: list[tuple[str, int]] = []
    if query.sort_field is not None:
        sort.append((query.sort_field, direction))
    sort.append(("_id", direction))
    return sort
