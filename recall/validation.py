"""
Ownership validation for write paths.

Bulk operations fetch every document, validate every document, and only then
mutate. A single failure raises before any write happens.
"""

from __future__ import annotations

from typing import Iterable

from recall.errors import ItemNotFoundError, UnauthorizedItemError
from recall.store import DocumentStore
from recall.store.indexes import ITEMS


def unique_ids(doc_ids: Iterable[str]) -> list[str]:
    """Drop repeated ids, keeping first-seen order."""
    return list(dict.fromkeys(doc_ids))


def require_owned(
    store: DocumentStore,
    table: str,
    doc_id: str,
    owner_id: str,
    kind: str = "Item"
) -> dict:
    """
    Fetch one document the owner must own.

    Raises:
        ItemNotFoundError: If the document does not exist
        UnauthorizedItemError: If another owner owns it
    """
    document = store.get(table, doc_id)
    if document is None:
        raise ItemNotFoundError(doc_id, kind)
    if document.get("owner_id") != owner_id:
        raise UnauthorizedItemError(doc_id, kind.lower())
    return document


def validate_bulk_ownership(
    store: DocumentStore,
    owner_id: str,
    doc_ids: Iterable[str],
    table: str = ITEMS,
    kind: str = "Item"
) -> list[dict]:
    """
    Fetch and validate all documents before any mutation.

    Args:
        store: Document store (the transaction-bound one)
        owner_id: Owner every document must belong to
        doc_ids: Ids to validate (duplicates are ignored)
        table: Collection holding the documents
        kind: Label used in error messages

    Returns:
        The validated documents, in request order

    Raises:
        ItemNotFoundError / UnauthorizedItemError: For the first failing id
    """
    ids = unique_ids(doc_ids)
    documents = [store.get(table, doc_id) for doc_id in ids]

    for doc_id, document in zip(ids, documents):
        if document is None:
            raise ItemNotFoundError(doc_id, kind)
        if document.get("owner_id") != owner_id:
            raise UnauthorizedItemError(doc_id, kind.lower())

    return documents
