"""
Abstract Document Store

Defines the storage interface the scheduling services depend on.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, Mapping, Optional

from recall.store.query import CursorPosition, Query


def new_id() -> str:
    """Generate a document id."""
    return uuid.uuid4().hex


class DocumentStore(ABC):
    """
    Abstract base class for document stores.

    Subclasses should implement:
    - get() / insert() / patch() / delete()
    - run_query()
    - transaction()
    """

    def query(self, table: str) -> Query:
        """Start an index-backed query on a collection."""
        return Query(store=self, table=table)

    @abstractmethod
    def get(self, table: str, doc_id: str) -> Optional[dict]:
        """Fetch one document by id, or None."""
        pass

    @abstractmethod
    def insert(self, table: str, document: Mapping[str, Any]) -> str:
        """
        Insert a document.

        Assigns ``_id`` when the document has none.

        Returns:
            The document id
        """
        pass

    @abstractmethod
    def patch(self, table: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        """Set the given top-level fields on an existing document."""
        pass

    @abstractmethod
    def delete(self, table: str, doc_id: str) -> None:
        """Remove a document permanently."""
        pass

    @abstractmethod
    def run_query(
        self,
        query: Query,
        limit: Optional[int] = None,
        after: Optional[CursorPosition] = None
    ) -> list[dict]:
        """
        Execute a query in index order.

        Args:
            query: Query built with query()
            limit: Maximum documents to return (None = no limit)
            after: Keyset position to resume after
        """
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager["DocumentStore"]:
        """
        Context manager yielding a store whose writes commit together.

        Writes are discarded if the block raises.
        """
        pass
