"""
Storage layer.

Services talk to a DocumentStore; MongoDocumentStore is the production
implementation. Queries always go through a declared index (see indexes.py).
"""

from recall.store.base import DocumentStore, new_id
from recall.store.query import Page, Query, CursorPosition, get_path, ASC, DESC
from recall.store import indexes

__all__ = [
    "DocumentStore",
    "new_id",
    "Page",
    "Query",
    "CursorPosition",
    "get_path",
    "ASC",
    "DESC",
    "indexes",
]
