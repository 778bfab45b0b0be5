"""
MongoDB document store.

Connection settings come from the environment (loaded from .env):
- MONGO_URI: connection string (required)
- MONGO_DB_NAME: database name (default: recall_scheduler)
- TEST_MODE: "true" appends "_test" to the database name
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional

from dotenv import load_dotenv
from pymongo import ASCENDING, MongoClient
from pymongo.client_session import ClientSession
from pymongo.database import Database

from recall.store.base import DocumentStore, new_id
from recall.store.indexes import INDEXES
from recall.store.query import (
    CursorPosition,
    Query,
    build_mongo_filter,
    build_mongo_sort,
)

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "recall_scheduler"

# Global connection pool (reused across requests)
_client: Optional[MongoClient] = None


# ---- Configuration ----

def get_mongo_uri() -> str:
    mongo_uri = os.getenv("MONGO_URI")
    if not mongo_uri:
        raise ValueError("MONGO_URI not found in environment variables")
    return mongo_uri


def is_test_mode() -> bool:
    """Check if running in test mode."""
    return os.getenv("TEST_MODE", "false").lower() == "true"


def get_database_name() -> str:
    name = os.getenv("MONGO_DB_NAME", DEFAULT_DB_NAME)
    if is_test_mode():
        return f"{name}_test"
    return name


# ---- Connection Management ----

def get_client() -> MongoClient:
    """
    Shared MongoClient.

    The pool is created on first use and reused for the life of the process.
    Datetimes come back timezone-aware (UTC).
    """
    global _client
    if _client is None:
        _client = MongoClient(
            get_mongo_uri(),
            tz_aware=True,
            maxPoolSize=10,
            minPoolSize=1,
            maxIdleTimeMS=60000
        )
    return _client


def get_database() -> Database:
    return get_client()[get_database_name()]


# ---- Store ----

class MongoDocumentStore(DocumentStore):
    """
    DocumentStore backed by a MongoDB database.

    Transactions need a replica set or sharded cluster (MongoDB Atlas
    qualifies).
    """

    def __init__(
        self,
        database: Optional[Database] = None,
        session: Optional[ClientSession] = None
    ):
        self.database = database if database is not None else get_database()
        self.session = session

    def ensure_indexes(self) -> list[str]:
        """
        Create every declared index (idempotent).

        Returns:
            Names of the indexes created or confirmed
        """
        created = []
        for table, indexes in INDEXES.items():
            collection = self.database[table]
            for name, fields in indexes.items():
                keys = [(field_name, ASCENDING) for field_name in fields]
                collection.create_index(keys, name=name)
                created.append(f"{table}.{name}")
        logger.info("Ensured %d indexes on %s", len(created), self.database.name)
        return created

    def get(self, table: str, doc_id: str) -> Optional[dict]:
        return self.database[table].find_one({"_id": doc_id}, session=self.session)

    def insert(self, table: str, document: Mapping[str, Any]) -> str:
        payload = dict(document)
        payload.setdefault("_id", new_id())
        self.database[table].insert_one(payload, session=self.session)
        return payload["_id"]

    def patch(self, table: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        if not fields:
            return
        result = self.database[table].update_one(
            {"_id": doc_id},
            {"$set": dict(fields)},
            session=self.session,
        )
        if result.matched_count == 0:
            raise KeyError(f"{table} document not found: {doc_id}")

    def delete(self, table: str, doc_id: str) -> None:
        self.database[table].delete_one({"_id": doc_id}, session=self.session)

    def run_query(
        self,
        query: Query,
        limit: Optional[int] = None,
        after: Optional[CursorPosition] = None
    ) -> list[dict]:
        cursor = self.database[query.table].find(
            build_mongo_filter(query, after),
            sort=build_mongo_sort(query),
            session=self.session,
        )
        if query.index is not None:
            cursor = cursor.hint(query.index)
        if limit is not None:
            cursor = cursor.limit(limit)
        return list(cursor)

    @contextmanager
    def transaction(self) -> Iterator["MongoDocumentStore"]:
        # Nested transaction blocks join the outer one
        if self.session is not None:
            yield self
            return

        with self.database.client.start_session() as session:
            with session.start_transaction():
                yield MongoDocumentStore(self.database, session)
