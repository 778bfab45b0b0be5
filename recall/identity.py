"""
Owner resolution.

Request handling (sessions, auth) lives outside this package; callers pass
the owner id they resolved, or fall back to the configured default owner.
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv

from recall.fsrs.memory_state import ensure_utc, utc_now
from recall.schemas import Owner
from recall.store.indexes import OWNERS

load_dotenv()


def get_default_owner_id() -> str:
    """Get default owner id for scoping review data."""
    return os.getenv("DEFAULT_OWNER_ID", "default")


def resolve_owner_id(owner_id: Optional[str] = None) -> str:
    """
    Map a caller to an owner id.

    Raises:
        ValueError: If an explicit owner id is blank
    """
    if owner_id is None:
        return get_default_owner_id()
    owner_id = owner_id.strip()
    if not owner_id:
        raise ValueError("owner_id must not be blank")
    return owner_id


def ensure_owner(store, owner_id: str, now: Optional[datetime] = None) -> dict:
    """
    Fetch the owner record, creating it on first sight.

    The reconciler samples owners from this collection.
    """
    existing = store.get(OWNERS, owner_id)
    if existing is not None:
        return existing
    owner = Owner(id=owner_id, created_at=ensure_utc(now) if now is not None else utc_now())
    document = owner.model_dump(by_alias=True)
    store.insert(OWNERS, document)
    return document
