"""
Recall scheduler core.

Decides what a learner practices next, updates per-item memory state after
every response and keeps per-owner counters in step.

Quick start:
    from recall import MongoDocumentStore, create_items, get_next_review, record_response

    store = MongoDocumentStore()
    [item_id] = create_items(store, owner_id, [{"question": "...", "answer": "..."}])
    nxt = get_next_review(store, owner_id)
    record_response(store, owner_id, nxt.document["_id"], answer="...", is_correct=True)
"""

from recall.concepts import (
    add_phrasing,
    archive_phrasing,
    create_concept,
    record_concept_interaction,
    set_canonical_phrasing,
)
from recall.errors import BulkValidationError, ItemNotFoundError, UnauthorizedItemError
from recall.fsrs import (
    FsrsEngine,
    get_retrievability,
    initialize_memory_state,
    is_due,
    replay_interactions,
    schedule_review,
)
from recall.identity import ensure_owner, resolve_owner_id
from recall.items_bulk import (
    archive_items,
    permanently_delete_items,
    restore_items,
    soft_delete_items,
    unarchive_items,
)
from recall.queue_builders import (
    SelectionOptions,
    get_next_concept,
    get_next_review,
    select_phrasing,
)
from recall.reviews import ReviewOutcome, create_items, rebuild_item_state, record_response
from recall.stats import apply_stats_delta, get_card_stats, get_due_count, reconcile
from recall.store import DocumentStore
from recall.store.mongo import MongoDocumentStore

__version__ = "0.1.0"


__all__ = [
    # Engine
    "FsrsEngine",
    "initialize_memory_state",
    "schedule_review",
    "get_retrievability",
    "is_due",
    "replay_interactions",

    # Items
    "create_items",
    "record_response",
    "rebuild_item_state",
    "ReviewOutcome",
    "archive_items",
    "unarchive_items",
    "soft_delete_items",
    "restore_items",
    "permanently_delete_items",

    # Concepts
    "create_concept",
    "add_phrasing",
    "set_canonical_phrasing",
    "archive_phrasing",
    "record_concept_interaction",

    # Queue
    "get_next_review",
    "get_next_concept",
    "select_phrasing",
    "SelectionOptions",

    # Stats
    "apply_stats_delta",
    "get_card_stats",
    "get_due_count",
    "reconcile",

    # Identity and storage
    "resolve_owner_id",
    "ensure_owner",
    "DocumentStore",
    "MongoDocumentStore",

    # Errors
    "BulkValidationError",
    "ItemNotFoundError",
    "UnauthorizedItemError",
]
