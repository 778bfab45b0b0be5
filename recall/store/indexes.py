"""
Collection names and declared indexes.

Queries may only use the indexes listed here; the MongoDB store creates them
on startup and the index field order defines query sort order.
"""

from __future__ import annotations

from typing import Final


ITEMS: Final = "items"
CONCEPTS: Final = "concepts"
PHRASINGS: Final = "phrasings"
INTERACTIONS: Final = "interactions"
STATS_LEDGERS: Final = "stats_ledgers"
OWNERS: Final = "owners"


INDEXES: Final[dict[str, dict[str, tuple[str, ...]]]] = {
    ITEMS: {
        "by_owner": ("owner_id",),
        "by_owner_next_review": ("owner_id", "next_review_at"),
        "by_owner_state": ("owner_id", "state"),
        "by_concept": ("concept_id",),
    },
    CONCEPTS: {
        "by_owner": ("owner_id",),
        "by_owner_next_review": ("owner_id", "fsrs.next_review_at"),
        "by_owner_state": ("owner_id", "fsrs.state"),
    },
    PHRASINGS: {
        "by_concept": ("concept_id",),
    },
    INTERACTIONS: {
        "by_subject": ("subject_id", "attempted_at"),
        "by_owner": ("owner_id", "attempted_at"),
    },
    STATS_LEDGERS: {
        "by_owner": ("owner_id",),
    },
    OWNERS: {
        "by_creation_time": ("created_at",),
    },
}


def index_fields(table: str, index: str) -> tuple[str, ...]:
    """
    Field list for a declared index.

    Raises:
        ValueError: If the table or index is not declared
    """
    try:
        return INDEXES[table][index]
    except KeyError:
        raise ValueError(f"Unknown index '{index}' on collection '{table}'") from None
