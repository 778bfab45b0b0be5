"""
Constants for the stats ledger and drift reconciliation.
"""

from __future__ import annotations

from typing import Final

from recall.fsrs.constants import ItemStatus


# Ledger counter fields (all clamp to >= 0)
TOTAL: Final = "total_cards"
NEW: Final = "new_count"
LEARNING: Final = "learning_count"
MATURE: Final = "mature_count"
DUE_NOW: Final = "due_now_count"

COUNTER_FIELDS: Final[tuple[str, ...]] = (TOTAL, NEW, LEARNING, MATURE, DUE_NOW)

# Relearning items count as learning
STATE_BUCKETS: Final[dict[str, str]] = {
    ItemStatus.NEW.value: NEW,
    ItemStatus.LEARNING.value: LEARNING,
    ItemStatus.RELEARNING.value: LEARNING,
    ItemStatus.REVIEW.value: MATURE,
}

# Fields compared when measuring drift
DRIFT_FIELDS: Final[tuple[str, ...]] = (TOTAL, NEW, LEARNING, MATURE)

# Reconciliation defaults
DEFAULT_SAMPLE_SIZE: Final = 100
DEFAULT_DRIFT_THRESHOLD: Final = 5
ITEM_BATCH_SIZE: Final = 200
OWNER_SAMPLE_FALLBACK_LIMIT: Final = 200
