"""Per-owner counter ledger and drift reconciliation."""

from recall.stats.deltas import (
    creation_delta,
    transition_delta,
    due_crossing_delta,
    review_delta,
    presence_delta,
    visibility_delta,
)
from recall.stats.ledger import (
    apply_stats_delta,
    get_ledger,
    get_card_stats,
    get_due_count,
)
from recall.stats.reconcile import (
    reconcile,
    reconcile_owner,
    recalculate_owner_counts,
    sample_owners,
)
from recall.stats.types import DueCount, OwnerCounts, ReconcileResult, StatDeltas

__all__ = [
    "creation_delta",
    "transition_delta",
    "due_crossing_delta",
    "review_delta",
    "presence_delta",
    "visibility_delta",
    "apply_stats_delta",
    "get_ledger",
    "get_card_stats",
    "get_due_count",
    "reconcile",
    "reconcile_owner",
    "recalculate_owner_counts",
    "sample_owners",
    "DueCount",
    "OwnerCounts",
    "ReconcileResult",
    "StatDeltas",
]
