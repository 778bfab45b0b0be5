"""Queue builders for flat items and concepts."""

from recall.queue_builders.item_builder import (
    freshness_decay,
    retrievability_score,
    order_candidates,
    select_next,
    get_next_review,
)
from recall.queue_builders.concept_builder import (
    prioritize_concepts,
    get_next_concept,
)
from recall.queue_builders.selection_policy import (
    SelectionOptions,
    select_phrasing,
)
from recall.queue_builders.pool_types import (
    NextReview,
    PhrasingSelection,
    ScoredCandidate,
)

__all__ = [
    "freshness_decay",
    "retrievability_score",
    "order_candidates",
    "select_next",
    "get_next_review",
    "prioritize_concepts",
    "get_next_concept",
    "SelectionOptions",
    "select_phrasing",
    "NextReview",
    "PhrasingSelection",
    "ScoredCandidate",
]
