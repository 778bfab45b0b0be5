"""
Pool utilities for queue builders.

Shared primitives for ordering candidate pools. None of them cap the pool:
they behave the same for five candidates or five thousand.
"""

from __future__ import annotations
import random
from typing import Callable, Iterable, Optional, TypeVar

from recall.fsrs.constants import URGENCY_DELTA
from recall.queue_builders.pool_types import ScoredCandidate


T = TypeVar("T")


def fisher_yates_shuffle(items: list[T], rng: Optional[random.Random] = None) -> list[T]:
    """
    Unbiased in-place permutation.

    Args:
        items: List to shuffle (mutated)
        rng: Random source; module-level random when None

    Returns:
        The same list, for chaining
    """
    rand = rng.random if rng is not None else random.random
    for i in range(len(items) - 1, 0, -1):
        j = int(rand() * (i + 1))
        items[i], items[j] = items[j], items[i]
    return items


def sort_by_score(candidates: Iterable[ScoredCandidate]) -> list[ScoredCandidate]:
    """Ascending by score (stable, so equal scores keep fetch order)."""
    return sorted(candidates, key=lambda c: c.score)


def urgency_tier_size(
    ordered: list[ScoredCandidate],
    delta: float = URGENCY_DELTA
) -> int:
    """
    Length of the prefix whose scores lie within ``delta`` of the minimum.

    ``ordered`` must already be sorted ascending.
    """
    if not ordered:
        return 0
    base = ordered[0].score
    size = 0
    for candidate in ordered:
        if abs(candidate.score - base) > delta:
            break
        size += 1
    return size


def shuffle_urgency_tier(
    ordered: list[ScoredCandidate],
    rng: Optional[random.Random] = None,
    delta: float = URGENCY_DELTA
) -> list[ScoredCandidate]:
    """
    Shuffle only the most-urgent tier of a sorted list.

    Items outside the tier keep their order, so nothing strictly less urgent
    than the tier can move ahead of it.
    """
    tier_size = urgency_tier_size(ordered, delta)
    tier = fisher_yates_shuffle(list(ordered[:tier_size]), rng)
    return tier + list(ordered[tier_size:])


def merge_unique(
    *pools: Iterable[T],
    key: Callable[[T], object] = lambda doc: doc.get("_id")
) -> list[T]:
    """
    Concatenate pools, keeping the first occurrence of each key.
    """
    seen: set = set()
    merged: list[T] = []
    for pool in pools:
        for item in pool:
            item_key = key(item)
            if item_key in seen:
                continue
            seen.add(item_key)
            merged.append(item)
    return merged
