"""
Interaction replay.

Rebuilds memory state by folding the engine over a recorded interaction
history. Because scheduling is deterministic, replaying the same ordered
outcomes yields exactly the state the live path produced; audits and
migrations rely on this.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from recall.fsrs.constants import DEFAULT_REPLAY_LIMIT
from recall.fsrs.memory_state import ItemState, coerce_datetime
from recall.fsrs.scheduler import FsrsEngine, SchedulingEngine, StateLike


@dataclass(frozen=True)
class ReplayResult:
    state: ItemState
    applied: int


def _attempted_at(interaction: Mapping[str, Any]) -> Optional[datetime]:
    return coerce_datetime(interaction.get("attempted_at"))


def replay_interactions(
    state: StateLike,
    interactions: Iterable[Mapping[str, Any]],
    limit: Optional[int] = DEFAULT_REPLAY_LIMIT,
    engine: Optional[SchedulingEngine] = None
) -> ReplayResult:
    """
    Replay interaction outcomes into a memory state.

    Interactions are applied in chronological order (stable for equal
    timestamps); with a limit only the most recent ``limit`` are applied.
    Interactions without a usable timestamp are skipped.

    Args:
        state: Starting state (usually the item's initial state)
        interactions: Interaction documents with ``is_correct`` and ``attempted_at``
        limit: Maximum number of most recent interactions to apply (None = all)
        engine: Scheduling engine (defaults to a fresh FsrsEngine)

    Returns:
        ReplayResult with the reconstructed state and the number applied
    """
    engine = engine or FsrsEngine()

    timed = []
    for interaction in interactions:
        attempted_at = _attempted_at(interaction)
        if attempted_at is not None:
            timed.append((attempted_at, interaction))

    start = state if isinstance(state, ItemState) else ItemState.from_document(state)

    if not timed or (limit is not None and limit <= 0):
        return ReplayResult(state=start, applied=0)

    timed.sort(key=lambda pair: pair[0])
    if limit is not None:
        timed = timed[-limit:]

    current: StateLike = start
    applied = 0
    for attempted_at, interaction in timed:
        result = engine.schedule(current, bool(interaction.get("is_correct")), attempted_at)
        current = result.state
        applied += 1

    return ReplayResult(state=current, applied=applied)
