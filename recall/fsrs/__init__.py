"""
FSRS - Free Spaced Repetition Scheduler

Memory engine for the recall scheduler.

This package wraps the published FSRS model (py-fsrs) behind a small contract:
- Binary outcomes only: correct -> Good, incorrect -> Again
- Deterministic scheduling (no interval fuzzing)
- Fail-open reads: malformed state degrades to a "new" item

Quick start:
    from recall import fsrs

    engine = fsrs.FsrsEngine()
    state = engine.initialize(now)
    result = engine.schedule(state, is_correct=True, now=now)
    result.state.next_review_at
"""

from typing import Optional
from datetime import datetime

# Core engine (algorithm logic)
from recall.fsrs.scheduler import (
    FsrsEngine,
    ScheduleResult,
    SchedulingEngine,
    grade_from_correctness,
)

# Replay
from recall.fsrs.replay import ReplayResult, replay_interactions

# Constants and parameters
from recall.fsrs.constants import (
    ItemStatus,
    DESIRED_RETENTION,
    MAXIMUM_INTERVAL,
    LEARNING_STEPS,
    RELEARNING_STEPS,
    NEW_ITEM_RETRIEVABILITY,
    URGENCY_DELTA,
    DEFAULT_REPLAY_LIMIT,
)

# Memory state
from recall.fsrs.memory_state import (
    ItemState,
    initialize_state,
    ensure_utc,
    utc_now,
)


def initialize_memory_state(
    now: Optional[datetime] = None,
    engine: Optional[SchedulingEngine] = None
) -> ItemState:
    """State for a newly created item."""
    return (engine or FsrsEngine()).initialize(now)


def schedule_review(
    state,
    is_correct: bool,
    now: Optional[datetime] = None,
    engine: Optional[SchedulingEngine] = None
) -> ScheduleResult:
    """Next state, grade, next review time and interval after one response."""
    return (engine or FsrsEngine()).schedule(state, is_correct, now)


def get_retrievability(
    state,
    now: Optional[datetime] = None,
    engine: Optional[SchedulingEngine] = None
) -> float:
    """Recall probability, or NEW_ITEM_RETRIEVABILITY for unanswered items."""
    return (engine or FsrsEngine()).get_retrievability(state, now)


def is_due(
    state,
    now: Optional[datetime] = None,
    engine: Optional[SchedulingEngine] = None
) -> bool:
    """True when the item has no next review time or it has passed."""
    return (engine or FsrsEngine()).is_due(state, now)


__all__ = [
    # Core algorithm
    "FsrsEngine",
    "ScheduleResult",
    "SchedulingEngine",
    "grade_from_correctness",
    "initialize_memory_state",
    "schedule_review",
    "get_retrievability",
    "is_due",

    # Replay
    "ReplayResult",
    "replay_interactions",

    # Enums
    "ItemStatus",

    # Memory state
    "ItemState",
    "initialize_state",
    "ensure_utc",
    "utc_now",

    # Parameters
    "DESIRED_RETENTION",
    "MAXIMUM_INTERVAL",
    "LEARNING_STEPS",
    "RELEARNING_STEPS",
    "NEW_ITEM_RETRIEVABILITY",
    "URGENCY_DELTA",
    "DEFAULT_REPLAY_LIMIT",
]
