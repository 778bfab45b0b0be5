"""
Scheduler - FSRS Algorithm Logic

Pure scheduling and state updates (no database calls).

Main workflow:
1. Load item state (caller's responsibility)
2. Convert the binary outcome to a grade
3. Run the published FSRS model (py-fsrs) on the state
4. Return the updated state + next review time

This module handles ONLY the algorithm logic.
Persistence and ledger updates are handled by the review services.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional, Protocol, Sequence, Union

from fsrs import Card, Rating, Scheduler, State

from recall.fsrs.constants import (
    DESIRED_RETENTION,
    ItemStatus,
    LEARNING_STEPS,
    MAXIMUM_INTERVAL,
    NEW_ITEM_RETRIEVABILITY,
    RELEARNING_STEPS,
)
from recall.fsrs.memory_state import (
    ItemState,
    ensure_utc,
    initialize_state,
    utc_now,
)


StateLike = Union[ItemState, Mapping[str, Any], None]

_FSRS_TO_STATUS = {
    State.Learning: ItemStatus.LEARNING,
    State.Review: ItemStatus.REVIEW,
    State.Relearning: ItemStatus.RELEARNING,
}

# Card id is irrelevant with fuzzing off; passing one skips py-fsrs' id generator.
_CARD_ID = 0


@dataclass(frozen=True)
class ScheduleResult:
    """Outcome of scheduling one response."""
    state: ItemState
    grade: Rating
    next_review_at: datetime
    interval_days: float


class SchedulingEngine(Protocol):
    """
    Strategy interface for spaced repetition algorithms.

    Services receive an engine through their constructor or call arguments,
    so swapping the algorithm never touches call sites.
    """

    def initialize(self, now: Optional[datetime] = None) -> ItemState: ...

    def schedule(
        self,
        state: StateLike,
        is_correct: bool,
        now: Optional[datetime] = None
    ) -> ScheduleResult: ...

    def get_retrievability(self, state: StateLike, now: Optional[datetime] = None) -> float: ...

    def is_due(self, state: StateLike, now: Optional[datetime] = None) -> bool: ...


def grade_from_correctness(is_correct: bool) -> Rating:
    """
    Map a binary outcome to an FSRS grade.

    Learners never rate their own confidence, so only Good and Again are used.
    """
    return Rating.Good if is_correct else Rating.Again


class FsrsEngine:
    """
    Memory engine backed by the py-fsrs Scheduler.

    Fuzzing is disabled: identical (state, outcome, now) must always produce
    identical output so interaction replay matches the live path.
    """

    def __init__(
        self,
        desired_retention: float = DESIRED_RETENTION,
        maximum_interval: int = MAXIMUM_INTERVAL,
        learning_steps: Sequence[timedelta] = LEARNING_STEPS,
        relearning_steps: Sequence[timedelta] = RELEARNING_STEPS
    ):
        self.learning_steps = tuple(learning_steps)
        self.relearning_steps = tuple(relearning_steps)
        self.scheduler = Scheduler(
            desired_retention=desired_retention,
            learning_steps=self.learning_steps,
            relearning_steps=self.relearning_steps,
            maximum_interval=maximum_interval,
            enable_fuzzing=False,
        )

    def initialize(self, now: Optional[datetime] = None) -> ItemState:
        """Fresh state for a newly created item, due immediately."""
        return initialize_state(now if now is not None else utc_now())

    def schedule(
        self,
        state: StateLike,
        is_correct: bool,
        now: Optional[datetime] = None
    ) -> ScheduleResult:
        """
        Compute the next memory state after one response.

        Args:
            state: Current state (ItemState, stored mapping, or None for new)
            is_correct: Whether the learner answered correctly
            now: Review timestamp (defaults to now)

        Returns:
            ScheduleResult with the new state, the grade used and the interval
        """
        now = ensure_utc(now) if now is not None else utc_now()
        current = self._coerce(state, now)
        grade = grade_from_correctness(is_correct)

        card = self._to_card(current, now)
        updated_card, _review_log = self.scheduler.review_card(card, grade, review_datetime=now)
        next_state = self._from_card(current, updated_card, grade, now)

        interval = next_state.next_review_at - now
        return ScheduleResult(
            state=next_state,
            grade=grade,
            next_review_at=next_state.next_review_at,
            interval_days=interval.total_seconds() / 86400.0,
        )

    def get_retrievability(self, state: StateLike, now: Optional[datetime] = None) -> float:
        """
        Modeled recall probability in [0, 1].

        Items that were never answered return NEW_ITEM_RETRIEVABILITY without
        consulting the model. Answered items always get a model value, even
        without a stored next_review_at.
        """
        now = ensure_utc(now) if now is not None else utc_now()
        current = self._coerce(state, now)
        if current.is_new:
            return NEW_ITEM_RETRIEVABILITY

        card = self._to_card(current, now)
        retrievability = float(self.scheduler.get_card_retrievability(card, now))
        return max(0.0, min(1.0, retrievability))

    def is_due(self, state: StateLike, now: Optional[datetime] = None) -> bool:
        """True when next_review_at is unset or not in the future."""
        now = ensure_utc(now) if now is not None else utc_now()
        current = self._coerce(state, now)
        if current.next_review_at is None:
            return True
        return current.next_review_at <= now

    # ---- Card conversion ----

    @staticmethod
    def _coerce(state: StateLike, now: datetime) -> ItemState:
        if isinstance(state, ItemState):
            return state
        return ItemState.from_document(state, now)

    def _to_card(self, state: ItemState, now: datetime) -> Card:
        if state.is_new:
            return Card(card_id=_CARD_ID, state=State.Learning, step=0, due=now)

        last_review = state.last_review_at or now
        due = state.next_review_at or now

        if state.state == ItemStatus.REVIEW:
            return Card(
                card_id=_CARD_ID,
                state=State.Review,
                stability=state.stability,
                difficulty=state.difficulty,
                due=due,
                last_review=last_review,
            )

        # Short-term steps are not persisted. Placing learning and relearning
        # items on their final step makes a correct answer graduate them.
        if state.state == ItemStatus.RELEARNING:
            fsrs_state = State.Relearning
            step = max(0, len(self.relearning_steps) - 1)
        else:
            fsrs_state = State.Learning
            step = max(0, len(self.learning_steps) - 1)

        return Card(
            card_id=_CARD_ID,
            state=fsrs_state,
            step=step,
            stability=state.stability,
            difficulty=state.difficulty,
            due=due,
            last_review=last_review,
        )

    @staticmethod
    def _from_card(
        previous: ItemState,
        card: Card,
        grade: Rating,
        now: datetime
    ) -> ItemState:
        lapsed = grade == Rating.Again and previous.state in (
            ItemStatus.REVIEW,
            ItemStatus.RELEARNING,
        )

        elapsed_days = 0
        if not previous.is_new and previous.last_review_at is not None:
            elapsed_days = max(0, (now - previous.last_review_at).days)

        next_review_at = ensure_utc(card.due)

        return ItemState(
            state=_FSRS_TO_STATUS.get(card.state, ItemStatus.LEARNING),
            stability=float(card.stability or 0.0),
            difficulty=float(card.difficulty or 0.0),
            elapsed_days=elapsed_days,
            scheduled_days=max(0, (next_review_at - now).days),
            reps=previous.reps + 1,
            lapses=previous.lapses + (1 if lapsed else 0),
            last_review_at=now,
            next_review_at=next_review_at,
        )
