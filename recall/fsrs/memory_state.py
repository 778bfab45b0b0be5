"""
Memory State - per-item FSRS state record

Defines the opaque state record the engine operates on, plus the adapters that
read and write it from stored documents.

Key concepts:
- Stability (S): How slowly memory decays (in days)
- Difficulty (D): How hard the item is to learn (1-10 scale once reviewed)
- Retrievability (R): Probability of successful recall at time t

Flat memory items keep these fields at the top level of the document; concepts
embed the same record under an ``fsrs`` key. Both go through ItemState so the
scheduling rules live in exactly one place.
"""

from __future__ import annotations
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Mapping, Optional
import math

from recall.fsrs.constants import ItemStatus


STATE_FIELDS = (
    "state",
    "stability",
    "difficulty",
    "elapsed_days",
    "scheduled_days",
    "reps",
    "lapses",
    "last_review_at",
    "next_review_at",
)


def utc_now() -> datetime:
    """Default clock source."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to timezone-aware UTC.

    Naive datetimes are assumed to already be UTC (pymongo returns naive UTC
    unless the client is tz-aware).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def coerce_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a stored timestamp.

    Accepts datetimes, epoch milliseconds and ISO strings. Anything else is None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            return ensure_utc(datetime.fromisoformat(value))
        except ValueError:
            return None
    return None


def _coerce_float(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def _coerce_count(value: Any) -> int:
    return int(_coerce_float(value))


def _coerce_status(value: Any) -> ItemStatus:
    if isinstance(value, ItemStatus):
        return value
    try:
        return ItemStatus(value)
    except ValueError:
        return ItemStatus.NEW


@dataclass(frozen=True)
class ItemState:
    """
    Memory state for a single item.

    Frozen: the engine returns a new record for every response instead of
    mutating the one it was given.
    """
    state: ItemStatus = ItemStatus.NEW

    # Long-term memory parameters
    stability: float = 0.0   # S, in days (0 until first answer)
    difficulty: float = 0.0  # D (0 until first answer)

    # Interval bookkeeping
    elapsed_days: int = 0    # Days between the two most recent reviews
    scheduled_days: int = 0  # Days between the last review and next_review_at

    # Review tracking
    reps: int = 0
    lapses: int = 0
    last_review_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None

    @property
    def is_new(self) -> bool:
        return self.state == ItemStatus.NEW or self.reps == 0

    @classmethod
    def from_document(
        cls,
        document: Optional[Mapping[str, Any]],
        now: Optional[datetime] = None
    ) -> "ItemState":
        """
        Build a state record from stored fields.

        Never raises. Missing or malformed fields fall back to the "new"
        initialization; when ``now`` is given it becomes the fallback
        next_review_at of such records.

        Args:
            document: Mapping holding the STATE_FIELDS (extra keys ignored)
            now: Fallback timestamp for reset records

        Returns:
            ItemState
        """
        if not isinstance(document, Mapping):
            return initialize_state(now) if now is not None else cls()

        status = _coerce_status(document.get("state"))
        reps = _coerce_count(document.get("reps"))
        stability = _coerce_float(document.get("stability"))
        difficulty = _coerce_float(document.get("difficulty"))
        next_review_at = coerce_datetime(document.get("next_review_at"))

        # A record that claims to have been answered but carries no usable
        # memory parameters cannot be fed to the model.
        answered = status != ItemStatus.NEW and reps > 0
        if answered and (stability <= 0 or difficulty <= 0):
            return initialize_state(now if now is not None else next_review_at)

        if not answered:
            return initialize_state(next_review_at if next_review_at is not None else now)

        return cls(
            state=status,
            stability=stability,
            difficulty=difficulty,
            elapsed_days=_coerce_count(document.get("elapsed_days")),
            scheduled_days=_coerce_count(document.get("scheduled_days")),
            reps=reps,
            lapses=_coerce_count(document.get("lapses")),
            last_review_at=coerce_datetime(document.get("last_review_at")),
            next_review_at=next_review_at,
        )

    @classmethod
    def from_concept(
        cls,
        concept: Optional[Mapping[str, Any]],
        now: Optional[datetime] = None
    ) -> "ItemState":
        """Read the state embedded under a concept's ``fsrs`` key."""
        embedded = concept.get("fsrs") if isinstance(concept, Mapping) else None
        return cls.from_document(embedded, now)

    def to_document(self) -> dict:
        """Serialize to the flat field layout stored on items."""
        document = asdict(self)
        document["state"] = self.state.value
        return document


def initialize_state(now: Optional[datetime] = None) -> ItemState:
    """
    Initialize state for a new item (never answered).

    Args:
        now: Creation time; becomes next_review_at so new items are due at once

    Returns:
        New ItemState
    """
    return ItemState(
        state=ItemStatus.NEW,
        stability=0.0,
        difficulty=0.0,
        elapsed_days=0,
        scheduled_days=0,
        reps=0,
        lapses=0,
        last_review_at=None,
        next_review_at=ensure_utc(now) if now is not None else None,
    )


def hours_between(start: datetime, end: datetime) -> float:
    """Signed hours from start to end."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600.0
