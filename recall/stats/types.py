"""
Types for the stats ledger and reconciliation.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Literal, Optional


ReconcileStatus = Literal["completed", "partial", "failed"]
OwnerOutcome = Literal["accurate", "initialized", "corrected"]


@dataclass(frozen=True)
class StatDeltas:
    """
    Signed counter changes (positive = increment).

    ``next_review_time`` replaces the stored value when set.
    """
    total_cards: int = 0
    new_count: int = 0
    learning_count: int = 0
    mature_count: int = 0
    due_now_count: int = 0
    next_review_time: Optional[datetime] = None

    def __add__(self, other: "StatDeltas") -> "StatDeltas":
        return StatDeltas(
            total_cards=self.total_cards + other.total_cards,
            new_count=self.new_count + other.new_count,
            learning_count=self.learning_count + other.learning_count,
            mature_count=self.mature_count + other.mature_count,
            due_now_count=self.due_now_count + other.due_now_count,
            next_review_time=other.next_review_time or self.next_review_time,
        )

    def __neg__(self) -> "StatDeltas":
        return replace(
            self,
            total_cards=-self.total_cards,
            new_count=-self.new_count,
            learning_count=-self.learning_count,
            mature_count=-self.mature_count,
            due_now_count=-self.due_now_count,
        )

    def bump(self, counter: str, amount: int) -> "StatDeltas":
        return replace(self, **{counter: getattr(self, counter) + amount})

    @property
    def is_empty(self) -> bool:
        return self.next_review_time is None and all(
            getattr(self, f.name) == 0 for f in fields(self) if f.name != "next_review_time"
        )


@dataclass
class OwnerCounts:
    """Ground-truth counters recomputed from an owner's items."""
    total_cards: int = 0
    new_count: int = 0
    learning_count: int = 0
    mature_count: int = 0
    due_now_count: int = 0
    next_review_time: Optional[datetime] = None
    documents_read: int = 0


@dataclass(frozen=True)
class DueCount:
    """
    Due volume for an owner.

    ``due_count`` counts practiced items only; new items are always due and
    reported separately.
    """
    due_count: int
    new_count: int

    @property
    def total_reviewable(self) -> int:
        return self.due_count + self.new_count


@dataclass
class ReconcileResult:
    status: ReconcileStatus = "completed"
    owners_sampled: int = 0
    owners_checked: int = 0
    drift_detected: int = 0
    corrections: int = 0
    errors: int = 0
    failed_owner_ids: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.owners_sampled == 0:
            return "No owners found"
        if self.drift_detected > 0:
            return (
                f"Detected and corrected drift for {self.corrections} "
                f"of {self.owners_checked} owners"
            )
        return f"All {self.owners_checked} owners have accurate stats"
