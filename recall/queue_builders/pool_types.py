"""
Typed candidate models shared across queue builders.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Literal, Optional


SelectionReason = Literal["canonical", "least-seen", "random", "none"]


@dataclass(frozen=True)
class ScoredCandidate:
    """
    A queue candidate with its urgency score.

    Lower score = more urgent. Never-practiced candidates score in [-2, -1),
    practiced ones in [0, 1].
    """
    document: dict
    score: float

    @property
    def doc_id(self) -> str:
        return str(self.document.get("_id"))


@dataclass(frozen=True)
class PhrasingSelection:
    """Outcome of choosing a phrasing for a concept."""
    phrasing: Optional[dict]
    reason: SelectionReason


@dataclass
class NextReview:
    """
    What to present next.

    ``interactions`` holds the most recent responses for the subject, newest
    first, for display.
    """
    document: dict
    score: float
    interactions: list[dict] = field(default_factory=list)
    phrasing: Optional[dict] = None
    selection_reason: Optional[SelectionReason] = None

    @property
    def success_rate(self) -> Optional[float]:
        attempts = self.document.get("attempt_count") or 0
        if attempts <= 0:
            return None
        return (self.document.get("correct_count") or 0) / attempts
