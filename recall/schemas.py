"""
Pydantic models for stored documents.

These models define the structure of MongoDB documents. Services build
documents through them and persist ``model_dump(by_alias=True)``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from recall.fsrs.constants import ItemStatus
from recall.fsrs.memory_state import ItemState
from recall.store.base import new_id


# ---- Memory state ----

class MemoryFields(BaseModel):
    """Memory-model fields shared by items and concepts."""
    model_config = ConfigDict(use_enum_values=True)  # Store enum values as strings in MongoDB

    state: ItemStatus = ItemStatus.NEW
    stability: float = 0.0
    difficulty: float = 0.0
    elapsed_days: int = 0
    scheduled_days: int = 0
    reps: int = 0
    lapses: int = 0
    last_review_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None

    @classmethod
    def from_state(cls, state: ItemState) -> "MemoryFields":
        return cls(**state.to_document())


# ---- Flat memory items ----

class MemoryItem(MemoryFields):
    """
    A single memorization item.

    Memory fields live at the top level of the document.
    """
    model_config = ConfigDict(use_enum_values=True, populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    owner_id: str
    created_at: datetime
    concept_id: Optional[str] = None
    content: dict[str, Any] = Field(default_factory=dict, description="Question/answer payload")

    # Attempt tracking
    attempt_count: int = 0
    correct_count: int = 0
    last_attempted_at: Optional[datetime] = None

    # Lifecycle (excluded from queue and counters when set)
    archived_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ---- Concepts and phrasings ----

class Concept(BaseModel):
    """
    A concept with one or more alternative phrasings.

    The memory state is embedded under ``fsrs``.
    """
    model_config = ConfigDict(use_enum_values=True, populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    owner_id: str
    title: str
    created_at: datetime
    phrasing_count: int = 0
    canonical_phrasing_id: Optional[str] = None

    # Quality signals computed elsewhere
    thin_score: Optional[float] = None
    conflict_score: Optional[float] = None

    fsrs: MemoryFields = Field(default_factory=MemoryFields)
    deleted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Phrasing(BaseModel):
    """One way of asking about a concept."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    owner_id: str
    concept_id: str
    question: str
    created_at: datetime

    attempt_count: int = 0
    correct_count: int = 0
    last_attempted_at: Optional[datetime] = None

    archived_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ---- Interactions ----

class InteractionSnapshot(BaseModel):
    """Scheduling result recorded with an interaction for audit and replay."""
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    scheduled_days: int
    next_state: ItemStatus
    next_review_at: datetime


class Interaction(BaseModel):
    """Immutable record of one response."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    owner_id: str
    subject_id: str = Field(..., description="Item or concept id")
    phrasing_id: Optional[str] = None
    answer: str = ""
    is_correct: bool
    attempted_at: datetime
    time_spent_ms: Optional[int] = None
    session_id: Optional[str] = None
    snapshot: Optional[InteractionSnapshot] = None


# ---- Stats ----

class StatsLedger(BaseModel):
    """
    Per-owner aggregate counters.

    Counters clamp to 0 when the model is built.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    owner_id: str
    total_cards: int = 0
    new_count: int = 0
    learning_count: int = 0
    mature_count: int = 0
    due_now_count: int = 0
    next_review_time: Optional[datetime] = None
    last_calculated: Optional[datetime] = None

    @field_validator(
        "total_cards", "new_count", "learning_count", "mature_count", "due_now_count",
        mode="before",
    )
    @classmethod
    def _clamp(cls, value: Any) -> int:
        if value is None:
            return 0
        return max(0, int(value))


class Owner(BaseModel):
    """A learner. Only the fields the scheduler reads."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    created_at: datetime
