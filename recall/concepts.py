"""
Concept Service - concepts, phrasings and concept reviews.

A concept carries one memory state (embedded under ``fsrs``) shared by all of
its phrasings. Reviewing any phrasing reschedules the concept and bumps that
phrasing's attempt counters.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from recall.fsrs.constants import TARGET_PHRASINGS_PER_CONCEPT
from recall.fsrs.memory_state import ItemState, ensure_utc, utc_now
from recall.fsrs.scheduler import FsrsEngine, SchedulingEngine
from recall.queue_builders.concept_builder import get_next_concept
from recall.reviews import ReviewOutcome, attempt_fields, build_interaction
from recall.errors import ItemNotFoundError
from recall.schemas import Concept, MemoryFields, Phrasing
from recall.store import DocumentStore
from recall.store.indexes import CONCEPTS, INTERACTIONS, PHRASINGS
from recall.validation import require_owned


def thin_score_for(phrasing_count: int) -> Optional[float]:
    """Phrasings still missing to reach the target, or None once it is met."""
    if phrasing_count >= TARGET_PHRASINGS_PER_CONCEPT:
        return None
    return float(TARGET_PHRASINGS_PER_CONCEPT - max(0, phrasing_count))


def create_concept(
    store: DocumentStore,
    owner_id: str,
    title: str,
    now: Optional[datetime] = None,
    engine: Optional[SchedulingEngine] = None
) -> str:
    """Create a concept with a fresh memory state and no phrasings yet."""
    now = ensure_utc(now) if now is not None else utc_now()
    engine = engine or FsrsEngine()
    concept = Concept(
        owner_id=owner_id,
        title=title,
        created_at=now,
        fsrs=MemoryFields.from_state(engine.initialize(now)),
        thin_score=thin_score_for(0),
    )
    return store.insert(CONCEPTS, concept.model_dump(by_alias=True))


def _require_phrasing(
    store: DocumentStore,
    owner_id: str,
    concept_id: str,
    phrasing_id: str
) -> dict:
    phrasing = require_owned(store, PHRASINGS, phrasing_id, owner_id, kind="Phrasing")
    if phrasing.get("concept_id") != concept_id:
        raise ItemNotFoundError(phrasing_id, "Phrasing")
    return phrasing


def add_phrasing(
    store: DocumentStore,
    owner_id: str,
    concept_id: str,
    question: str,
    now: Optional[datetime] = None
) -> str:
    """
    Attach a new phrasing to a concept.

    Raises:
        ItemNotFoundError / UnauthorizedItemError: For a bad concept id
    """
    now = ensure_utc(now) if now is not None else utc_now()
    with store.transaction() as tx:
        concept = require_owned(tx, CONCEPTS, concept_id, owner_id, kind="Concept")
        phrasing = Phrasing(
            owner_id=owner_id,
            concept_id=concept_id,
            question=question,
            created_at=now,
        )
        phrasing_id = tx.insert(PHRASINGS, phrasing.model_dump(by_alias=True))
        count = int(concept.get("phrasing_count") or 0) + 1
        tx.patch(CONCEPTS, concept_id, {
            "phrasing_count": count,
            "thin_score": thin_score_for(count),
            "updated_at": now,
        })
    return phrasing_id


def set_canonical_phrasing(
    store: DocumentStore,
    owner_id: str,
    concept_id: str,
    phrasing_id: Optional[str],
    now: Optional[datetime] = None
) -> Optional[str]:
    """
    Pin (or with None, unpin) the phrasing always presented for a concept.

    Raises:
        ItemNotFoundError: If the phrasing is archived or belongs elsewhere
    """
    now = ensure_utc(now) if now is not None else utc_now()
    with store.transaction() as tx:
        require_owned(tx, CONCEPTS, concept_id, owner_id, kind="Concept")
        if phrasing_id is not None:
            phrasing = _require_phrasing(tx, owner_id, concept_id, phrasing_id)
            if phrasing.get("archived_at") or phrasing.get("deleted_at"):
                raise ItemNotFoundError(phrasing_id, "Phrasing")
        tx.patch(CONCEPTS, concept_id, {"canonical_phrasing_id": phrasing_id, "updated_at": now})
    return phrasing_id


def archive_phrasing(
    store: DocumentStore,
    owner_id: str,
    concept_id: str,
    phrasing_id: str,
    now: Optional[datetime] = None
) -> None:
    """
    Retire a phrasing. Archiving the canonical phrasing clears the pin.

    Already archived phrasings are left untouched.
    """
    now = ensure_utc(now) if now is not None else utc_now()
    with store.transaction() as tx:
        concept = require_owned(tx, CONCEPTS, concept_id, owner_id, kind="Concept")
        phrasing = _require_phrasing(tx, owner_id, concept_id, phrasing_id)
        if phrasing.get("archived_at"):
            return

        tx.patch(PHRASINGS, phrasing_id, {"archived_at": now, "updated_at": now})

        count = max(0, int(concept.get("phrasing_count") or 0) - 1)
        concept_fields = {
            "phrasing_count": count,
            "thin_score": thin_score_for(count),
            "updated_at": now,
        }
        if concept.get("canonical_phrasing_id") == phrasing_id:
            concept_fields["canonical_phrasing_id"] = None
        tx.patch(CONCEPTS, concept_id, concept_fields)


def record_concept_interaction(
    store: DocumentStore,
    owner_id: str,
    concept_id: str,
    phrasing_id: str,
    answer: str,
    is_correct: bool,
    now: Optional[datetime] = None,
    time_spent_ms: Optional[int] = None,
    session_id: Optional[str] = None,
    engine: Optional[SchedulingEngine] = None
) -> ReviewOutcome:
    """
    Record a response to one phrasing and reschedule its concept.

    Raises:
        ItemNotFoundError / UnauthorizedItemError: For a bad concept or phrasing
    """
    now = ensure_utc(now) if now is not None else utc_now()
    engine = engine or FsrsEngine()

    with store.transaction() as tx:
        concept = require_owned(tx, CONCEPTS, concept_id, owner_id, kind="Concept")
        phrasing = _require_phrasing(tx, owner_id, concept_id, phrasing_id)

        result = engine.schedule(ItemState.from_concept(concept, now), is_correct, now)

        interaction = build_interaction(
            owner_id, concept_id, answer, is_correct, now, result,
            phrasing_id=phrasing_id,
            time_spent_ms=time_spent_ms,
            session_id=session_id,
        )
        interaction_id = tx.insert(INTERACTIONS, interaction.model_dump(by_alias=True))

        tx.patch(PHRASINGS, phrasing_id, attempt_fields(phrasing, is_correct, now))
        # The stats ledger counts flat items only; concept reviews apply no delta.
        tx.patch(CONCEPTS, concept_id, {
            "fsrs": MemoryFields.from_state(result.state).model_dump(),
            "updated_at": now,
        })

    return ReviewOutcome(
        subject_id=concept_id,
        interaction_id=interaction_id,
        new_state=result.state.state,
        next_review_at=result.next_review_at,
        scheduled_days=result.state.scheduled_days,
        interval_days=result.interval_days,
    )


__all__ = [
    "thin_score_for",
    "create_concept",
    "add_phrasing",
    "set_canonical_phrasing",
    "archive_phrasing",
    "record_concept_interaction",
    "get_next_concept",
]
