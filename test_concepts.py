"""
Tests for concepts and phrasings.

A concept shares one memory state across its phrasings; the queue only
presents a concept together with an active phrasing.
"""

from datetime import timedelta

import pytest

from recall.concepts import (
    add_phrasing,
    archive_phrasing,
    create_concept,
    get_next_concept,
    record_concept_interaction,
    set_canonical_phrasing,
    thin_score_for,
)
from recall.errors import ItemNotFoundError, UnauthorizedItemError
from recall.fsrs import ItemState, ItemStatus
from recall.fsrs.constants import TARGET_PHRASINGS_PER_CONCEPT
from recall.queue_builders import prioritize_concepts
from recall.reviews import create_items
from recall.stats import get_ledger
from recall.store.indexes import CONCEPTS, INTERACTIONS, PHRASINGS


OWNER = "owner-1"


@pytest.fixture
def concept(store, t0):
    concept_id = create_concept(store, OWNER, "photosynthesis", now=t0)
    phrasing_ids = [
        add_phrasing(store, OWNER, concept_id, question, now=t0 + timedelta(seconds=n))
        for n, question in enumerate(["What is it?", "Why does it matter?", "Where does it happen?"])
    ]
    return concept_id, phrasing_ids


def test_create_concept_starts_new(store, t0):
    concept_id = create_concept(store, OWNER, "osmosis", now=t0)

    document = store.get(CONCEPTS, concept_id)

    assert document["phrasing_count"] == 0
    assert document["fsrs"]["state"] == "new"
    assert document["fsrs"]["next_review_at"] == t0
    assert ItemState.from_concept(document).is_new


def test_add_phrasing_counts(store, concept):
    concept_id, phrasing_ids = concept

    document = store.get(CONCEPTS, concept_id)

    assert document["phrasing_count"] == 3
    assert store.get(PHRASINGS, phrasing_ids[0])["concept_id"] == concept_id


def test_thin_score_for_counts():
    assert thin_score_for(0) == TARGET_PHRASINGS_PER_CONCEPT
    assert thin_score_for(-3) == TARGET_PHRASINGS_PER_CONCEPT
    assert thin_score_for(TARGET_PHRASINGS_PER_CONCEPT - 1) == 1
    assert thin_score_for(TARGET_PHRASINGS_PER_CONCEPT) is None
    assert thin_score_for(TARGET_PHRASINGS_PER_CONCEPT + 4) is None


def test_thin_score_follows_phrasing_count(store, t0):
    concept_id = create_concept(store, OWNER, "mitosis", now=t0)
    assert store.get(CONCEPTS, concept_id)["thin_score"] == TARGET_PHRASINGS_PER_CONCEPT

    phrasing_ids = [
        add_phrasing(store, OWNER, concept_id, f"Question {n}?", now=t0)
        for n in range(TARGET_PHRASINGS_PER_CONCEPT)
    ]
    document = store.get(CONCEPTS, concept_id)
    assert document["phrasing_count"] == TARGET_PHRASINGS_PER_CONCEPT
    assert document["thin_score"] is None

    archive_phrasing(store, OWNER, concept_id, phrasing_ids[0], now=t0)
    assert store.get(CONCEPTS, concept_id)["thin_score"] == 1


def test_add_phrasing_to_foreign_concept_fails(store, concept):
    concept_id, _ = concept

    with pytest.raises(UnauthorizedItemError, match="concept"):
        add_phrasing(store, "intruder", concept_id, "Sneaky?")
    with pytest.raises(ItemNotFoundError, match="Concept not found"):
        add_phrasing(store, OWNER, "missing", "Where?")


def test_concept_without_phrasings_is_never_presented(store, t0, rng):
    create_concept(store, OWNER, "empty", now=t0)

    assert get_next_concept(store, OWNER, now=t0, rng=rng) is None


def test_next_concept_picks_least_seen_phrasing(store, t0, rng, concept):
    concept_id, phrasing_ids = concept

    result = get_next_concept(store, OWNER, now=t0 + timedelta(minutes=1), rng=rng)

    assert result.document["_id"] == concept_id
    assert result.phrasing["_id"] == phrasing_ids[0]
    assert result.selection_reason == "least-seen"


def test_canonical_phrasing_is_preferred(store, t0, rng, concept):
    concept_id, phrasing_ids = concept
    set_canonical_phrasing(store, OWNER, concept_id, phrasing_ids[2], now=t0)

    result = get_next_concept(store, OWNER, now=t0 + timedelta(minutes=1), rng=rng)

    assert result.phrasing["_id"] == phrasing_ids[2]
    assert result.selection_reason == "canonical"


def test_exclude_skips_phrasing_just_shown(store, t0, rng, concept):
    _, phrasing_ids = concept

    result = get_next_concept(
        store, OWNER, now=t0 + timedelta(minutes=1), rng=rng, exclude_phrasing_id=phrasing_ids[0]
    )

    assert result.phrasing["_id"] == phrasing_ids[1]


def test_archiving_canonical_clears_pin(store, t0, rng, concept):
    concept_id, phrasing_ids = concept
    set_canonical_phrasing(store, OWNER, concept_id, phrasing_ids[0], now=t0)

    archive_phrasing(store, OWNER, concept_id, phrasing_ids[0], now=t0)
    archive_phrasing(store, OWNER, concept_id, phrasing_ids[0], now=t0)

    document = store.get(CONCEPTS, concept_id)
    assert document["canonical_phrasing_id"] is None
    assert document["phrasing_count"] == 2
    result = get_next_concept(store, OWNER, now=t0 + timedelta(minutes=1), rng=rng)
    assert result.phrasing["_id"] == phrasing_ids[1]


def test_archived_phrasing_cannot_be_canonical(store, t0, concept):
    concept_id, phrasing_ids = concept
    archive_phrasing(store, OWNER, concept_id, phrasing_ids[1], now=t0)

    with pytest.raises(ItemNotFoundError):
        set_canonical_phrasing(store, OWNER, concept_id, phrasing_ids[1], now=t0)


def test_phrasing_of_another_concept_is_rejected(store, t0, concept):
    concept_id, _ = concept
    other_id = create_concept(store, OWNER, "other", now=t0)
    foreign = add_phrasing(store, OWNER, other_id, "Other?", now=t0)

    with pytest.raises(ItemNotFoundError, match="Phrasing not found"):
        record_concept_interaction(store, OWNER, concept_id, foreign, "a", True, now=t0)


def test_all_phrasings_archived_hides_concept(store, t0, rng, concept):
    concept_id, phrasing_ids = concept
    for phrasing_id in phrasing_ids:
        archive_phrasing(store, OWNER, concept_id, phrasing_id, now=t0)

    assert get_next_concept(store, OWNER, now=t0 + timedelta(minutes=1), rng=rng) is None


def test_interaction_reschedules_concept_and_counts_phrasing(store, t0, rng, concept):
    concept_id, phrasing_ids = concept

    outcome = record_concept_interaction(
        store, OWNER, concept_id, phrasing_ids[0], "light", True, now=t0, time_spent_ms=4200
    )

    assert outcome.new_state == ItemStatus.LEARNING
    document = store.get(CONCEPTS, concept_id)
    assert document["fsrs"]["reps"] == 1
    assert document["fsrs"]["next_review_at"] == outcome.next_review_at

    phrasing = store.get(PHRASINGS, phrasing_ids[0])
    assert phrasing["attempt_count"] == 1
    assert phrasing["correct_count"] == 1
    assert phrasing["last_attempted_at"] == t0

    [interaction] = store.all(INTERACTIONS)
    assert interaction["subject_id"] == concept_id
    assert interaction["phrasing_id"] == phrasing_ids[0]
    assert interaction["time_spent_ms"] == 4200
    assert interaction["snapshot"]["next_state"] == "learning"

    # Concepts never touch the item ledger
    assert get_ledger(store, OWNER) is None

    assert get_next_concept(store, OWNER, now=t0 + timedelta(minutes=5), rng=rng) is None
    result = get_next_concept(store, OWNER, now=outcome.next_review_at, rng=rng)
    assert result.phrasing["_id"] == phrasing_ids[1]
    assert len(result.interactions) == 1


def test_concept_reviews_leave_item_ledger_untouched(store, t0, concept):
    concept_id, phrasing_ids = concept
    create_items(store, OWNER, [{"n": n} for n in range(2)], now=t0)
    before = get_ledger(store, OWNER)

    now = t0
    for phrasing_id, is_correct in zip(phrasing_ids, (True, False, True)):
        outcome = record_concept_interaction(store, OWNER, concept_id, phrasing_id, "x", is_correct, now=now)
        now = outcome.next_review_at

    after = get_ledger(store, OWNER)
    assert after.total_cards == before.total_cards == 2
    assert after.new_count == before.new_count
    assert after.learning_count == before.learning_count
    assert after.due_now_count == before.due_now_count


def test_prioritize_concepts_skips_unselectable(t0, rng):
    concepts = [
        {"_id": "a", "phrasing_count": 2, "created_at": t0, "fsrs": {"state": "new", "next_review_at": t0}},
        {"_id": "b", "phrasing_count": 0, "created_at": t0},
        {"_id": "c", "phrasing_count": 1, "created_at": t0, "deleted_at": t0},
    ]

    ordered = prioritize_concepts(concepts, now=t0, rng=rng)

    assert [c.doc_id for c in ordered] == ["a"]
    assert ordered[0].score == -2.0
