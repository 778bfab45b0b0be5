"""
FSRS Constants and Parameters

All configurable parameters for the memory engine and review queue in one place.
"""

from datetime import timedelta
from enum import Enum


# ---- Item States ----

class ItemStatus(str, Enum):
    """Lifecycle state of a memory item."""
    NEW = "new"                # Never answered
    LEARNING = "learning"      # Inside the short-term learning steps
    REVIEW = "review"          # Graduated to day-scale intervals
    RELEARNING = "relearning"  # Lapsed from review, back in short steps


# ---- Engine Parameters ----

DESIRED_RETENTION = 0.9    # Target recall probability for interval calculation
MAXIMUM_INTERVAL = 365     # Maximum days between reviews

# Short-term steps. The first learning step is what an incorrect answer on a
# new item schedules; the last one is what a correct answer schedules.
LEARNING_STEPS = (timedelta(minutes=1), timedelta(minutes=10))
RELEARNING_STEPS = (timedelta(minutes=10),)

# Returned by get_retrievability for items that were never answered
NEW_ITEM_RETRIEVABILITY = -1.0


# ---- Queue Parameters ----

URGENCY_DELTA = 0.05       # Items within this score spread of the head get shuffled
FRESHNESS_HALF_LIFE_HOURS = 24.0

DUE_FETCH_WINDOW = 25      # Most-overdue items pulled per queue read
NEW_FETCH_WINDOW = 5       # Never-practiced items pulled per queue read
MAX_CONCEPT_CANDIDATES = 25
MAX_PHRASINGS = 50
TARGET_PHRASINGS_PER_CONCEPT = 5  # Concepts with fewer phrasings are "thin"
RECENT_INTERACTIONS_LIMIT = 10  # Shown alongside the next review


# ---- Replay ----

DEFAULT_REPLAY_LIMIT = 50
