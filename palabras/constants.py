"""
Study Engine Constants and Parameters

All tunable defaults for scheduling and grading in one place.
"""

from enum import Enum


# ---- Mastery States ----

class MasteryStatus(str, Enum):
    """State of a mastery record."""
    LEARNING = "learning"       # In rotation
    WELL_KNOWN = "well_known"   # Graduated, no longer scheduled


# ---- Graduation ----

WELL_KNOWN_MIN_ATTEMPTS = 5     # K: minimum graded responses before graduation
WELL_KNOWN_THRESHOLD = 0.9      # T: minimum running accuracy for graduation


# ---- Learner Defaults ----

DEFAULT_MAX_ROTATION_SIZE = 5   # Items actively learned at once
DEFAULT_MIN_POOL_SIZE = 1       # Floor on items kept in rotation


# ---- Vocabulary Defaults ----

DEFAULT_KNOWN_LANG = "en"
DEFAULT_LEARNING_LANG = "es"
ALTERNATIVES_SEPARATOR = ","


# ---- Prompt Formatting ----

PROMPT_TEMPLATE = "Translate: '{}'"
PROMPT_FIELD_SEPARATOR = "    "
