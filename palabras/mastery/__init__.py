"""
Mastery - study state, grading and aggregates

Main API for the vocabulary study engine.

Quick start:
    from palabras import mastery

    # Initialize database
    mastery.init_db()

    # Grade a response (algorithm only, no DB calls)
    outcome = mastery.grade_item(item, record, "pequeña", config)

    # Fold it into the learner's counters
    learner = mastery.apply_outcome(learner, outcome)
"""

# Core algorithm API
from palabras.mastery.grader import grade_item, process_response, running_accuracy
from palabras.mastery.aggregates import apply_outcome, fold_outcomes
from palabras.mastery.matching import is_correct_response, normalize_answer

# Database API
from palabras.mastery.database import (
    init_db,
    reset_db,
    get_session,
    session_scope,
    load_learner,
    load_candidate_pool,
    load_mastery_record,
    get_or_create_mastery_record,
    upsert_mastery_record,
    save_learner_profile,
    count_rotation,
)

# State
from palabras.mastery.state import (
    GradeOutcome,
    LearnerProfile,
    MasteryRecord,
    VocabularyItem,
    demote,
    graduate,
    initialize_new_record,
)


__all__ = [
    # Core algorithm
    "grade_item",
    "process_response",
    "running_accuracy",
    "apply_outcome",
    "fold_outcomes",
    "is_correct_response",
    "normalize_answer",

    # Database operations
    "init_db",
    "reset_db",
    "get_session",
    "session_scope",
    "load_learner",
    "load_candidate_pool",
    "load_mastery_record",
    "get_or_create_mastery_record",
    "upsert_mastery_record",
    "save_learner_profile",
    "count_rotation",

    # State
    "GradeOutcome",
    "LearnerProfile",
    "MasteryRecord",
    "VocabularyItem",
    "demote",
    "graduate",
    "initialize_new_record",
]
