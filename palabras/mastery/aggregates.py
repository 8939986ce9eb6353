"""
Aggregate updater.

The only writer of learner-wide counters: a deterministic fold of grade
outcomes into the learner profile.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Optional

from palabras.mastery.state import (
    GradeOutcome,
    LearnerProfile,
    utc_now,
    validate_learner_profile,
)


def total_percentage(num_correct: int, num_incorrect: int) -> float:
    """Overall accuracy clamped to [0, 1]; 0.0 before any response."""
    total = num_correct + num_incorrect
    if total <= 0:
        return 0.0
    return min(1.0, max(0.0, num_correct / total))


def apply_outcome(
    learner: LearnerProfile,
    outcome: GradeOutcome,
    timestamp: Optional[datetime] = None
) -> LearnerProfile:
    """
    Fold one grade outcome into the learner's counters.

    Args:
        learner: Prior profile (left untouched)
        outcome: Outcome produced by the grader
        timestamp: Update time (defaults to now)

    Returns:
        New LearnerProfile
    """
    validate_learner_profile(learner)

    num_correct = learner.num_correct + (1 if outcome.correct else 0)
    num_incorrect = learner.num_incorrect + (0 if outcome.correct else 1)

    updated = replace(
        learner,
        num_correct=num_correct,
        num_incorrect=num_incorrect,
        num_known=learner.num_known + (1 if outcome.newly_known else 0),
        total_percentage=total_percentage(num_correct, num_incorrect),
        updated=timestamp or utc_now(),
    )
    validate_learner_profile(updated)
    return updated


def fold_outcomes(learner: LearnerProfile, outcomes: list[GradeOutcome]) -> LearnerProfile:
    """Apply a sequence of outcomes in order."""
    for outcome in outcomes:
        learner = apply_outcome(learner, outcome)
    return learner
