"""
Grader - Mastery Update Logic

Pure grading and state updates (no database calls).

Main workflow:
1. Load item + mastery record (caller's responsibility)
2. Decide correctness (matching module)
3. Update attempt counters and running accuracy
4. Apply the graduation rule
5. Return a GradeOutcome for the aggregate updater

Accuracy is a straight running average:
    percentage_correct = correct_attempts / attempts
and last_change is the signed difference from the previous value.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Optional

from loguru import logger

from palabras.config import EngineConfig
from palabras.mastery import matching
from palabras.mastery.state import (
    GradeOutcome,
    MasteryRecord,
    VocabularyItem,
    graduate,
    utc_now,
    validate_mastery_record,
)


def running_accuracy(correct_attempts: int, attempts: int) -> float:
    """Accuracy over all graded attempts (0.0 before the first attempt)."""
    if attempts <= 0:
        return 0.0
    return min(1.0, max(0.0, correct_attempts / attempts))


def meets_graduation(record: MasteryRecord, config: EngineConfig) -> bool:
    """
    True when the sample is large enough and accurate enough.

    Only attempts since the last demotion count; for a record that was never
    demoted that is its whole history.
    """
    accuracy = running_accuracy(record.window_correct, record.window_attempts)
    return (
        record.window_attempts >= config.min_attempts
        and accuracy >= config.known_threshold
    )


def process_response(
    record: MasteryRecord,
    correct: bool,
    config: EngineConfig,
    timestamp: Optional[datetime] = None
) -> GradeOutcome:
    """
    Apply one graded response to a mastery record.

    The input record is left untouched; the outcome carries an updated copy.

    Args:
        record: Current mastery record (may be freshly initialized)
        correct: Verdict for the response
        config: Graduation thresholds
        timestamp: Grading time (defaults to now)

    Returns:
        GradeOutcome with the updated record and transition flags
    """
    validate_mastery_record(record)
    timestamp = timestamp or utc_now()

    updated = replace(record)
    updated.attempts = record.attempts + 1
    updated.correct_attempts = record.correct_attempts + (1 if correct else 0)
    updated.percentage_correct = running_accuracy(updated.correct_attempts, updated.attempts)
    updated.last_change = updated.percentage_correct - record.percentage_correct
    updated.last_tested = timestamp

    became_well_known = False
    newly_known = False
    if not updated.well_known and meets_graduation(updated, config):
        became_well_known = True
        newly_known = graduate(updated, timestamp)
        logger.info(
            f"Mastery record {updated.id} (vocab {updated.vocab_id}) is now well known "
            f"after {updated.attempts} attempts at {updated.percentage_correct:.0%}"
        )

    validate_mastery_record(updated)
    return GradeOutcome(
        correct=correct,
        record=updated,
        became_well_known=became_well_known,
        newly_known=newly_known,
    )


def grade_item(
    item: VocabularyItem,
    record: MasteryRecord,
    submitted: str,
    config: EngineConfig,
    timestamp: Optional[datetime] = None
) -> GradeOutcome:
    """
    Match a response against the item and update the record.

    Raises:
        UngradableItem: if the item has no reference translation
    """
    correct = matching.is_correct_response(item, submitted)
    return process_response(record, correct, config=config, timestamp=timestamp)
