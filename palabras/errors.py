"""
Error taxonomy for the study engine.

Every failure the engine surfaces derives from StudyError, so callers can
catch the whole family at the transport boundary.
"""

from __future__ import annotations


class StudyError(Exception):
    """Base class for study engine errors."""


class NotFound(StudyError, LookupError):
    """A referenced learner, vocabulary item or mastery record does not exist."""

    def __init__(self, kind: str, key):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key!r}")


class InvalidArgument(StudyError, ValueError):
    """Request rejected before any mutation was applied."""


class UngradableItem(StudyError):
    """Grading attempted on an item that has no reference translation yet."""

    def __init__(self, vocab_id: int):
        self.vocab_id = vocab_id
        super().__init__(
            f"Vocabulary item {vocab_id} has no reference translation; "
            "translate it before grading"
        )


class ConflictingUpdate(StudyError):
    """
    A concurrent write won the race on the same mastery record.

    Safe to retry from a fresh read: nothing from the losing request was
    committed.
    """
