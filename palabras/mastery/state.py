"""
Mastery State - Study records and their invariants

Defines the in-memory shapes the engine works on and the rules that keep
them consistent.

Key concepts:
- VocabularyItem: a learning-language term and its reference translation
- LearnerProfile: per-learner configuration plus aggregate counters
- MasteryRecord: per-learner, per-item study state
- MasteryStatus: LEARNING -> WELL_KNOWN state machine for a record
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from palabras.constants import (
    ALTERNATIVES_SEPARATOR,
    DEFAULT_KNOWN_LANG,
    DEFAULT_LEARNING_LANG,
    DEFAULT_MAX_ROTATION_SIZE,
    DEFAULT_MIN_POOL_SIZE,
    MasteryStatus,
)
from palabras.errors import InvalidArgument


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (e.g. from SQLite) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def count_terms(text: str) -> int:
    """Number of whitespace-delimited tokens, never less than 1."""
    return max(1, len(text.split()))


@dataclass
class VocabularyItem:
    """
    A vocabulary pair.

    The learner is shown `learning_text` and answers with `reference_text`
    (or one of the comma-separated `alternatives`).
    """
    id: Optional[int]
    learning_text: str
    reference_text: str = ""
    known_lang_code: str = DEFAULT_KNOWN_LANG
    learning_lang_code: str = DEFAULT_LEARNING_LANG
    term_count: int = 0
    alternatives: Optional[str] = None
    hint: Optional[str] = None
    pos: Optional[str] = None
    created: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.term_count:
            self.term_count = count_terms(self.learning_text)

    @property
    def is_gradable(self) -> bool:
        return bool(self.reference_text and self.reference_text.strip())

    def accepted_answers(self) -> list[str]:
        """Reference translation followed by any non-empty alternatives."""
        answers = [self.reference_text]
        if self.alternatives:
            answers.extend(
                alt for alt in self.alternatives.split(ALTERNATIVES_SEPARATOR)
                if alt.strip()
            )
        return answers


@dataclass
class LearnerProfile:
    """Per-learner configuration and aggregate progress counters."""
    id: Optional[int]
    code: str
    display_name: str = ""
    max_rotation_size: int = DEFAULT_MAX_ROTATION_SIZE
    min_pool_size: int = DEFAULT_MIN_POOL_SIZE
    num_known: int = 0
    num_correct: int = 0
    num_incorrect: int = 0
    total_percentage: float = 0.0
    updated: datetime = field(default_factory=utc_now)

    @property
    def rotation_floor(self) -> int:
        """Minimum rotation size, capped by the rotation limit."""
        return min(self.min_pool_size, self.max_rotation_size)


@dataclass
class MasteryRecord:
    """
    Study state for a single (vocabulary item, learner) pair.

    `last_change` is the signed delta applied to `percentage_correct` by the
    most recent grading. `known_since` remembers the first graduation and is
    never cleared. `baseline_attempts` / `baseline_correct` hold the counters
    at the last demotion; graduation only looks at attempts made since then.
    """
    id: Optional[int]
    vocab_id: int
    learner_id: int
    attempts: int = 0
    correct_attempts: int = 0
    percentage_correct: float = 0.0
    last_change: float = 0.0
    created: datetime = field(default_factory=utc_now)
    last_tested: Optional[datetime] = None
    well_known: bool = False
    known_since: Optional[datetime] = None
    user_notes: str = ""
    baseline_attempts: int = 0
    baseline_correct: int = 0
    version: int = 0

    @property
    def status(self) -> MasteryStatus:
        return MasteryStatus.WELL_KNOWN if self.well_known else MasteryStatus.LEARNING

    @property
    def window_attempts(self) -> int:
        return self.attempts - self.baseline_attempts

    @property
    def window_correct(self) -> int:
        return self.correct_attempts - self.baseline_correct


@dataclass(frozen=True)
class GradeOutcome:
    """
    Result of grading one response.

    Consumed by the aggregate updater; `newly_known` is true only on the first
    graduation of the record.
    """
    correct: bool
    record: MasteryRecord
    became_well_known: bool = False
    newly_known: bool = False


def initialize_new_record(
    vocab_id: int,
    learner_id: int,
    timestamp: Optional[datetime] = None
) -> MasteryRecord:
    """
    Initialize state for an item the learner has never seen.

    Args:
        vocab_id: Vocabulary item id
        learner_id: Learner id
        timestamp: Creation time (defaults to now)

    Returns:
        New MasteryRecord with zero attempts, in the LEARNING state
    """
    return MasteryRecord(
        id=None,
        vocab_id=vocab_id,
        learner_id=learner_id,
        created=timestamp or utc_now(),
    )


# ---- State Machine ----

def graduate(record: MasteryRecord, timestamp: datetime) -> bool:
    """
    Apply the LEARNING -> WELL_KNOWN transition (modifies in place).

    Returns:
        True if this is the record's first graduation
    """
    if record.well_known:
        return False
    record.well_known = True
    if record.known_since is None:
        record.known_since = timestamp
        return True
    return False


def demote(record: MasteryRecord) -> None:
    """
    Apply the WELL_KNOWN -> LEARNING transition (modifies in place).

    Only reachable through an explicit learner action. The graded history is
    kept; the graduation window restarts at the current counters so
    graduation has to be earned again.
    """
    if not record.well_known:
        raise InvalidArgument(f"Mastery record {record.id} is not well known")
    record.well_known = False
    record.baseline_attempts = record.attempts
    record.baseline_correct = record.correct_attempts


# ---- Validation ----

def _check_ratio(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise InvalidArgument(f"{name} must be within [0, 1], got {value}")


def validate_mastery_record(record: MasteryRecord) -> None:
    """Raise InvalidArgument if the record breaks a counter or range invariant."""
    if record.attempts < 0 or record.correct_attempts < 0:
        raise InvalidArgument(
            f"Counters must be non-negative (attempts={record.attempts}, "
            f"correct_attempts={record.correct_attempts})"
        )
    if record.correct_attempts > record.attempts:
        raise InvalidArgument(
            f"correct_attempts ({record.correct_attempts}) exceeds attempts ({record.attempts})"
        )
    if not (
        0 <= record.baseline_correct <= record.baseline_attempts <= record.attempts
        and record.baseline_correct <= record.correct_attempts
        and record.window_correct <= record.window_attempts
    ):
        raise InvalidArgument(
            f"Graduation baseline ({record.baseline_correct}/{record.baseline_attempts}) "
            f"does not fit counters ({record.correct_attempts}/{record.attempts})"
        )
    _check_ratio("percentage_correct", record.percentage_correct)


def validate_learner_profile(profile: LearnerProfile) -> None:
    """Raise InvalidArgument if the profile breaks a configuration or counter invariant."""
    if not profile.code or not profile.code.strip():
        raise InvalidArgument("Learner code must be a non-empty string")
    if profile.max_rotation_size < 1:
        raise InvalidArgument(f"max_rotation_size must be >= 1, got {profile.max_rotation_size}")
    if profile.min_pool_size < 1:
        raise InvalidArgument(f"min_pool_size must be >= 1, got {profile.min_pool_size}")
    for name in ("num_known", "num_correct", "num_incorrect"):
        if getattr(profile, name) < 0:
            raise InvalidArgument(f"{name} must be non-negative, got {getattr(profile, name)}")
    _check_ratio("total_percentage", profile.total_percentage)
