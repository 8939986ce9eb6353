"""
Study service - the engine's query and mutation surface.

Each public function is one request: it opens a transaction, reads what it
needs through the storage contracts, runs the pure scheduling/grading logic
and writes the results back. A request either commits completely or leaves
storage untouched.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from loguru import logger

from palabras.config import EngineConfig
from palabras.constants import DEFAULT_MAX_ROTATION_SIZE, DEFAULT_MIN_POOL_SIZE
from palabras.errors import InvalidArgument, UngradableItem
from palabras.mastery import aggregates, database, grader
from palabras.mastery.state import (
    GradeOutcome,
    LearnerProfile,
    MasteryRecord,
    VocabularyItem,
    demote,
    utc_now,
)
from palabras.schemas import Challenge, ItemStats, LearnerStats, Verdict
from palabras.session_builders import (
    SessionEntry,
    build_study_pool_state,
    create_study_session,
    determine_prompt,
    floor_introductions,
)


# ---- Learners ----

def create_learner(
    code: str,
    display_name: str = "",
    max_rotation_size: int = DEFAULT_MAX_ROTATION_SIZE,
    min_pool_size: int = DEFAULT_MIN_POOL_SIZE,
) -> LearnerProfile:
    """
    Register a learner.

    Raises:
        InvalidArgument: if the configuration is invalid or the code is taken
    """
    profile = LearnerProfile(
        id=None,
        code=(code or "").strip(),
        display_name=display_name,
        max_rotation_size=max_rotation_size,
        min_pool_size=min_pool_size,
    )
    with database.session_scope() as session:
        stored = database.insert_learner(session, profile)

    logger.info(f"Created learner {stored.id} ({stored.code})")
    return stored


def load_learner(learner_id: int) -> LearnerProfile:
    with database.session_scope() as session:
        return database.load_learner(session, learner_id)


def load_learner_by_code(code: str) -> LearnerProfile:
    with database.session_scope() as session:
        return database.load_learner_by_code(session, code)


# ---- Scheduling ----

def select_session(learner_id: int, batch_size: int) -> list[SessionEntry]:
    """
    Select the next batch of items for a learner.

    Tops the rotation up to the learner's floor, then picks up to batch_size
    items weakest first. Fresh items that are picked get a mastery record.

    Args:
        learner_id: Learner id
        batch_size: Maximum number of entries

    Returns:
        Ordered session entries (fewer than batch_size when the pool runs out)

    Raises:
        InvalidArgument: if batch_size is not positive (nothing is read or written)
        NotFound: if the learner does not exist
    """
    if batch_size <= 0:
        raise InvalidArgument(f"batch_size must be positive, got {batch_size}")

    with database.session_scope() as session:
        learner = database.load_learner(session, learner_id)
        candidates = database.load_candidate_pool(session, learner_id, exclude_well_known=False)
        pool_state = build_study_pool_state(learner, candidates)

        introduced = 0
        for item in floor_introductions(pool_state):
            record, created = database.get_or_create_mastery_record(session, item.id, learner_id)
            pool_state.admit(record)
            introduced += int(created)

        entries: list[SessionEntry] = []
        for item, record in create_study_session(pool_state, batch_size):
            if record is None:
                record, created = database.get_or_create_mastery_record(session, item.id, learner_id)
                pool_state.admit(record)
                introduced += int(created)
            entries.append(SessionEntry(
                item=item,
                record=record,
                prompt=determine_prompt(item, record.user_notes),
            ))

    logger.debug(
        f"Session for learner {learner_id}: {len(entries)}/{batch_size} items, "
        f"rotation={len(pool_state.rotation)}, introduced={introduced}"
    )
    return entries


def get_study_list(learner_id: int, limit: int) -> list[Challenge]:
    """Study list for an API layer: ids plus prompt, never the answer."""
    return [
        Challenge(
            vocab_id=entry.item.id,
            mastery_record_id=entry.record.id,
            prompt=entry.prompt,
        )
        for entry in select_session(learner_id, limit)
    ]


# ---- Grading ----

def grade_response(
    vocab_id: int,
    mastery_record_id: Optional[int],
    submitted_text: str,
    learner_id: Optional[int] = None,
    config: Optional[EngineConfig] = None,
    timestamp: Optional[datetime] = None,
) -> GradeOutcome:
    """
    Grade one response and commit the record and aggregate updates together.

    The mastery record and then the learner row are locked for the duration
    of the transaction. Without a mastery_record_id the record for
    (vocab_id, learner_id) is fetched or created.

    Raises:
        NotFound: unknown item, record or learner
        InvalidArgument: record belongs to another item, or neither a record
            id nor a learner id was given
        UngradableItem: the item has no reference translation
        ConflictingUpdate: a concurrent grading of the same record won
    """
    _, outcome = _grade(vocab_id, mastery_record_id, submitted_text, learner_id, config, timestamp)
    return outcome


def _grade(
    vocab_id: int,
    mastery_record_id: Optional[int],
    submitted_text: str,
    learner_id: Optional[int],
    config: Optional[EngineConfig],
    timestamp: Optional[datetime],
) -> tuple[VocabularyItem, GradeOutcome]:
    config = config or EngineConfig.from_env()
    timestamp = timestamp or utc_now()

    with database.session_scope() as session:
        item = database.load_vocab(session, vocab_id)
        if not item.is_gradable:
            logger.warning(f"Vocab {vocab_id} has no reference translation; not graded")
            raise UngradableItem(vocab_id)

        if mastery_record_id is not None:
            record = database.load_mastery_record(session, mastery_record_id, for_update=True)
            if record.vocab_id != vocab_id:
                raise InvalidArgument(
                    f"Mastery record {mastery_record_id} belongs to vocab {record.vocab_id}, "
                    f"not {vocab_id}"
                )
        elif learner_id is not None:
            database.load_learner(session, learner_id)
            record, _ = database.get_or_create_mastery_record(
                session, vocab_id, learner_id, timestamp, for_update=True
            )
        else:
            raise InvalidArgument("Either mastery_record_id or learner_id is required")

        learner = database.load_learner(session, record.learner_id, for_update=True)

        outcome = grader.grade_item(item, record, submitted_text, config=config, timestamp=timestamp)
        saved = database.upsert_mastery_record(session, outcome.record)
        database.save_learner_profile(
            session, aggregates.apply_outcome(learner, outcome, timestamp)
        )

    logger.debug(
        f"Graded vocab {vocab_id} for learner {record.learner_id}: "
        f"correct={outcome.correct}, accuracy={saved.percentage_correct:.2f}"
    )
    return item, GradeOutcome(
        correct=outcome.correct,
        record=saved,
        became_well_known=outcome.became_well_known,
        newly_known=outcome.newly_known,
    )


def check_response(
    vocab_id: int,
    mastery_record_id: int,
    entered: str,
    config: Optional[EngineConfig] = None,
) -> Verdict:
    """Grade a response and report the verdict for an API layer."""
    item, outcome = _grade(vocab_id, mastery_record_id, entered, None, config, None)
    return Verdict(
        correct=outcome.correct,
        expected=item.reference_text,
        percentage_correct=outcome.record.percentage_correct,
        last_change=outcome.record.last_change,
        well_known=outcome.record.well_known,
        newly_known=outcome.newly_known,
    )


# ---- Learner actions ----

def set_user_notes(mastery_record_id: int, notes: str) -> MasteryRecord:
    """Attach the learner's own notes to a record; shown in later prompts."""
    with database.session_scope() as session:
        record = database.load_mastery_record(session, mastery_record_id, for_update=True)
        record.user_notes = (notes or "").strip()
        return database.upsert_mastery_record(session, record)


def demote_to_learning(mastery_record_id: int, config: Optional[EngineConfig] = None) -> MasteryRecord:
    """
    Put a well-known item back into rotation at the learner's request.

    The record keeps its graded history; graduation only counts attempts made
    after the demotion.

    Raises:
        InvalidArgument: if manual demotion is disabled, the record is not
            well known or the learner's rotation is already full
        NotFound: if the record does not exist
    """
    config = config or EngineConfig.from_env()
    if not config.allow_manual_demotion:
        raise InvalidArgument("Manual demotion is disabled (set ALLOW_MANUAL_DEMOTION=true)")

    with database.session_scope() as session:
        record = database.load_mastery_record(session, mastery_record_id, for_update=True)
        learner = database.load_learner(session, record.learner_id, for_update=True)
        demote(record)
        in_rotation = database.count_rotation(session, learner.id)
        if in_rotation >= learner.max_rotation_size:
            raise InvalidArgument(
                f"Rotation for learner {learner.id} is full "
                f"({in_rotation}/{learner.max_rotation_size}); cannot demote"
            )
        saved = database.upsert_mastery_record(session, record)

    logger.info(f"Mastery record {mastery_record_id} demoted to learning")
    return saved


# ---- Stats ----

def get_item_stats(mastery_record_id: int) -> ItemStats:
    """
    Read-only statistics for one mastery record.

    Raises:
        NotFound: if the record does not exist
    """
    with database.session_scope() as session:
        record = database.load_mastery_record(session, mastery_record_id)
    return ItemStats(
        attempts=record.attempts,
        correct_attempts=record.correct_attempts,
        percentage_correct=record.percentage_correct,
        last_change=record.last_change,
        last_tested=record.last_tested,
    )


def get_learner_stats(learner_id: int) -> LearnerStats:
    """
    Read-only aggregate statistics for one learner.

    Raises:
        NotFound: if the learner does not exist
    """
    with database.session_scope() as session:
        learner = database.load_learner(session, learner_id)
    return LearnerStats(
        num_known=learner.num_known,
        num_correct=learner.num_correct,
        num_incorrect=learner.num_incorrect,
        total_percentage=learner.total_percentage,
    )
