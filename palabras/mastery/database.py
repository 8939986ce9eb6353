"""
Database - Study Database I/O Operations

Handles all database operations for vocabulary, learner profiles and
mastery records. Uses SQLAlchemy ORM with a Postgres backend (SQLite is
accepted for local runs and tests).

This module handles ONLY database I/O.
Grading and aggregate logic is handled by the grader and aggregates modules.
Read/write helpers take an open Session so callers can compose several of
them inside one transaction (see session_scope).
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Iterator, Optional

from loguru import logger
from sqlalchemy import and_, create_engine, event, func, inspect, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from palabras import config
from palabras.errors import ConflictingUpdate, InvalidArgument, NotFound
from palabras.mastery.models import (
    Base,
    LearnerProfile as LearnerProfileModel,
    MasteryRecord as MasteryRecordModel,
    Vocab as VocabModel,
)
from palabras.mastery.state import (
    LearnerProfile,
    MasteryRecord,
    VocabularyItem,
    as_utc,
    initialize_new_record,
    validate_learner_profile,
    validate_mastery_record,
)


# Postgres: serialization_failure, deadlock_detected, lock_not_available
_CONFLICT_PGCODES = {"40001", "40P01", "55P03"}

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


# ---- Connection Management ----

def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    """
    Let SQLAlchemy control BEGIN on pysqlite so SAVEPOINTs nest correctly.

    Transactions start with BEGIN IMMEDIATE: SQLite has no row locks, so the
    write lock is taken up front and concurrent requests queue on the busy
    timeout instead of failing with "database is locked" when they upgrade
    from a read.
    """
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine() -> Engine:
    """
    Get SQLAlchemy engine for database connection.

    The engine is created once per process and reused; Postgres connections
    are pooled.

    Returns:
        SQLAlchemy Engine instance
    """
    global _engine, _session_factory

    if _engine is not None:
        return _engine

    db_url = config.get_database_url()
    if db_url.startswith("sqlite"):
        _engine = create_engine(db_url, echo=False)
        _install_sqlite_transaction_hooks(_engine)
    else:
        _engine = create_engine(
            db_url,
            pool_size=5,           # Keep 5 connections open
            max_overflow=10,       # Allow up to 10 extra connections
            pool_pre_ping=True,    # Verify connections before use
            echo=False
        )
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)
    return _engine


def dispose_engine() -> None:
    """Drop the cached engine (next call reconnects using the current environment)."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def get_session() -> Session:
    """
    Get a SQLAlchemy session for database operations.

    Returns:
        SQLAlchemy Session instance
    """
    get_engine()
    return _session_factory()


def _is_conflict(exc: DBAPIError) -> bool:
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode in _CONFLICT_PGCODES:
        return True
    return "database is locked" in str(exc.orig)


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Provide a transactional scope around a series of operations.

    Commits on success. On any error the whole transaction is rolled back and
    the error re-raised; storage-level serialization failures surface as
    ConflictingUpdate.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except ConflictingUpdate as exc:
        session.rollback()
        logger.warning(f"Conflicting update rolled back: {exc}")
        raise
    except StaleDataError as exc:
        session.rollback()
        logger.warning(f"Conflicting update rolled back: {exc}")
        raise ConflictingUpdate(str(exc)) from exc
    except DBAPIError as exc:
        session.rollback()
        if _is_conflict(exc):
            logger.warning(f"Conflicting update rolled back: {exc.orig}")
            raise ConflictingUpdate(str(exc.orig)) from exc
        raise
    except Exception:  # Rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.close()


def init_db():
    """
    Initialize database schema if tables don't exist.

    Creates all tables defined in SQLAlchemy models.
    Safe to call multiple times - only creates missing tables.
    """
    engine = get_engine()

    existing_tables = set(inspect(engine).get_table_names())
    expected = set(Base.metadata.tables)
    if expected <= existing_tables:
        return

    Base.metadata.create_all(engine)
    logger.info(f"Database tables initialized: {sorted(expected - existing_tables)}")


def reset_db():
    """
    DANGEROUS: Delete all data and recreate tables.

    Only use this for testing or when you want to start fresh.
    All study history will be lost!
    """
    engine = get_engine()
    Base.metadata.drop_all(engine)
    logger.warning("All study tables dropped")

    # Recreate tables
    init_db()


# ---- Row Conversion ----

def _to_item(row: VocabModel) -> VocabularyItem:
    return VocabularyItem(
        id=row.id,
        learning_text=row.learning_text,
        reference_text=row.reference_text or "",
        known_lang_code=row.known_lang_code,
        learning_lang_code=row.learning_lang_code,
        term_count=row.term_count,
        alternatives=row.alternatives,
        hint=row.hint,
        pos=row.pos,
        created=as_utc(row.created),
    )


def _to_learner(row: LearnerProfileModel) -> LearnerProfile:
    return LearnerProfile(
        id=row.id,
        code=row.code,
        display_name=row.display_name or "",
        max_rotation_size=row.max_rotation_size,
        min_pool_size=row.min_pool_size,
        num_known=row.num_known,
        num_correct=row.num_correct,
        num_incorrect=row.num_incorrect,
        total_percentage=row.total_percentage,
        updated=as_utc(row.updated),
    )


def _to_record(row: MasteryRecordModel) -> MasteryRecord:
    return MasteryRecord(
        id=row.id,
        vocab_id=row.vocab_id,
        learner_id=row.learner_id,
        attempts=row.attempts,
        correct_attempts=row.correct_attempts,
        percentage_correct=row.percentage_correct,
        last_change=row.last_change,
        created=as_utc(row.created),
        last_tested=as_utc(row.last_tested),
        well_known=row.well_known,
        known_since=as_utc(row.known_since),
        user_notes=row.user_notes or "",
        baseline_attempts=row.baseline_attempts,
        baseline_correct=row.baseline_correct,
        version=row.version,
    )


def _record_values(record: MasteryRecord) -> dict:
    return {
        "attempts": record.attempts,
        "correct_attempts": record.correct_attempts,
        "percentage_correct": record.percentage_correct,
        "last_change": record.last_change,
        "last_tested": record.last_tested,
        "well_known": record.well_known,
        "known_since": record.known_since,
        "user_notes": record.user_notes,
        "baseline_attempts": record.baseline_attempts,
        "baseline_correct": record.baseline_correct,
    }


# ---- Vocabulary ----

def load_vocab(session: Session, vocab_id: int) -> VocabularyItem:
    """
    Load a vocabulary item.

    Raises:
        NotFound: if no item has this id
    """
    row = session.get(VocabModel, vocab_id)
    if row is None:
        raise NotFound("Vocabulary item", vocab_id)
    return _to_item(row)


def insert_vocab(session: Session, item: VocabularyItem) -> VocabularyItem:
    """
    Insert a new vocabulary item.

    Raises:
        InvalidArgument: if the learning text is already present
    """
    row = VocabModel(
        learning_text=item.learning_text,
        reference_text=item.reference_text or "",
        known_lang_code=item.known_lang_code,
        learning_lang_code=item.learning_lang_code,
        term_count=item.term_count,
        alternatives=item.alternatives,
        hint=item.hint,
        pos=item.pos,
        created=item.created,
    )
    try:
        with session.begin_nested():
            session.add(row)
    except IntegrityError as exc:
        raise InvalidArgument(
            f"Vocabulary item already exists for {item.learning_text!r}"
        ) from exc
    return _to_item(row)


def update_vocab_reference(
    session: Session,
    vocab_id: int,
    reference_text: str,
    alternatives: Optional[str] = None
) -> VocabularyItem:
    """Back-fill or correct the reference translation of an item."""
    row = session.get(VocabModel, vocab_id)
    if row is None:
        raise NotFound("Vocabulary item", vocab_id)
    row.reference_text = reference_text
    if alternatives is not None:
        row.alternatives = alternatives
    session.flush()
    return _to_item(row)


def find_vocab_by_learning_text(session: Session, learning_text: str) -> Optional[VocabularyItem]:
    row = session.execute(
        select(VocabModel).where(VocabModel.learning_text == learning_text)
    ).scalar_one_or_none()
    return _to_item(row) if row is not None else None


def get_vocab_missing_reference(session: Session, limit: int) -> list[VocabularyItem]:
    """Items without a reference translation, oldest first."""
    rows = session.execute(
        select(VocabModel)
        .where(or_(VocabModel.reference_text.is_(None), VocabModel.reference_text == ""))
        .order_by(VocabModel.created, VocabModel.id)
        .limit(limit)
    ).scalars().all()
    return [_to_item(row) for row in rows]


# ---- Learners ----

def load_learner(session: Session, learner_id: int, for_update: bool = False) -> LearnerProfile:
    """
    Load a learner profile.

    Args:
        session: Open session
        learner_id: Learner id
        for_update: Lock the row until the transaction ends

    Raises:
        NotFound: if no learner has this id
    """
    stmt = select(LearnerProfileModel).where(LearnerProfileModel.id == learner_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = session.execute(stmt).scalar_one_or_none()
    if row is None:
        raise NotFound("Learner", learner_id)
    return _to_learner(row)


def load_learner_by_code(session: Session, code: str) -> LearnerProfile:
    row = session.execute(
        select(LearnerProfileModel).where(LearnerProfileModel.code == code)
    ).scalar_one_or_none()
    if row is None:
        raise NotFound("Learner", code)
    return _to_learner(row)


def insert_learner(session: Session, profile: LearnerProfile) -> LearnerProfile:
    """
    Insert a new learner profile.

    Raises:
        InvalidArgument: if the profile is invalid or the code is taken
    """
    validate_learner_profile(profile)
    row = LearnerProfileModel(
        code=profile.code,
        display_name=profile.display_name,
        max_rotation_size=profile.max_rotation_size,
        min_pool_size=profile.min_pool_size,
        num_known=profile.num_known,
        num_correct=profile.num_correct,
        num_incorrect=profile.num_incorrect,
        total_percentage=profile.total_percentage,
        updated=profile.updated,
    )
    try:
        with session.begin_nested():
            session.add(row)
    except IntegrityError as exc:
        raise InvalidArgument(f"Learner code already in use: {profile.code!r}") from exc
    return _to_learner(row)


def save_learner_profile(session: Session, profile: LearnerProfile) -> LearnerProfile:
    """
    Persist a learner profile's configuration and aggregates.

    Raises:
        InvalidArgument: if the profile breaks an invariant (nothing is written)
        NotFound: if the learner does not exist
    """
    validate_learner_profile(profile)
    result = session.execute(
        update(LearnerProfileModel)
        .where(LearnerProfileModel.id == profile.id)
        .values(
            display_name=profile.display_name,
            max_rotation_size=profile.max_rotation_size,
            min_pool_size=profile.min_pool_size,
            num_known=profile.num_known,
            num_correct=profile.num_correct,
            num_incorrect=profile.num_incorrect,
            total_percentage=profile.total_percentage,
            updated=profile.updated,
        )
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise NotFound("Learner", profile.id)
    return profile


# ---- Mastery Records ----

def load_mastery_record(
    session: Session,
    record_id: int,
    for_update: bool = False
) -> MasteryRecord:
    """
    Load a mastery record.

    Args:
        session: Open session
        record_id: Mastery record id
        for_update: Lock the row until the transaction ends

    Raises:
        NotFound: if no record has this id
    """
    stmt = select(MasteryRecordModel).where(MasteryRecordModel.id == record_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = session.execute(stmt).scalar_one_or_none()
    if row is None:
        raise NotFound("Mastery record", record_id)
    return _to_record(row)


def find_mastery_record(
    session: Session,
    vocab_id: int,
    learner_id: int,
    for_update: bool = False
) -> Optional[MasteryRecord]:
    stmt = select(MasteryRecordModel).where(
        MasteryRecordModel.vocab_id == vocab_id,
        MasteryRecordModel.learner_id == learner_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    row = session.execute(stmt).scalar_one_or_none()
    return _to_record(row) if row is not None else None


def get_or_create_mastery_record(
    session: Session,
    vocab_id: int,
    learner_id: int,
    timestamp: Optional[datetime] = None,
    for_update: bool = False
) -> tuple[MasteryRecord, bool]:
    """
    Fetch the record for (vocab, learner), creating it on first exposure.

    Idempotent under concurrent calls: the insert runs inside a SAVEPOINT and
    a unique-constraint violation falls back to reading the winner's row.

    Returns:
        (record, created)
    """
    existing = find_mastery_record(session, vocab_id, learner_id, for_update=for_update)
    if existing is not None:
        return existing, False

    fresh = initialize_new_record(vocab_id, learner_id, timestamp)
    row = MasteryRecordModel(
        vocab_id=vocab_id,
        learner_id=learner_id,
        created=fresh.created,
        version=0,
        **_record_values(fresh),
    )
    try:
        with session.begin_nested():
            session.add(row)
    except IntegrityError:
        winner = find_mastery_record(session, vocab_id, learner_id, for_update=for_update)
        if winner is None:
            raise
        return winner, False

    return _to_record(row), True


def upsert_mastery_record(session: Session, record: MasteryRecord) -> MasteryRecord:
    """
    Create or update a mastery record keyed by (vocab_id, learner_id).

    Updates are a compare-and-swap on `version`: if another transaction wrote
    the row since `record` was read, nothing is written.

    Raises:
        InvalidArgument: if the record breaks an invariant
        ConflictingUpdate: if the stored version moved on
    """
    validate_mastery_record(record)

    if record.id is None:
        stored, _ = get_or_create_mastery_record(
            session, record.vocab_id, record.learner_id, record.created
        )
        record = replace(record, id=stored.id, version=stored.version)

    result = session.execute(
        update(MasteryRecordModel)
        .where(
            MasteryRecordModel.id == record.id,
            MasteryRecordModel.vocab_id == record.vocab_id,
            MasteryRecordModel.learner_id == record.learner_id,
            MasteryRecordModel.version == record.version,
        )
        .values(version=MasteryRecordModel.version + 1, **_record_values(record))
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise ConflictingUpdate(
            f"Mastery record {record.id} changed since version {record.version} was read"
        )
    return replace(record, version=record.version + 1)


def load_candidate_pool(
    session: Session,
    learner_id: int,
    exclude_well_known: bool = True
) -> list[tuple[VocabularyItem, Optional[MasteryRecord]]]:
    """
    Load every vocabulary item paired with this learner's record for it.

    Items the learner has never seen are paired with None.

    Args:
        session: Open session
        learner_id: Learner id
        exclude_well_known: Drop pairs whose record is well known

    Raises:
        NotFound: if the learner does not exist
    """
    if session.get(LearnerProfileModel, learner_id) is None:
        raise NotFound("Learner", learner_id)

    stmt = (
        select(VocabModel, MasteryRecordModel)
        .outerjoin(
            MasteryRecordModel,
            and_(
                MasteryRecordModel.vocab_id == VocabModel.id,
                MasteryRecordModel.learner_id == learner_id,
            ),
        )
        .order_by(VocabModel.id)
    )
    if exclude_well_known:
        stmt = stmt.where(
            or_(MasteryRecordModel.id.is_(None), MasteryRecordModel.well_known.is_(False))
        )

    return [
        (_to_item(vocab_row), _to_record(record_row) if record_row is not None else None)
        for vocab_row, record_row in session.execute(stmt).all()
    ]


def count_rotation(session: Session, learner_id: int) -> int:
    """Number of this learner's records that are not well known."""
    return session.execute(
        select(func.count())
        .select_from(MasteryRecordModel)
        .where(
            MasteryRecordModel.learner_id == learner_id,
            MasteryRecordModel.well_known.is_(False),
        )
    ).scalar_one()
