"""
SQLAlchemy ORM Models for the study database

Defines Vocab, LearnerProfile and MasteryRecord tables for Postgres
persistence. Range checks mirror the invariants enforced in memory so a
storage round-trip can never widen them.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_base

from palabras.constants import (
    DEFAULT_KNOWN_LANG,
    DEFAULT_LEARNING_LANG,
    DEFAULT_MAX_ROTATION_SIZE,
    DEFAULT_MIN_POOL_SIZE,
)

Base = declarative_base()


class Vocab(Base):
    """
    A vocabulary pair.

    `learning_text` is unique so the same prompt is never imported twice.
    """
    __tablename__ = 'vocab'

    id = Column(Integer, primary_key=True, autoincrement=True)
    learning_text = Column(String, nullable=False, unique=True)
    reference_text = Column(String, nullable=False, default="")
    known_lang_code = Column(String(16), nullable=False, default=DEFAULT_KNOWN_LANG)
    learning_lang_code = Column(String(16), nullable=False, default=DEFAULT_LEARNING_LANG)
    term_count = Column(Integer, nullable=False, default=1)

    # Display-only metadata
    alternatives = Column(String, nullable=True)  # Comma-separated extra accepted answers
    hint = Column(String, nullable=True)
    pos = Column(String(50), nullable=True)

    created = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("term_count >= 1", name="ck_vocab_term_count"),
    )

    def __repr__(self):
        return f"<Vocab({self.id}, {self.learning_text!r})>"


class LearnerProfile(Base):
    """
    One row per learner: rotation configuration plus aggregate counters.
    """
    __tablename__ = 'learner_profile'

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(255), nullable=False, unique=True)
    display_name = Column(String(255), nullable=False, default="")

    # Rotation configuration
    max_rotation_size = Column(Integer, nullable=False, default=DEFAULT_MAX_ROTATION_SIZE)
    min_pool_size = Column(Integer, nullable=False, default=DEFAULT_MIN_POOL_SIZE)

    # Aggregates (written only by the aggregate updater)
    num_known = Column(Integer, nullable=False, default=0)
    num_correct = Column(Integer, nullable=False, default=0)
    num_incorrect = Column(Integer, nullable=False, default=0)
    total_percentage = Column(Float(precision=53), nullable=False, default=0.0)
    updated = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("max_rotation_size >= 1", name="ck_learner_max_rotation"),
        CheckConstraint("min_pool_size >= 1", name="ck_learner_min_pool"),
        CheckConstraint("num_known >= 0", name="ck_learner_num_known"),
        CheckConstraint("num_correct >= 0", name="ck_learner_num_correct"),
        CheckConstraint("num_incorrect >= 0", name="ck_learner_num_incorrect"),
        CheckConstraint(
            "total_percentage >= 0.0 AND total_percentage <= 1.0",
            name="ck_learner_total_percentage",
        ),
    )

    def __repr__(self):
        return f"<LearnerProfile({self.id}, {self.code!r})>"


class MasteryRecord(Base):
    """
    Study state for one (vocab, learner) pair.

    `version` is bumped on every write and checked on update, so two
    concurrent gradings cannot both commit against the same prior state.
    """
    __tablename__ = 'mastery_record'

    id = Column(Integer, primary_key=True, autoincrement=True)
    vocab_id = Column(Integer, ForeignKey('vocab.id'), nullable=False)
    learner_id = Column(Integer, ForeignKey('learner_profile.id'), nullable=False)

    # Attempt tracking
    attempts = Column(Integer, nullable=False, default=0)
    correct_attempts = Column(Integer, nullable=False, default=0)
    percentage_correct = Column(Float(precision=53), nullable=False, default=0.0)
    last_change = Column(Float(precision=53), nullable=False, default=0.0)

    created = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_tested = Column(DateTime(timezone=True), nullable=True)

    # Graduation
    well_known = Column(Boolean, nullable=False, default=False)
    known_since = Column(DateTime(timezone=True), nullable=True)

    user_notes = Column(String, nullable=False, default="")

    # Counters at the last demotion; graduation counts attempts made since
    baseline_attempts = Column(Integer, nullable=False, default=0)
    baseline_correct = Column(Integer, nullable=False, default=0)

    version = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("vocab_id", "learner_id", name="uq_mastery_vocab_learner"),
        CheckConstraint("attempts >= 0", name="ck_mastery_attempts"),
        CheckConstraint(
            "correct_attempts >= 0 AND correct_attempts <= attempts",
            name="ck_mastery_correct_attempts",
        ),
        CheckConstraint(
            "percentage_correct >= 0.0 AND percentage_correct <= 1.0",
            name="ck_mastery_percentage",
        ),
        CheckConstraint(
            "baseline_correct >= 0 AND baseline_correct <= baseline_attempts "
            "AND baseline_attempts <= attempts",
            name="ck_mastery_baseline",
        ),
    )

    def __repr__(self):
        return f"<MasteryRecord({self.id}, vocab={self.vocab_id}, learner={self.learner_id})>"
