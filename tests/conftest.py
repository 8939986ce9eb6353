"""
Shared fixtures: a throwaway SQLite study database per test.
"""

from datetime import datetime, timedelta, timezone

import pytest

from palabras.config import EngineConfig
from palabras.mastery import database
from palabras.mastery.state import LearnerProfile, MasteryRecord, VocabularyItem


@pytest.fixture
def study_db(tmp_path, monkeypatch):
    """Point the engine at a fresh SQLite file and create the schema."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'study.db'}")
    monkeypatch.setenv("TEST_MODE", "false")
    database.dispose_engine()
    database.init_db()
    yield database
    database.dispose_engine()


@pytest.fixture
def engine_config():
    return EngineConfig(min_attempts=5, known_threshold=0.9)


@pytest.fixture
def t0():
    return datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def make_item(vocab_id, learning_text, reference_text="ref", **kwargs):
    return VocabularyItem(
        id=vocab_id,
        learning_text=learning_text,
        reference_text=reference_text,
        **kwargs,
    )


def make_record(vocab_id, attempts=0, correct=0, learner_id=1, last_tested=None, **kwargs):
    return MasteryRecord(
        id=vocab_id * 10,
        vocab_id=vocab_id,
        learner_id=learner_id,
        attempts=attempts,
        correct_attempts=correct,
        percentage_correct=(correct / attempts) if attempts else 0.0,
        last_tested=last_tested,
        **kwargs,
    )


def make_learner(max_rotation_size=5, min_pool_size=1, **kwargs):
    return LearnerProfile(
        id=1,
        code="learner-1",
        max_rotation_size=max_rotation_size,
        min_pool_size=min_pool_size,
        **kwargs,
    )


def hours_after(start, hours):
    return start + timedelta(hours=hours)
