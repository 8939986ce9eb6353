"""
End-to-end study flows through the service layer.
"""

import pytest
from sqlalchemy import func, select

from palabras import study_service, vocab_repo
from palabras.config import EngineConfig
from palabras.errors import InvalidArgument, NotFound, UngradableItem
from palabras.mastery.models import MasteryRecord as MasteryRecordModel, Vocab as VocabModel

from conftest import hours_after


def _record_count(db, learner_id):
    with db.session_scope() as session:
        return session.execute(
            select(func.count()).select_from(MasteryRecordModel)
            .where(MasteryRecordModel.learner_id == learner_id)
        ).scalar_one()


def _add_words(count):
    return [vocab_repo.create_vocab(f"palabra{i}", f"word{i}") for i in range(count)]


def _answer_correctly(entry, config, times, start):
    outcome = None
    for n in range(times):
        outcome = study_service.grade_response(
            entry.item.id, entry.record.id, entry.item.reference_text,
            config=config, timestamp=hours_after(start, n),
        )
    return outcome


# ---- Scheduling ----

def test_fresh_learner_gets_requested_batch(study_db):
    learner = study_service.create_learner("ana", max_rotation_size=5, min_pool_size=3)
    _add_words(10)

    entries = study_service.select_session(learner.id, 4)

    assert len(entries) == 4
    assert all(entry.record.attempts == 0 for entry in entries)
    assert all(entry.record.learner_id == learner.id for entry in entries)
    assert _record_count(study_db, learner.id) == 4


def test_repeated_selection_reuses_rotation(study_db):
    learner = study_service.create_learner("ana", max_rotation_size=5, min_pool_size=3)
    _add_words(10)

    first = study_service.select_session(learner.id, 4)
    second = study_service.select_session(learner.id, 4)

    assert {e.record.id for e in first} == {e.record.id for e in second}
    assert _record_count(study_db, learner.id) == 4


def test_zero_batch_size_is_rejected(study_db):
    learner = study_service.create_learner("ana", min_pool_size=3)
    _add_words(5)

    with pytest.raises(InvalidArgument):
        study_service.select_session(learner.id, 0)
    assert _record_count(study_db, learner.id) == 0


def test_empty_pool_returns_nothing(study_db):
    learner = study_service.create_learner("ana")
    assert study_service.select_session(learner.id, 3) == []


def test_unknown_learner(study_db):
    with pytest.raises(NotFound):
        study_service.select_session(42, 3)


def test_untranslated_items_are_not_scheduled(study_db):
    learner = study_service.create_learner("ana")
    untranslated = vocab_repo.create_vocab("mesa")

    assert study_service.select_session(learner.id, 5) == []

    vocab_repo.set_reference_text(untranslated.id, "table")
    entries = study_service.select_session(learner.id, 5)
    assert [entry.item.id for entry in entries] == [untranslated.id]


def test_study_list_hides_answer(study_db):
    learner = study_service.create_learner("ana")
    vocab_repo.create_vocab("pequeña", "small", hint="size")

    (challenge,) = study_service.get_study_list(learner.id, 5)
    assert challenge.prompt == "Translate: 'pequeña'    hint: size"
    assert "small" not in challenge.prompt


def test_well_known_items_leave_rotation(study_db, engine_config, t0):
    learner = study_service.create_learner("ana")
    vocab_repo.create_vocab("perro", "dog")

    (entry,) = study_service.select_session(learner.id, 5)
    outcome = _answer_correctly(entry, engine_config, 5, t0)

    assert outcome.record.well_known is True
    assert study_service.select_session(learner.id, 5) == []


# ---- Grading ----

def test_fifth_correct_answer_graduates(study_db, engine_config, t0):
    learner = study_service.create_learner("ana")
    vocab_repo.create_vocab("perro", "dog")
    (entry,) = study_service.select_session(learner.id, 1)

    _answer_correctly(entry, engine_config, 4, t0)
    before = study_service.get_learner_stats(learner.id)
    stats = study_service.get_item_stats(entry.record.id)
    assert (stats.attempts, stats.correct_attempts, stats.percentage_correct) == (4, 4, 1.0)

    outcome = _answer_correctly(entry, engine_config, 1, hours_after(t0, 10))
    after = study_service.get_learner_stats(learner.id)

    assert outcome.record.attempts == 5
    assert outcome.record.correct_attempts == 5
    assert outcome.record.percentage_correct == 1.0
    assert outcome.record.well_known is True
    assert outcome.newly_known is True
    assert after.num_known == before.num_known + 1


def test_ungradable_item_changes_nothing(study_db, engine_config):
    learner = study_service.create_learner("ana")
    item = vocab_repo.create_vocab("silla")
    with study_db.session_scope() as session:
        record, _ = study_db.get_or_create_mastery_record(session, item.id, learner.id)

    with pytest.raises(UngradableItem):
        study_service.grade_response(item.id, record.id, "chair", config=engine_config)
    with pytest.raises(UngradableItem):
        study_service.grade_response(item.id, None, "chair", learner_id=learner.id, config=engine_config)

    stats = study_service.get_item_stats(record.id)
    assert (stats.attempts, stats.correct_attempts, stats.last_tested) == (0, 0, None)
    learner_stats = study_service.get_learner_stats(learner.id)
    assert (learner_stats.num_correct, learner_stats.num_incorrect) == (0, 0)


def test_check_response_with_accented_answer(study_db, engine_config):
    with study_db.session_scope() as session:
        session.add(VocabModel(id=115, learning_text="small", reference_text="pequeña", term_count=1))
    learner = study_service.create_learner("ana")
    (entry,) = study_service.select_session(learner.id, 1)
    assert entry.item.id == 115

    verdict = study_service.check_response(115, entry.record.id, "pequeña", config=engine_config)

    assert verdict.correct is True
    assert verdict.last_change > 0
    assert verdict.expected == "pequeña"
    assert verdict.percentage_correct == 1.0


def test_wrong_answer_verdict(study_db, engine_config):
    learner = study_service.create_learner("ana")
    vocab_repo.create_vocab("gato", "cat")
    (entry,) = study_service.select_session(learner.id, 1)

    study_service.check_response(entry.item.id, entry.record.id, "cat", config=engine_config)
    verdict = study_service.check_response(entry.item.id, entry.record.id, "dog", config=engine_config)

    assert verdict.correct is False
    assert verdict.last_change == -0.5
    stats = study_service.get_learner_stats(learner.id)
    assert (stats.num_correct, stats.num_incorrect, stats.total_percentage) == (1, 1, 0.5)


def test_grading_by_learner_creates_record(study_db, engine_config):
    learner = study_service.create_learner("ana")
    item = vocab_repo.create_vocab("libro", "book")

    outcome = study_service.grade_response(
        item.id, None, "Book", learner_id=learner.id, config=engine_config
    )

    assert outcome.correct is True
    assert outcome.record.attempts == 1
    assert _record_count(study_db, learner.id) == 1


def test_grading_rejects_mismatched_record(study_db, engine_config):
    learner = study_service.create_learner("ana")
    first, second = _add_words(2)
    entries = study_service.select_session(learner.id, 1)
    record_id = entries[0].record.id
    other = second if entries[0].item.id == first.id else first

    with pytest.raises(InvalidArgument):
        study_service.grade_response(other.id, record_id, "word1", config=engine_config)


def test_grading_requires_record_or_learner(study_db, engine_config):
    item = vocab_repo.create_vocab("libro", "book")
    with pytest.raises(InvalidArgument):
        study_service.grade_response(item.id, None, "book", config=engine_config)


def test_grading_unknown_item(study_db, engine_config):
    with pytest.raises(NotFound):
        study_service.grade_response(404, 1, "anything", config=engine_config)


# ---- Stats ----

def test_stats_reads_are_idempotent(study_db, engine_config, t0):
    learner = study_service.create_learner("ana")
    vocab_repo.create_vocab("agua", "water")
    (entry,) = study_service.select_session(learner.id, 1)
    _answer_correctly(entry, engine_config, 2, t0)

    assert study_service.get_item_stats(entry.record.id) == study_service.get_item_stats(entry.record.id)
    assert study_service.get_learner_stats(learner.id) == study_service.get_learner_stats(learner.id)
    assert study_service.get_item_stats(entry.record.id).last_tested == hours_after(t0, 1)


def test_stats_for_missing_rows(study_db):
    with pytest.raises(NotFound):
        study_service.get_item_stats(1)
    with pytest.raises(NotFound):
        study_service.get_learner_stats(1)


# ---- Learner actions ----

def test_notes_show_up_in_prompt(study_db):
    learner = study_service.create_learner("ana")
    vocab_repo.create_vocab("mariposa", "butterfly")
    (entry,) = study_service.select_session(learner.id, 1)

    study_service.set_user_notes(entry.record.id, "  mari + posa  ")
    (entry,) = study_service.select_session(learner.id, 1)
    assert entry.prompt.endswith("your notes: mari + posa")


def test_demotion_disabled_by_default(study_db, engine_config, t0):
    learner = study_service.create_learner("ana")
    vocab_repo.create_vocab("perro", "dog")
    (entry,) = study_service.select_session(learner.id, 1)
    _answer_correctly(entry, engine_config, 5, t0)

    with pytest.raises(InvalidArgument):
        study_service.demote_to_learning(entry.record.id, config=engine_config)


def test_demoted_item_returns_without_double_counting(study_db, t0):
    config = EngineConfig(min_attempts=5, known_threshold=0.9, allow_manual_demotion=True)
    learner = study_service.create_learner("ana")
    vocab_repo.create_vocab("perro", "dog")
    (entry,) = study_service.select_session(learner.id, 1)
    _answer_correctly(entry, config, 5, t0)

    demoted = study_service.demote_to_learning(entry.record.id, config=config)
    assert demoted.well_known is False
    assert demoted.attempts == 5
    assert demoted.window_attempts == 0

    (again,) = study_service.select_session(learner.id, 1)
    assert again.record.id == entry.record.id

    outcome = _answer_correctly(again, config, 4, hours_after(t0, 24))
    assert outcome.record.well_known is False

    outcome = _answer_correctly(again, config, 1, hours_after(t0, 48))
    assert outcome.record.well_known is True
    assert outcome.newly_known is False
    assert outcome.record.attempts == 10

    stats = study_service.get_learner_stats(learner.id)
    assert stats.num_known == 1
    assert stats.num_correct + stats.num_incorrect == outcome.record.attempts


def test_demotion_refused_when_rotation_is_full(study_db, t0):
    config = EngineConfig(min_attempts=5, known_threshold=0.9, allow_manual_demotion=True)
    learner = study_service.create_learner("ana", max_rotation_size=1, min_pool_size=1)
    vocab_repo.create_vocab("perro", "dog")
    vocab_repo.create_vocab("gato", "cat")

    (first,) = study_service.select_session(learner.id, 1)
    _answer_correctly(first, config, 5, t0)
    (second,) = study_service.select_session(learner.id, 1)
    assert second.item.id != first.item.id

    with pytest.raises(InvalidArgument):
        study_service.demote_to_learning(first.record.id, config=config)
    with study_db.session_scope() as session:
        assert study_db.load_mastery_record(session, first.record.id).well_known is True

    _answer_correctly(second, config, 5, hours_after(t0, 24))
    demoted = study_service.demote_to_learning(first.record.id, config=config)
    assert demoted.well_known is False


def test_demoting_learning_item_is_rejected(study_db):
    config = EngineConfig(allow_manual_demotion=True)
    learner = study_service.create_learner("ana")
    vocab_repo.create_vocab("perro", "dog")
    (entry,) = study_service.select_session(learner.id, 1)

    with pytest.raises(InvalidArgument):
        study_service.demote_to_learning(entry.record.id, config=config)


# ---- Learners and vocabulary ----

def test_learner_codes_are_unique(study_db):
    study_service.create_learner("ana")
    with pytest.raises(InvalidArgument):
        study_service.create_learner("ana")


@pytest.mark.parametrize("kwargs", [
    {"code": ""},
    {"code": "ana", "max_rotation_size": 0},
    {"code": "ana", "min_pool_size": 0},
])
def test_invalid_learner_configuration(study_db, kwargs):
    with pytest.raises(InvalidArgument):
        study_service.create_learner(**kwargs)


def test_learner_lookup_by_code(study_db):
    created = study_service.create_learner(" ana ", display_name="Ana")
    loaded = study_service.load_learner_by_code("ana")
    assert loaded.id == created.id
    assert loaded.display_name == "Ana"
    with pytest.raises(NotFound):
        study_service.load_learner_by_code("bob")


def test_vocab_management(study_db):
    item = vocab_repo.create_vocab("  la casa  ")
    assert item.learning_text == "la casa"
    assert item.term_count == 2
    assert vocab_repo.find_vocab_by_learning_text("la casa").id == item.id
    assert [i.id for i in vocab_repo.get_missing_reference()] == [item.id]

    with pytest.raises(InvalidArgument):
        vocab_repo.create_vocab("   ")
    with pytest.raises(InvalidArgument):
        vocab_repo.create_vocab("la casa", "the house")
    with pytest.raises(InvalidArgument):
        vocab_repo.set_reference_text(item.id, "  ")

    updated = vocab_repo.set_reference_text(item.id, "the house", alternatives="house")
    assert vocab_repo.get_vocab(item.id).reference_text == "the house"
    assert updated.alternatives == "house"
    assert vocab_repo.get_missing_reference() == []
