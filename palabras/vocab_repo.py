"""
Repository for vocabulary access.

Provides functions to add, look up and back-fill vocabulary items.
"""

from __future__ import annotations

from typing import Optional

from loguru import logger

from palabras import config
from palabras.errors import InvalidArgument
from palabras.mastery import database
from palabras.mastery.state import VocabularyItem, count_terms


def create_vocab(
    learning_text: str,
    reference_text: str = "",
    known_lang_code: Optional[str] = None,
    learning_lang_code: Optional[str] = None,
    alternatives: Optional[str] = None,
    hint: Optional[str] = None,
    pos: Optional[str] = None,
) -> VocabularyItem:
    """
    Add a vocabulary item.

    Args:
        learning_text: Term in the language being learned (unique)
        reference_text: Translation in the learner's language, may be empty
        known_lang_code: Defaults to DEFAULT_KNOWN_LANG
        learning_lang_code: Defaults to DEFAULT_LEARNING_LANG
        alternatives: Comma-separated extra accepted translations
        hint: Shown in the prompt
        pos: Part of speech, shown in the prompt

    Returns:
        The stored VocabularyItem

    Raises:
        InvalidArgument: if learning_text is empty or already present
    """
    learning_text = (learning_text or "").strip()
    if not learning_text:
        raise InvalidArgument("learning_text must not be empty")

    default_known, default_learning = config.get_default_lang_codes()
    item = VocabularyItem(
        id=None,
        learning_text=learning_text,
        reference_text=(reference_text or "").strip(),
        known_lang_code=known_lang_code or default_known,
        learning_lang_code=learning_lang_code or default_learning,
        term_count=count_terms(learning_text),
        alternatives=alternatives,
        hint=hint,
        pos=pos,
    )
    with database.session_scope() as session:
        stored = database.insert_vocab(session, item)

    logger.debug(f"Added vocab {stored.id}: {stored.learning_text!r}")
    return stored


def get_vocab(vocab_id: int) -> VocabularyItem:
    with database.session_scope() as session:
        return database.load_vocab(session, vocab_id)


def find_vocab_by_learning_text(learning_text: str) -> Optional[VocabularyItem]:
    with database.session_scope() as session:
        return database.find_vocab_by_learning_text(session, learning_text.strip())


def set_reference_text(
    vocab_id: int,
    reference_text: str,
    alternatives: Optional[str] = None
) -> VocabularyItem:
    """
    Back-fill or correct the reference translation of an item.

    Raises:
        InvalidArgument: if reference_text is empty
        NotFound: if the item does not exist
    """
    reference_text = (reference_text or "").strip()
    if not reference_text:
        raise InvalidArgument("reference_text must not be empty")

    with database.session_scope() as session:
        return database.update_vocab_reference(session, vocab_id, reference_text, alternatives)


def get_missing_reference(limit: int = 100) -> list[VocabularyItem]:
    """
    Items that still need a translation, oldest first.

    Raises:
        InvalidArgument: if limit is not positive
    """
    if limit <= 0:
        raise InvalidArgument(f"limit must be positive, got {limit}")
    with database.session_scope() as session:
        return database.get_vocab_missing_reference(session, limit)
