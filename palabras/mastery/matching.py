"""
Answer matching.

Binary verdict: a response is correct when it equals one of the accepted
answers after normalization, otherwise it is incorrect. No partial credit.
"""

from __future__ import annotations
import unicodedata

from palabras.errors import UngradableItem
from palabras.mastery.state import VocabularyItem


def normalize_answer(text: str) -> str:
    """
    Normalize text for comparison.

    - Strip diacritics (NFKD decomposition, combining marks dropped)
    - Case-fold
    - Trim surrounding whitespace and collapse internal runs to one space

    Example:
        " Pequeña " -> "pequena"
    """
    decomposed = unicodedata.normalize("NFKD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.casefold().split())


def is_correct_response(item: VocabularyItem, submitted: str) -> bool:
    """
    Check a submitted answer against the item's accepted answers.

    Raises:
        UngradableItem: if the item has no reference translation
    """
    if not item.is_gradable:
        raise UngradableItem(item.id)

    guess = normalize_answer(submitted)
    if not guess:
        return False
    return any(guess == normalize_answer(answer) for answer in item.accepted_answers())
