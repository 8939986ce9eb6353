"""
Pool utilities for session builders.

These helpers provide shared, minimal primitives for ordering session pools
without enforcing a single scheduling policy.
"""

from __future__ import annotations
from typing import Optional

from palabras.mastery.state import MasteryRecord, VocabularyItem


def weakest_first_key(
    item: VocabularyItem,
    record: Optional[MasteryRecord]
) -> tuple:
    """
    Sort key surfacing the weakest items first.

    Lowest accuracy first; ties go to never-tested items, then the oldest
    last_tested; existing records come before fresh items; shorter terms
    and then id last so the order is total.
    """
    if record is None:
        return (0.0, 0, 0.0, 1, item.term_count, item.id)

    tested = record.last_tested
    return (
        record.percentage_correct,
        0 if tested is None else 1,
        tested.timestamp() if tested is not None else 0.0,
        0,
        item.term_count,
        item.id,
    )


def shortest_first(items: list[VocabularyItem]) -> list[VocabularyItem]:
    """Order fresh items by term count (difficulty proxy), then id."""
    return sorted(items, key=lambda item: (item.term_count, item.id))
