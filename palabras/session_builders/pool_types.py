"""
Typed pool models shared across session builders.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Literal, Optional

from palabras.mastery.state import MasteryRecord, VocabularyItem


PoolStatus = Literal["rotation", "fresh", "known"]


@dataclass
class PoolState:
    """
    Request-scoped pool state for one learner.

    All sets hold vocabulary ids. `records` maps vocabulary id to the
    learner's mastery record for it.
    """
    item_map: dict[int, VocabularyItem]
    records: dict[int, MasteryRecord]
    rotation: set[int]
    fresh: set[int]
    known: set[int]
    capacity: int
    floor: int

    def move_to(self, vocab_id: int, target: PoolStatus) -> None:
        """
        Move a vocab_id to the target pool, removing it from others.
        """
        self.rotation.discard(vocab_id)
        self.fresh.discard(vocab_id)
        self.known.discard(vocab_id)

        if target == "rotation":
            self.rotation.add(vocab_id)
        elif target == "fresh":
            self.fresh.add(vocab_id)
        elif target == "known":
            self.known.add(vocab_id)

    def admit(self, record: MasteryRecord) -> None:
        """Register a materialized record and put its item in rotation."""
        self.records[record.vocab_id] = record
        self.move_to(record.vocab_id, "known" if record.well_known else "rotation")

    @property
    def open_slots(self) -> int:
        """Fresh items that may still join the rotation."""
        return max(0, self.capacity - len(self.rotation))


@dataclass
class SessionEntry:
    """One prompt of a study session."""
    item: VocabularyItem
    record: Optional[MasteryRecord]
    prompt: str
