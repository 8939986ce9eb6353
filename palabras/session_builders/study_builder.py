"""
Study Session Builder - Rotation Logic

Creates study sessions from two pools:
1. Rotation pool: items with a mastery record that is not well known
2. Fresh pool: gradable items the learner has never seen

Session Logic:
- The rotation is kept at or above the learner's floor (min_pool_size)
- Fresh items only fill the open slots up to max_rotation_size
- Candidates are ordered weakest first; well-known items never appear
"""

from __future__ import annotations
from typing import Optional

from palabras.constants import PROMPT_FIELD_SEPARATOR, PROMPT_TEMPLATE
from palabras.errors import InvalidArgument
from palabras.mastery.state import LearnerProfile, MasteryRecord, VocabularyItem
from palabras.session_builders.pool_types import PoolState
from palabras.session_builders.pool_utils import shortest_first, weakest_first_key


def build_study_pool_state(
    learner: LearnerProfile,
    candidates: list[tuple[VocabularyItem, Optional[MasteryRecord]]]
) -> PoolState:
    """
    Build request-scoped pool state from the learner's candidate pool.

    Items without a reference translation are left out entirely: they cannot
    be graded, so they are never scheduled.
    """
    item_map: dict[int, VocabularyItem] = {}
    records: dict[int, MasteryRecord] = {}
    rotation: set[int] = set()
    fresh: set[int] = set()
    known: set[int] = set()

    for item, record in candidates:
        if not item.is_gradable:
            continue
        item_map[item.id] = item
        if record is None:
            fresh.add(item.id)
            continue
        records[item.id] = record
        if record.well_known:
            known.add(item.id)
        else:
            rotation.add(item.id)

    return PoolState(
        item_map=item_map,
        records=records,
        rotation=rotation,
        fresh=fresh,
        known=known,
        capacity=learner.max_rotation_size,
        floor=learner.rotation_floor,
    )


def fresh_in_order(pool_state: PoolState) -> list[VocabularyItem]:
    return shortest_first([pool_state.item_map[vocab_id] for vocab_id in pool_state.fresh])


def floor_introductions(pool_state: PoolState) -> list[VocabularyItem]:
    """
    Fresh items that must be materialized to bring the rotation up to its floor.
    """
    missing = pool_state.floor - len(pool_state.rotation)
    if missing <= 0:
        return []
    return fresh_in_order(pool_state)[:missing]


def create_study_session(
    pool_state: PoolState,
    batch_size: int
) -> list[tuple[VocabularyItem, Optional[MasteryRecord]]]:
    """
    Pick the next batch of items, weakest first.

    Args:
        pool_state: Request-scoped pool state
        batch_size: Maximum number of items to return

    Returns:
        Ordered (item, record-or-None) pairs; None marks a fresh item that
        still has to be materialized. Fewer than batch_size pairs means the
        pool is exhausted.
    """
    if batch_size <= 0:
        raise InvalidArgument(f"batch_size must be positive, got {batch_size}")

    candidates = [
        (pool_state.item_map[vocab_id], pool_state.records[vocab_id])
        for vocab_id in pool_state.rotation
    ]
    candidates.extend(
        (item, None) for item in fresh_in_order(pool_state)[:pool_state.open_slots]
    )

    candidates.sort(key=lambda pair: weakest_first_key(*pair))
    return candidates[:batch_size]


def determine_prompt(item: VocabularyItem, user_notes: str = "") -> str:
    """
    Build the prompt shown to the learner.

    Format: "Translate: '<learning_text>'" followed by the hint, part of
    speech and the learner's notes when present. The reference translation
    is never included.
    """
    parts = [PROMPT_TEMPLATE.format(item.learning_text)]
    if item.hint:
        parts.append(f"hint: {item.hint}")
    if item.pos:
        parts.append(f"pos: {item.pos}")
    if user_notes:
        parts.append(f"your notes: {user_notes}")
    return PROMPT_FIELD_SEPARATOR.join(parts)
