"""Session builder modules for study sessions."""

from palabras.session_builders.study_builder import (
    build_study_pool_state,
    create_study_session,
    determine_prompt,
    floor_introductions,
)
from palabras.session_builders.pool_types import PoolState, SessionEntry

__all__ = [
    "build_study_pool_state",
    "create_study_session",
    "determine_prompt",
    "floor_introductions",
    "PoolState",
    "SessionEntry",
]
