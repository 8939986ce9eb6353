"""
Pydantic models for the study query API.

These are the transport-agnostic shapes returned by palabras.study_service;
any API layer can serialize them directly.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class Challenge(BaseModel):
    """One prompt of a study list."""
    vocab_id: int = Field(..., description="Vocabulary item id")
    mastery_record_id: int = Field(..., description="Learner's mastery record for the item")
    prompt: str = Field(..., description="Text shown to the learner; never the answer")


class Verdict(BaseModel):
    """Result of checking one response."""
    correct: bool
    expected: str = Field(..., description="Reference translation")
    percentage_correct: float = Field(..., ge=0.0, le=1.0)
    last_change: float = Field(..., description="Signed accuracy delta from this response")
    well_known: bool
    newly_known: bool = Field(False, description="First graduation happened on this response")


class ItemStats(BaseModel):
    """Per-item mastery statistics."""
    attempts: int = Field(..., ge=0)
    correct_attempts: int = Field(..., ge=0)
    percentage_correct: float = Field(..., ge=0.0, le=1.0)
    last_change: float
    last_tested: Optional[datetime] = None


class LearnerStats(BaseModel):
    """Learner-wide aggregate statistics."""
    num_known: int = Field(..., ge=0)
    num_correct: int = Field(..., ge=0)
    num_incorrect: int = Field(..., ge=0)
    total_percentage: float = Field(..., ge=0.0, le=1.0)
