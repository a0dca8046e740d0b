"""Pydantic schemas for the school records that feed the RAG index.

Records arrive already joined with display names (teacher, author, school)
so normalization never needs a database round-trip.
"""

from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, Field


class ObservationRecord(BaseModel):
    """A classroom observation written by an observer about a teacher."""

    id: str = Field(..., min_length=1)
    teacher_id: str
    observer_id: str
    school_id: str = Field(..., min_length=1)
    district: str | None = None
    date: dt.date
    observation_type: str = Field(..., description="e.g. FORMAL, INFORMAL, WALKTHROUGH")
    subject: str | None = None
    focus_areas: list[str] = Field(default_factory=list)
    raw_notes: str = ""
    enhanced_notes: str | None = None
    teacher_name: str | None = None
    observer_name: str | None = None
    school_name: str | None = None


class EvaluationRecord(BaseModel):
    """A formal evaluation synthesized from observations."""

    id: str = Field(..., min_length=1)
    teacher_id: str
    evaluator_id: str
    school_id: str = Field(..., min_length=1)
    district: str | None = None
    created_at: dt.datetime
    type: str = Field(..., description="e.g. FORMATIVE, SUMMATIVE, MID_YEAR")
    status: str = Field(..., description="e.g. DRAFT, SUBMITTED, ACKNOWLEDGED")
    summary: str | None = None
    content: str | dict[str, Any] | None = Field(
        None,
        description="Evaluation body; structured content carries its text under 'markdown'",
    )
    recommendations: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)
    teacher_name: str | None = None
    evaluator_name: str | None = None
    school_name: str | None = None
