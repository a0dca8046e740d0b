"""Pydantic schemas for AI-assisted observation note enhancement."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TeacherProfile(BaseModel):
    """Teacher context the coach prompt is written around."""

    name: str = Field(..., min_length=1)
    subject: str | None = None
    grade_level: str | None = None
    strengths: list[str] = Field(default_factory=list)
    growth_areas: list[str] = Field(default_factory=list)


class EnhanceRequest(BaseModel):
    raw_notes: str = Field(..., min_length=1, description="Observer's rough notes")
    observation_type: str = Field(..., min_length=1, description="e.g. FORMAL, INFORMAL, WALKTHROUGH")
    teacher: TeacherProfile
    focus_areas: list[str] = Field(default_factory=list)


class EnhanceResponse(BaseModel):
    enhanced_notes: str = Field(..., description="Markdown feedback organized in coaching sections")
    cached: bool = False
    demo: bool = Field(False, description="True when canned demo output was served")
    warnings: list[str] = Field(default_factory=list)
