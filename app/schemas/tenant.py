"""Tenant context resolved by the fronting identity provider."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    ADMIN = "ADMIN"
    DISTRICT_ADMIN = "DISTRICT_ADMIN"
    EVALUATOR = "EVALUATOR"
    TEACHER = "TEACHER"


class TenantContext(BaseModel):
    """Who is calling and which school (and district) they belong to."""

    user_id: str = Field(..., min_length=1)
    role: Role
    school_id: str = Field(..., min_length=1)
    district: str | None = None
