"""Pydantic schemas for RAG indexing, search and chat."""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from app.schemas.records import EvaluationRecord, ObservationRecord


class SourceType(str, Enum):
    OBSERVATION = "OBSERVATION"
    EVALUATION = "EVALUATION"


class SearchFilters(BaseModel):
    """Optional narrowing of the candidate set."""

    type: Literal["observation", "evaluation"] | None = None
    start_date: date | None = None
    end_date: date | None = None

    @model_validator(mode="after")
    def _check_range(self) -> "SearchFilters":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=2)
    top_k: int | None = Field(None, ge=1, le=20)
    filters: SearchFilters | None = None


class RagHit(BaseModel):
    """Best-scoring chunk of one source record."""

    chunk_id: str
    source_type: SourceType
    source_id: str
    school_id: str
    district: str | None = None
    snippet: str
    metadata: dict[str, Any]
    score: float


class SearchResponse(BaseModel):
    results: list[RagHit]


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    top_k: int | None = Field(None, ge=1, le=20)
    filters: SearchFilters | None = None


class ChatResponse(BaseModel):
    message: str
    hits: list[RagHit]


class SourceRef(BaseModel):
    source_type: SourceType
    source_id: str = Field(..., min_length=1)


class IndexRequest(BaseModel):
    """Records to (re)index and sources to drop from the index."""

    observations: list[ObservationRecord] = Field(default_factory=list)
    evaluations: list[EvaluationRecord] = Field(default_factory=list)
    deletions: list[SourceRef] = Field(default_factory=list)


class IndexResponse(BaseModel):
    ok: bool
    processed: int
    failed: int
    pending: int
