"""Tenant-scoped semantic search over indexed chunks."""

from __future__ import annotations

import logging
from datetime import date

from app.adapters.llm.base import AbstractLLMClient
from app.core.config import settings
from app.core.errors import LLMAppError
from app.schemas.rag import RagHit, SearchFilters, SourceType
from app.schemas.tenant import Role, TenantContext
from app.services.rag.similarity import cosine_similarity
from app.services.rag.store import InMemoryChunkStore, RagChunk

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 8
MAX_TOP_K = 20


def clamp_top_k(top_k: int | None) -> int:
    return min(MAX_TOP_K, max(1, top_k if top_k is not None else DEFAULT_TOP_K))


def resolve_scope(tenant: TenantContext) -> dict[str, str]:
    """Which slice of the index a tenant may search.

    District admins see their whole district; everyone else (and district
    admins whose school has no district) sees only their own school.
    """
    if tenant.role is Role.DISTRICT_ADMIN and tenant.district:
        return {"district": tenant.district}
    return {"school_id": tenant.school_id}


def _within_dates(chunk: RagChunk, filters: SearchFilters | None) -> bool:
    if filters is None or (filters.start_date is None and filters.end_date is None):
        return True
    raw = chunk.metadata.get("date")
    if not isinstance(raw, str):
        return False
    try:
        chunk_date = date.fromisoformat(raw[:10])
    except ValueError:
        return False
    if filters.start_date and chunk_date < filters.start_date:
        return False
    if filters.end_date and chunk_date > filters.end_date:
        return False
    return True


class RagRetriever:
    """Embeds the query and ranks in-scope chunks by cosine similarity.

    Attributes:
        store: Chunk store to search.
        llm: Client used to embed the query.
    """

    def __init__(self, store: InMemoryChunkStore, llm: AbstractLLMClient) -> None:
        self.store = store
        self.llm = llm

    async def search(
        self,
        query: str,
        tenant: TenantContext,
        *,
        top_k: int | None = None,
        filters: SearchFilters | None = None,
    ) -> list[RagHit]:
        """Return the best chunk of each of the top-scoring source records.

        Args:
            query: Free-text question or keywords.
            tenant: Caller context; decides the searchable scope.
            top_k: Number of distinct sources to return (clamped to 1..20).
            filters: Optional type and date range narrowing.

        Returns:
            Hits sorted by descending score, one per source record.

        Raises:
            LLMAppError: If the query cannot be embedded.
        """
        limit = clamp_top_k(top_k)
        scope = resolve_scope(tenant)
        source_type = SourceType(filters.type.upper()) if filters and filters.type else None

        candidates = [
            chunk
            for chunk in self.store.candidates(
                **scope,
                source_type=source_type,
                limit=settings.app.rag_candidate_limit,
            )
            if _within_dates(chunk, filters)
        ]
        if not candidates:
            logger.info("rag.search.no_candidates", extra={"scope": next(iter(scope))})
            return []

        try:
            query_vector = await self.llm.embed_query(query)
        except RuntimeError as exc:
            raise LLMAppError(
                code="embedding_failed",
                message="Could not embed the search query",
            ) from exc

        scored = sorted(
            ((cosine_similarity(query_vector, chunk.embedding), chunk) for chunk in candidates),
            key=lambda pair: pair[0],
            reverse=True,
        )

        hits: list[RagHit] = []
        seen: set[tuple[SourceType, str]] = set()
        for score, chunk in scored:
            key = (chunk.source_type, chunk.source_id)
            if key in seen:
                continue
            seen.add(key)
            hits.append(
                RagHit(
                    chunk_id=chunk.id,
                    source_type=chunk.source_type,
                    source_id=chunk.source_id,
                    school_id=chunk.school_id,
                    district=chunk.district,
                    snippet=chunk.content[: settings.app.rag_snippet_chars],
                    metadata=chunk.metadata,
                    score=score,
                )
            )
            if len(hits) >= limit:
                break

        logger.info(
            "rag.search.completed",
            extra={
                "candidates": len(candidates),
                "hits": len(hits),
                "top_k": limit,
                "scope": next(iter(scope)),
            },
        )
        return hits
