"""RAG endpoints: index records, search them, and chat over them.

All three are limited to school and district administrators and rate limited
per client address before any tenant check runs.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.deps import get_rag_chat_service, get_rag_indexer, get_rag_retriever
from app.core.auth import require_roles, verify_api_key
from app.core.errors import AuthenticationAppError
from app.core.rate_limit import rate_limited
from app.schemas.rag import (
    ChatRequest,
    ChatResponse,
    IndexRequest,
    IndexResponse,
    SearchRequest,
    SearchResponse,
    SourceType,
)
from app.schemas.tenant import Role, TenantContext
from app.services.rag import InMemoryChunkStore, RagChatService, RagIndexer, RagRetriever
from app.services.rag.retrieval import resolve_scope

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rag", tags=["RAG"])

RagAdmin = Annotated[TenantContext, Depends(require_roles(Role.ADMIN, Role.DISTRICT_ADMIN))]

# Upper bound on queue items applied per index request
INDEX_RUN_MAX_ITEMS = 200


def _ensure_in_scope(tenant: TenantContext, school_id: str, district: str | None) -> None:
    scope = resolve_scope(tenant)
    if "district" in scope:
        allowed = district == scope["district"]
    else:
        allowed = school_id == scope["school_id"]
    if not allowed:
        raise AuthenticationAppError(
            code="record_out_of_scope",
            message="Record belongs to a school outside your scope",
            details={"school_id": school_id},
        )


def _ensure_not_owned_elsewhere(
    store: InMemoryChunkStore,
    source_type: SourceType,
    source_id: str,
    school_id: str,
) -> None:
    """A source id is indexed under one school only."""
    for owner_school, _ in store.source_owners(source_type, source_id):
        if owner_school != school_id:
            raise AuthenticationAppError(
                code="source_id_conflict",
                message="Source id is already indexed for another school",
                details={"source_type": source_type.value, "source_id": source_id},
            )


@router.post(
    "/index",
    response_model=IndexResponse,
    dependencies=[Depends(rate_limited("rag:index:run")), Depends(verify_api_key)],
)
async def run_index(
    body: IndexRequest,
    tenant: RagAdmin,
    indexer: Annotated[RagIndexer, Depends(get_rag_indexer)],
) -> IndexResponse:
    """Queue records for (re)indexing or removal, then drain the queue."""

    upserts = [
        *((SourceType.OBSERVATION, record) for record in body.observations),
        *((SourceType.EVALUATION, record) for record in body.evaluations),
    ]
    for source_type, record in upserts:
        _ensure_in_scope(tenant, record.school_id, record.district)
        _ensure_not_owned_elsewhere(indexer.store, source_type, record.id, record.school_id)
    for ref in body.deletions:
        for school_id, district in indexer.store.source_owners(ref.source_type, ref.source_id):
            _ensure_in_scope(tenant, school_id, district)

    for _, record in upserts:
        indexer.enqueue_upsert(record)
    for ref in body.deletions:
        indexer.enqueue_delete(ref.source_type, ref.source_id, **resolve_scope(tenant))

    result = await indexer.process_queue(INDEX_RUN_MAX_ITEMS)
    return IndexResponse(
        ok=result.failed == 0,
        processed=result.processed,
        failed=result.failed,
        pending=result.pending,
    )


@router.post(
    "/search",
    response_model=SearchResponse,
    dependencies=[Depends(rate_limited("rag:search")), Depends(verify_api_key)],
)
async def search(
    body: SearchRequest,
    tenant: RagAdmin,
    retriever: Annotated[RagRetriever, Depends(get_rag_retriever)],
) -> SearchResponse:
    """Semantic search over observations and evaluations in the caller's scope."""

    results = await retriever.search(body.query, tenant, top_k=body.top_k, filters=body.filters)
    return SearchResponse(results=results)


@router.post(
    "/chat",
    response_model=ChatResponse,
    dependencies=[Depends(rate_limited("rag:chat")), Depends(verify_api_key)],
)
async def chat(
    body: ChatRequest,
    tenant: RagAdmin,
    service: Annotated[RagChatService, Depends(get_rag_chat_service)],
) -> ChatResponse:
    """Answer a question grounded in the caller's records, with citations."""

    return await service.chat(body.message, tenant, top_k=body.top_k, filters=body.filters)
