"""Process-wide service instances exposed as FastAPI dependencies.

Instances are built lazily on first use so importing the app never needs LLM
credentials. Tests replace them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from app.adapters.llm.base import AbstractLLMClient
from app.adapters.llm.factory import try_create_llm_client
from app.core.errors import LLMAppError
from app.services.enhancement_service import EnhancementService
from app.services.rag import (
    InMemoryChunkStore,
    RagChatService,
    RagIndexer,
    RagRetriever,
)
from app.utils.simple_cache import SimpleTTLCache

_llm_client: AbstractLLMClient | None = None
_llm_resolved = False
_chunk_store: InMemoryChunkStore | None = None
_indexer: RagIndexer | None = None
_enhancement_service: EnhancementService | None = None


def get_optional_llm_client() -> AbstractLLMClient | None:
    """Configured LLM client, or None when no API key is set."""

    global _llm_client, _llm_resolved
    if not _llm_resolved:
        _llm_client = try_create_llm_client()
        _llm_resolved = True
    return _llm_client


def get_llm_client() -> AbstractLLMClient:
    """Configured LLM client.

    Raises:
        LLMAppError: If no provider credentials are configured.
    """

    client = get_optional_llm_client()
    if client is None:
        raise LLMAppError(
            code="llm_not_configured",
            message="AI features are not configured",
            details={"hint": "Set LLM_API_KEY"},
        )
    return client


def get_chunk_store() -> InMemoryChunkStore:
    global _chunk_store
    if _chunk_store is None:
        _chunk_store = InMemoryChunkStore()
    return _chunk_store


def get_rag_indexer() -> RagIndexer:
    global _indexer
    if _indexer is None:
        _indexer = RagIndexer(get_chunk_store(), get_llm_client())
    return _indexer


def get_rag_retriever() -> RagRetriever:
    return RagRetriever(get_chunk_store(), get_llm_client())


def get_rag_chat_service() -> RagChatService:
    llm = get_llm_client()
    return RagChatService(RagRetriever(get_chunk_store(), llm), llm)


def get_enhancement_service() -> EnhancementService:
    global _enhancement_service
    if _enhancement_service is None:
        _enhancement_service = EnhancementService(
            llm=get_optional_llm_client(),
            cache=SimpleTTLCache(ttl_seconds=3600, max_entries=1024),
        )
    return _enhancement_service
