"""Retrieval-augmented search and chat over observations and evaluations."""

from app.services.rag.chat import RagChatService
from app.services.rag.chunking import TextChunk, chunk_text
from app.services.rag.indexer import IndexRunResult, RagIndexer
from app.services.rag.retrieval import RagRetriever
from app.services.rag.store import InMemoryChunkStore, RagChunk

__all__ = [
    "InMemoryChunkStore",
    "IndexRunResult",
    "RagChatService",
    "RagChunk",
    "RagIndexer",
    "RagRetriever",
    "TextChunk",
    "chunk_text",
]
