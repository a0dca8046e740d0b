"""In-memory chunk store backing RAG search.

Thread-safe and keyed by content hash so re-indexing a record updates its
chunks in place. Keeps the same interface a database-backed store would
need, so it can be swapped without touching the indexer or retrieval.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from app.schemas.rag import SourceType

logger = logging.getLogger(__name__)


def content_hash(school_id: str, source_id: str, source_type: SourceType, index: int, content: str) -> str:
    """Stable identity of one chunk of one source within one school."""

    raw = f"{school_id}:{source_id}:{source_type.value}:{index}:{content}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass
class RagChunk:
    """One embedded slice of a source record."""

    source_type: SourceType
    source_id: str
    school_id: str
    content: str
    token_count: int
    embedding: list[float]
    content_hash: str
    metadata: dict[str, Any]
    district: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = 0.0
    updated_at: float = 0.0


class InMemoryChunkStore:
    """Thread-safe chunk store with upsert-by-hash semantics."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._by_hash: dict[str, RagChunk] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_hash)

    def upsert(self, chunk: RagChunk) -> RagChunk:
        """Insert a chunk, or refresh the existing one with the same hash.

        Returns:
            The stored chunk (keeps the original id and created_at on update).
        """
        now = self._clock()
        with self._lock:
            existing = self._by_hash.get(chunk.content_hash)
            if existing is None:
                stored = replace(chunk, created_at=now, updated_at=now)
            else:
                stored = replace(
                    existing,
                    content=chunk.content,
                    token_count=chunk.token_count,
                    embedding=list(chunk.embedding),
                    metadata=dict(chunk.metadata),
                    district=chunk.district,
                    updated_at=now,
                )
            self._by_hash[stored.content_hash] = stored
            return stored

    @staticmethod
    def _matches(
        chunk: RagChunk,
        source_type: SourceType,
        source_id: str,
        school_id: str | None,
        district: str | None,
    ) -> bool:
        return (
            chunk.source_type == source_type
            and chunk.source_id == source_id
            and (school_id is None or chunk.school_id == school_id)
            and (district is None or chunk.district == district)
        )

    def delete_source(
        self,
        source_type: SourceType,
        source_id: str,
        *,
        school_id: str | None = None,
        district: str | None = None,
    ) -> int:
        """Remove the chunks of one source record.

        ``school_id`` / ``district`` restrict removal to chunks in that tenant
        scope; chunks of the same source id elsewhere are left alone.

        Returns:
            Number of chunks removed.
        """
        with self._lock:
            doomed = [
                h
                for h, chunk in self._by_hash.items()
                if self._matches(chunk, source_type, source_id, school_id, district)
            ]
            for h in doomed:
                del self._by_hash[h]
        logger.debug(
            "rag.store.deleted",
            extra={"source_type": source_type.value, "source_id": source_id, "removed": len(doomed)},
        )
        return len(doomed)

    def hashes_for_source(
        self,
        source_type: SourceType,
        source_id: str,
        *,
        school_id: str | None = None,
        district: str | None = None,
    ) -> set[str]:
        with self._lock:
            return {
                h
                for h, chunk in self._by_hash.items()
                if self._matches(chunk, source_type, source_id, school_id, district)
            }

    def source_owners(self, source_type: SourceType, source_id: str) -> set[tuple[str, str | None]]:
        """``(school_id, district)`` pairs holding chunks of one source record."""

        with self._lock:
            return {
                (chunk.school_id, chunk.district)
                for chunk in self._by_hash.values()
                if chunk.source_type == source_type and chunk.source_id == source_id
            }

    def discard(self, hashes: set[str]) -> None:
        with self._lock:
            for h in hashes:
                self._by_hash.pop(h, None)

    def candidates(
        self,
        *,
        school_id: str | None = None,
        district: str | None = None,
        source_type: SourceType | None = None,
        limit: int = 500,
    ) -> list[RagChunk]:
        """Return up to ``limit`` chunks in scope, most recently updated first.

        Exactly one of ``school_id`` / ``district`` selects the tenant scope.

        Raises:
            ValueError: If neither or both scopes are given.
        """
        if (school_id is None) == (district is None):
            raise ValueError("exactly one of school_id or district is required")

        with self._lock:
            matches = [
                chunk
                for chunk in self._by_hash.values()
                if (school_id is None or chunk.school_id == school_id)
                and (district is None or chunk.district == district)
                and (source_type is None or chunk.source_type == source_type)
            ]
        matches.sort(key=lambda c: c.updated_at, reverse=True)
        return matches[:limit]
