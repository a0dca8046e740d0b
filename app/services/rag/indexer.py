"""RAG indexing queue: normalize → chunk → embed → upsert.

Writes enqueue work instead of embedding inline, so a slow or failing
embedding provider never blocks record writes. ``process_queue`` drains
the queue in FIFO order; failed items stay queued with their attempt
count bumped and are retried on the next run.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum

from app.adapters.llm.base import AbstractLLMClient
from app.core.config import settings
from app.schemas.rag import SourceType
from app.schemas.records import EvaluationRecord, ObservationRecord
from app.services.rag.chunking import chunk_text
from app.services.rag.normalize import (
    NormalizedRecord,
    normalize_evaluation,
    normalize_observation,
)
from app.services.rag.store import InMemoryChunkStore, RagChunk, content_hash

logger = logging.getLogger(__name__)

SourceRecord = ObservationRecord | EvaluationRecord


class IndexAction(str, Enum):
    UPSERT = "UPSERT"
    DELETE = "DELETE"


@dataclass
class IndexQueueItem:
    action: IndexAction
    source_type: SourceType
    source_id: str
    record: SourceRecord | None = None
    # Tenant scope a DELETE is confined to (school_id or district)
    scope: dict[str, str] = field(default_factory=dict)
    attempt_count: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class IndexRunResult:
    processed: int
    failed: int
    pending: int


def _normalize(source_type: SourceType, record: SourceRecord) -> NormalizedRecord:
    if source_type is SourceType.OBSERVATION and isinstance(record, ObservationRecord):
        return normalize_observation(record)
    if source_type is SourceType.EVALUATION and isinstance(record, EvaluationRecord):
        return normalize_evaluation(record)
    raise TypeError(f"{type(record).__name__} cannot be indexed as {source_type.value}")


class RagIndexer:
    """Owns the index queue and applies it to a chunk store.

    Attributes:
        store: Chunk store receiving embedded chunks.
        llm: Client used to embed chunk text.
    """

    def __init__(
        self,
        store: InMemoryChunkStore,
        llm: AbstractLLMClient,
        *,
        max_chars: int | None = None,
        overlap_chars: int | None = None,
    ) -> None:
        self.store = store
        self.llm = llm
        self._max_chars = max_chars or settings.app.rag_chunk_max_chars
        self._overlap_chars = (
            overlap_chars if overlap_chars is not None else settings.app.rag_chunk_overlap_chars
        )
        self._queue: list[IndexQueueItem] = []
        self._queue_lock = threading.Lock()
        self._run_lock = asyncio.Lock()

    @property
    def pending(self) -> int:
        with self._queue_lock:
            return len(self._queue)

    def enqueue_upsert(self, record: SourceRecord) -> IndexQueueItem:
        source_type = (
            SourceType.OBSERVATION if isinstance(record, ObservationRecord) else SourceType.EVALUATION
        )
        return self._enqueue(
            IndexQueueItem(
                action=IndexAction.UPSERT,
                source_type=source_type,
                source_id=record.id,
                record=record,
            )
        )

    def enqueue_delete(
        self,
        source_type: SourceType,
        source_id: str,
        *,
        school_id: str | None = None,
        district: str | None = None,
    ) -> IndexQueueItem:
        """Queue removal of a source, limited to one school or district when given."""
        scope = {k: v for k, v in (("school_id", school_id), ("district", district)) if v is not None}
        return self._enqueue(
            IndexQueueItem(
                action=IndexAction.DELETE,
                source_type=source_type,
                source_id=source_id,
                scope=scope,
            )
        )

    def _enqueue(self, item: IndexQueueItem) -> IndexQueueItem:
        with self._queue_lock:
            self._queue.append(item)
        logger.debug(
            "rag.index.enqueued",
            extra={
                "action": item.action.value,
                "source_type": item.source_type.value,
                "source_id": item.source_id,
            },
        )
        return item

    async def process_queue(self, max_items: int = 50) -> IndexRunResult:
        """Apply up to ``max_items`` queued items, oldest first.

        Only one run proceeds at a time; concurrent callers wait their turn.

        Returns:
            Counts of processed and failed items and what is still queued.
        """
        async with self._run_lock:
            with self._queue_lock:
                batch = list(self._queue[:max_items])

            processed = failed = 0
            for item in batch:
                try:
                    await self._apply(item)
                except Exception as exc:
                    item.attempt_count += 1
                    failed += 1
                    logger.error(
                        "rag.index.item_failed",
                        extra={
                            "item_id": item.id,
                            "action": item.action.value,
                            "source_type": item.source_type.value,
                            "source_id": item.source_id,
                            "attempt_count": item.attempt_count,
                            "error_type": type(exc).__name__,
                            "error_msg": str(exc),
                        },
                    )
                    continue

                with self._queue_lock:
                    self._queue.remove(item)
                processed += 1

            result = IndexRunResult(processed=processed, failed=failed, pending=self.pending)
            logger.info(
                "rag.index.run_completed",
                extra={"processed": processed, "failed": failed, "pending": result.pending},
            )
            return result

    async def _apply(self, item: IndexQueueItem) -> None:
        if item.action is IndexAction.DELETE:
            self.store.delete_source(item.source_type, item.source_id, **item.scope)
            return

        if item.record is None:
            raise ValueError("UPSERT item has no record")
        await self._upsert_record(item.source_type, item.record)

    async def _upsert_record(self, source_type: SourceType, record: SourceRecord) -> None:
        normalized = _normalize(source_type, record)
        chunks = chunk_text(normalized.full_text, self._max_chars, self._overlap_chars)
        embeddings = await self.llm.embed_texts([chunk.content for chunk in chunks])
        if len(embeddings) != len(chunks):
            raise RuntimeError(
                f"embedding count mismatch: expected {len(chunks)}, got {len(embeddings)}"
            )

        previous = self.store.hashes_for_source(source_type, record.id, school_id=record.school_id)
        kept: set[str] = set()
        for chunk, embedding in zip(chunks, embeddings):
            digest = content_hash(record.school_id, record.id, source_type, chunk.index, chunk.content)
            self.store.upsert(
                RagChunk(
                    source_type=source_type,
                    source_id=record.id,
                    school_id=record.school_id,
                    district=record.district,
                    content=chunk.content,
                    token_count=chunk.token_count,
                    embedding=embedding,
                    content_hash=digest,
                    metadata={**normalized.metadata, "chunk_index": chunk.index},
                )
            )
            kept.add(digest)

        # Edited records produce new hashes; drop the chunks they replaced.
        self.store.discard(previous - kept)
