"""Tests for the RAG chunk store, indexer, retrieval and chat services."""

from __future__ import annotations

from datetime import date, datetime, timezone
from unittest.mock import Mock

import pytest

from app.core.errors import LLMAppError
from app.schemas.rag import SearchFilters, SourceType
from app.schemas.records import EvaluationRecord, ObservationRecord
from app.schemas.tenant import Role, TenantContext
from app.services.rag import InMemoryChunkStore, RagChatService, RagIndexer, RagRetriever
from app.services.rag.chat import build_chat_prompt
from app.services.rag.retrieval import clamp_top_k, resolve_scope
from app.services.rag.similarity import cosine_similarity
from app.services.rag.store import RagChunk, content_hash


def _observation(id: str, notes: str, *, school_id: str = "school-1", district: str | None = "north",
                 on: date = date(2024, 3, 5)) -> ObservationRecord:
    return ObservationRecord(
        id=id,
        teacher_id="t1",
        observer_id="u1",
        school_id=school_id,
        district=district,
        date=on,
        observation_type="FORMAL",
        raw_notes=notes,
    )


def _evaluation(id: str, summary: str) -> EvaluationRecord:
    return EvaluationRecord(
        id=id,
        teacher_id="t1",
        evaluator_id="u2",
        school_id="school-1",
        district="north",
        created_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
        type="SUMMATIVE",
        status="SUBMITTED",
        summary=summary,
    )


def _tenant(role: Role = Role.ADMIN, school_id: str = "school-1", district: str | None = "north") -> TenantContext:
    return TenantContext(user_id="u", role=role, school_id=school_id, district=district)


@pytest.fixture
def store() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest.fixture
def indexer(store, fake_llm) -> RagIndexer:
    return RagIndexer(store, fake_llm, max_chars=8000, overlap_chars=1200)


@pytest.fixture
def retriever(store, fake_llm) -> RagRetriever:
    return RagRetriever(store, fake_llm)


class TestSimilarity:
    def test_identical_vectors(self) -> None:
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == 0.0

    def test_zero_vector(self) -> None:
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_uses_common_prefix(self) -> None:
        assert cosine_similarity([1.0, 0.0, 9.0], [1.0, 0.0]) == pytest.approx(1.0)


class TestChunkStore:
    def _chunk(self, content: str, **overrides) -> RagChunk:
        fields = dict(
            source_type=SourceType.OBSERVATION,
            source_id="o1",
            school_id="school-1",
            district="north",
            content=content,
            token_count=1,
            embedding=[1.0],
            content_hash=content_hash("school-1", "o1", SourceType.OBSERVATION, 0, content),
            metadata={},
        )
        fields.update(overrides)
        return RagChunk(**fields)

    def test_upsert_same_hash_updates_in_place(self) -> None:
        clock = Mock(return_value=100.0)
        store = InMemoryChunkStore(clock=clock)
        first = store.upsert(self._chunk("a"))

        clock.return_value = 200.0
        second = store.upsert(self._chunk("a", embedding=[2.0], metadata={"v": 2}))

        assert len(store) == 1
        assert second.id == first.id
        assert second.created_at == 100.0
        assert second.updated_at == 200.0
        assert second.embedding == [2.0]

    def test_candidates_newest_first_and_scoped(self) -> None:
        clock = Mock(return_value=1.0)
        store = InMemoryChunkStore(clock=clock)
        store.upsert(self._chunk("old"))
        clock.return_value = 2.0
        store.upsert(self._chunk("new", content_hash="h-new"))
        store.upsert(self._chunk("elsewhere", content_hash="h-x", school_id="school-2", district="south"))

        school = store.candidates(school_id="school-1")
        district = store.candidates(district="south")

        assert [c.content for c in school] == ["new", "old"]
        assert [c.content for c in district] == ["elsewhere"]
        assert store.candidates(school_id="school-1", limit=1)[0].content == "new"

    def test_candidates_require_exactly_one_scope(self, store) -> None:
        with pytest.raises(ValueError):
            store.candidates()
        with pytest.raises(ValueError):
            store.candidates(school_id="a", district="b")

    def test_delete_source(self, store) -> None:
        store.upsert(self._chunk("a"))
        store.upsert(self._chunk("b", content_hash="h-b", source_id="o2"))

        assert store.delete_source(SourceType.OBSERVATION, "o1") == 1
        assert [c.source_id for c in store.candidates(school_id="school-1")] == ["o2"]

    def test_delete_source_limited_to_school(self, store) -> None:
        store.upsert(self._chunk("a"))
        store.upsert(self._chunk("b", content_hash="h-b", school_id="school-2", district="south"))

        assert store.delete_source(SourceType.OBSERVATION, "o1", school_id="school-2") == 1
        assert store.delete_source(SourceType.OBSERVATION, "o1", district="south") == 0
        assert [c.content for c in store.candidates(school_id="school-1")] == ["a"]

    def test_source_owners(self, store) -> None:
        store.upsert(self._chunk("a"))
        store.upsert(self._chunk("b", content_hash="h-b"))
        store.upsert(self._chunk("c", content_hash="h-c", school_id="school-2", district=None))

        assert store.source_owners(SourceType.OBSERVATION, "o1") == {("school-1", "north"), ("school-2", None)}
        assert store.source_owners(SourceType.EVALUATION, "o1") == set()


class TestIndexer:
    @pytest.mark.asyncio
    async def test_upsert_indexes_chunks_with_metadata(self, indexer, store, fake_llm) -> None:
        indexer.enqueue_upsert(_observation("o1", "math fractions"))

        result = await indexer.process_queue()

        assert (result.processed, result.failed, result.pending) == (1, 0, 0)
        chunks = store.candidates(school_id="school-1")
        assert len(chunks) == 1
        assert chunks[0].source_type is SourceType.OBSERVATION
        assert chunks[0].district == "north"
        assert chunks[0].metadata["chunk_index"] == 0
        assert chunks[0].metadata["id"] == "o1"
        assert "math fractions" in fake_llm.embedded[0][0]

    @pytest.mark.asyncio
    async def test_reindexing_replaces_stale_chunks(self, indexer, store) -> None:
        indexer.enqueue_upsert(_observation("o1", "first version"))
        await indexer.process_queue()
        indexer.enqueue_upsert(_observation("o1", "second version"))
        await indexer.process_queue()

        chunks = store.candidates(school_id="school-1")
        assert len(chunks) == 1
        assert "second version" in chunks[0].content

    @pytest.mark.asyncio
    async def test_reindexing_identical_record_is_idempotent(self, indexer, store) -> None:
        for _ in range(2):
            indexer.enqueue_upsert(_observation("o1", "same"))
        await indexer.process_queue()

        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_long_records_produce_multiple_chunks(self, store, fake_llm) -> None:
        indexer = RagIndexer(store, fake_llm, max_chars=100, overlap_chars=20)
        indexer.enqueue_upsert(_observation("o1", "word " * 100))

        await indexer.process_queue()

        indexes = sorted(c.metadata["chunk_index"] for c in store.candidates(school_id="school-1"))
        assert indexes == list(range(len(indexes)))
        assert len(indexes) > 1

    @pytest.mark.asyncio
    async def test_delete_removes_source(self, indexer, store) -> None:
        indexer.enqueue_upsert(_evaluation("e1", "reading growth"))
        await indexer.process_queue()
        indexer.enqueue_delete(SourceType.EVALUATION, "e1")
        await indexer.process_queue()

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_scoped_delete_leaves_other_schools(self, indexer, store) -> None:
        indexer.enqueue_upsert(_observation("o1", "math fractions"))
        await indexer.process_queue()
        indexer.enqueue_delete(SourceType.OBSERVATION, "o1", school_id="school-2")
        await indexer.process_queue()

        assert len(store.candidates(school_id="school-1")) == 1

    @pytest.mark.asyncio
    async def test_same_id_in_two_schools_is_kept_apart(self, indexer, store) -> None:
        indexer.enqueue_upsert(_observation("o1", "math fractions"))
        await indexer.process_queue()
        indexer.enqueue_upsert(_observation("o1", "math fractions", school_id="school-2", district="south"))
        await indexer.process_queue()

        school_1 = store.candidates(school_id="school-1")
        school_2 = store.candidates(school_id="school-2")
        assert len(school_1) == 1
        assert len(school_2) == 1
        assert school_1[0].district == "north"
        assert school_2[0].district == "south"

    @pytest.mark.asyncio
    async def test_failed_items_stay_queued_with_attempts(self, indexer, fake_llm) -> None:
        fake_llm.fail_embed = True
        item = indexer.enqueue_upsert(_observation("o1", "math"))

        result = await indexer.process_queue()

        assert (result.processed, result.failed, result.pending) == (0, 1, 1)
        assert item.attempt_count == 1

        fake_llm.fail_embed = False
        retry = await indexer.process_queue()
        assert (retry.processed, retry.pending) == (1, 0)

    @pytest.mark.asyncio
    async def test_max_items_limits_batch(self, indexer) -> None:
        for i in range(3):
            indexer.enqueue_upsert(_observation(f"o{i}", "math"))

        result = await indexer.process_queue(max_items=2)

        assert (result.processed, result.pending) == (2, 1)


class TestRetrieval:
    def test_scope_resolution(self) -> None:
        assert resolve_scope(_tenant(Role.ADMIN)) == {"school_id": "school-1"}
        assert resolve_scope(_tenant(Role.DISTRICT_ADMIN)) == {"district": "north"}
        assert resolve_scope(_tenant(Role.DISTRICT_ADMIN, district=None)) == {"school_id": "school-1"}

    def test_top_k_clamped(self) -> None:
        assert clamp_top_k(None) == 8
        assert clamp_top_k(0) == 1
        assert clamp_top_k(50) == 20

    @pytest.mark.asyncio
    async def test_ranks_by_similarity_and_dedupes_sources(self, indexer, retriever, store) -> None:
        indexer.enqueue_upsert(_observation("o-math", "math fractions math"))
        indexer.enqueue_upsert(_observation("o-read", "reading phonics"))
        await indexer.process_queue()

        hits = await retriever.search("fractions in math", _tenant())

        assert [h.source_id for h in hits] == ["o-math", "o-read"]
        assert hits[0].score > hits[1].score
        assert len({(h.source_type, h.source_id) for h in hits}) == len(hits)

    @pytest.mark.asyncio
    async def test_school_scope_excludes_other_schools(self, indexer, retriever) -> None:
        indexer.enqueue_upsert(_observation("mine", "math"))
        indexer.enqueue_upsert(_observation("theirs", "math", school_id="school-2"))
        await indexer.process_queue()

        hits = await retriever.search("math", _tenant(Role.ADMIN))

        assert [h.source_id for h in hits] == ["mine"]

    @pytest.mark.asyncio
    async def test_district_admin_sees_whole_district(self, indexer, retriever) -> None:
        indexer.enqueue_upsert(_observation("a", "math"))
        indexer.enqueue_upsert(_observation("b", "math", school_id="school-2"))
        indexer.enqueue_upsert(_observation("c", "math", school_id="school-3", district="south"))
        await indexer.process_queue()

        hits = await retriever.search("math", _tenant(Role.DISTRICT_ADMIN))

        assert sorted(h.source_id for h in hits) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_type_and_date_filters(self, indexer, retriever) -> None:
        indexer.enqueue_upsert(_observation("march", "math", on=date(2024, 3, 5)))
        indexer.enqueue_upsert(_observation("april", "math", on=date(2024, 4, 5)))
        indexer.enqueue_upsert(_evaluation("eval", "math"))
        await indexer.process_queue()

        only_evals = await retriever.search("math", _tenant(), filters=SearchFilters(type="evaluation"))
        april_on = await retriever.search(
            "math",
            _tenant(),
            filters=SearchFilters(type="observation", start_date=date(2024, 4, 1)),
        )

        assert [h.source_id for h in only_evals] == ["eval"]
        assert [h.source_id for h in april_on] == ["april"]

    @pytest.mark.asyncio
    async def test_empty_scope_skips_embedding(self, retriever, fake_llm) -> None:
        assert await retriever.search("math", _tenant()) == []
        assert fake_llm.embedded == []

    @pytest.mark.asyncio
    async def test_top_k_limits_distinct_sources(self, indexer, retriever) -> None:
        for i in range(5):
            indexer.enqueue_upsert(_observation(f"o{i}", "math"))
        await indexer.process_queue()

        hits = await retriever.search("math", _tenant(), top_k=2)

        assert len(hits) == 2

    @pytest.mark.asyncio
    async def test_embedding_failure_raises_llm_error(self, indexer, retriever, fake_llm) -> None:
        indexer.enqueue_upsert(_observation("o1", "math"))
        await indexer.process_queue()
        fake_llm.fail_embed = True

        with pytest.raises(LLMAppError) as exc_info:
            await retriever.search("math", _tenant())

        assert exc_info.value.code == "embedding_failed"


class TestChat:
    @pytest.mark.asyncio
    async def test_chat_grounds_prompt_in_hits(self, indexer, retriever, fake_llm) -> None:
        indexer.enqueue_upsert(_observation("o1", "math fractions"))
        await indexer.process_queue()
        service = RagChatService(retriever, fake_llm)

        response = await service.chat("How is math going?", _tenant())

        assert response.message == fake_llm.answer
        assert [h.source_id for h in response.hits] == ["o1"]
        prompt = fake_llm.prompts[-1]
        assert f"[observation:o1:{response.hits[0].chunk_id}]" in prompt
        assert "USER QUESTION: How is math going?" in prompt
        assert fake_llm.generate_kwargs[-1]["temperature"] == 0.2

    def test_prompt_states_role_and_scope(self) -> None:
        prompt = build_chat_prompt("q", _tenant(Role.DISTRICT_ADMIN), [])
        assert "Role: DISTRICT_ADMIN. Scope: district." in prompt

    @pytest.mark.asyncio
    async def test_generation_failure_raises_llm_error(self, retriever, fake_llm) -> None:
        fake_llm.fail_generate = True
        service = RagChatService(retriever, fake_llm)

        with pytest.raises(LLMAppError) as exc_info:
            await service.chat("anything", _tenant())

        assert exc_info.value.code == "chat_generation_failed"
