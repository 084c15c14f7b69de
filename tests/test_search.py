"""Tests for semantic search, filter-only listing and chunk reconstruction."""

from __future__ import annotations

from datetime import timedelta

import pydantic
import pytest
from conftest import FakeEmbeddingService, InMemoryVectorStore, unit_vector, vector_with_similarity

from memory_mesh.domain.models.chunking import ChunkingMethod, ChunkingOptions
from memory_mesh.domain.models.memory import CompactMemory, Memory, MemoryType
from memory_mesh.domain.models.search import DateRange, DetailLevel, EmotionalRange, SearchParams
from memory_mesh.domain.models.utils import utc_now
from memory_mesh.services.memory_service import MemoryService

QUERY = "find notes"


@pytest.fixture
async def scored_memories(service: MemoryService, embeddings: FakeEmbeddingService) -> dict[str, Memory]:
    """Four memories at cosine 0.95, 0.8, 0.65 and 0.4 from the query."""
    embeddings.register(QUERY, unit_vector(0))
    memories = {}
    for axis, (name, similarity) in enumerate(
        [("alpha", 0.95), ("beta", 0.8), ("gamma", 0.65), ("delta", 0.4)], start=1
    ):
        embeddings.register(name, vector_with_similarity(similarity, axis))
        memories[name] = await service.create(f"{name} record", MemoryType.SEMANTIC)
    return memories


class TestSemanticSearch:
    async def test_results_are_ranked(self, service: MemoryService, scored_memories: dict[str, Memory]):
        results = await service.search(query=QUERY, similarity_threshold=0.3)

        assert [memory.id for memory in results] == [
            scored_memories[name].id for name in ("alpha", "beta", "gamma", "delta")
        ]

    async def test_threshold_is_monotonic(self, service: MemoryService, scored_memories: dict[str, Memory]):
        previous: set[str] | None = None
        for threshold in (0.3, 0.6, 0.9):
            results = await service.search(query=QUERY, similarity_threshold=threshold)
            ids = {memory.id for memory in results}
            if previous is not None:
                assert ids <= previous
            previous = ids

        assert previous == {scored_memories["alpha"].id}

    async def test_default_threshold_comes_from_settings(
        self, service: MemoryService, scored_memories: dict[str, Memory]
    ):
        results = await service.search(query=QUERY)

        assert {memory.id for memory in results} == {scored_memories["alpha"].id, scored_memories["beta"].id}

    async def test_limit(self, service: MemoryService, scored_memories: dict[str, Memory]):
        results = await service.search(query=QUERY, similarity_threshold=0.0, limit=2)

        assert len(results) == 2

    async def test_filters_apply_to_semantic_search(
        self, service: MemoryService, embeddings: FakeEmbeddingService, scored_memories: dict[str, Memory]
    ):
        embeddings.register("epsilon", vector_with_similarity(0.9, 5))
        episode = await service.create("epsilon record", MemoryType.EPISODIC)

        results = await service.search(query=QUERY, type=MemoryType.EPISODIC, similarity_threshold=0.3)

        assert [memory.id for memory in results] == [episode.id]

    async def test_search_records_access(
        self, service: MemoryService, store: InMemoryVectorStore, scored_memories: dict[str, Memory]
    ):
        await service.search(query=QUERY, similarity_threshold=0.9)

        assert store.records[scored_memories["alpha"].id].access_count == 1
        assert store.records[scored_memories["delta"].id].access_count == 0

    async def test_limit_is_validated(self, service: MemoryService):
        with pytest.raises(pydantic.ValidationError):
            await service.search(query=QUERY, limit=0)


class TestFilterOnlySearch:
    async def test_blank_query_without_filters_returns_nothing(
        self, service: MemoryService, embeddings: FakeEmbeddingService
    ):
        await service.create("Something stored", MemoryType.SEMANTIC)
        calls = embeddings.calls

        assert await service.search(query="   ") == []
        assert embeddings.calls == calls

    async def test_filters_without_query_skip_embedding(
        self, service: MemoryService, embeddings: FakeEmbeddingService
    ):
        fact = await service.create("Water boils at 100C", MemoryType.SEMANTIC)
        await service.create("Went swimming", MemoryType.EPISODIC)
        calls = embeddings.calls

        results = await service.search(type=MemoryType.SEMANTIC)

        assert [memory.id for memory in results] == [fact.id]
        assert embeddings.calls == calls

    async def test_emotional_range(self, service: MemoryService):
        happy = await service.create("A happy birthday party", MemoryType.EMOTIONAL)
        await service.create("A sad farewell", MemoryType.EMOTIONAL)

        results = await service.search(emotional_range=EmotionalRange(min=0.5, max=1.0))

        assert [memory.id for memory in results] == [happy.id]

    async def test_date_range(self, service: MemoryService):
        memory = await service.create("Dated entry", MemoryType.SEMANTIC)
        now = utc_now()

        future = await service.search(date_range=DateRange(start=now + timedelta(hours=1)))
        past = await service.search(date_range=DateRange(end=now + timedelta(hours=1)))

        assert future == []
        assert [m.id for m in past] == [memory.id]

    async def test_min_importance(self, service: MemoryService):
        important = await service.create("Key decision", MemoryType.SEMANTIC, importance=0.9)
        await service.create("Trivia", MemoryType.SEMANTIC, importance=0.2)

        results = await service.search(SearchParams(min_importance=0.8))

        assert [memory.id for memory in results] == [important.id]


class TestProjection:
    async def test_compact_truncates_content(self, service: MemoryService, embeddings: FakeEmbeddingService):
        embeddings.register("orchid", unit_vector(6))
        memory = await service.create("orchid " + "o" * 300, MemoryType.PROCEDURAL)

        results = await service.search(query="orchid care", detail_level=DetailLevel.COMPACT)

        assert len(results) == 1
        compact = results[0]
        assert isinstance(compact, CompactMemory)
        assert compact.id == memory.id
        assert len(compact.content) == 200
        assert compact.content.endswith("...")
        assert compact.tags == memory.tags

    async def test_full_is_default(self, service: MemoryService, embeddings: FakeEmbeddingService):
        embeddings.register("orchid", unit_vector(6))
        await service.create("orchid " + "o" * 300, MemoryType.PROCEDURAL)

        results = await service.search(query="orchid care")

        assert isinstance(results[0], Memory)
        assert len(results[0].content) == 307

    async def test_associations_are_returned_in_full(
        self, service: MemoryService, embeddings: FakeEmbeddingService, store: InMemoryVectorStore
    ):
        embeddings.register("orchid", unit_vector(6))
        orchid = await service.create("orchid watering", MemoryType.PROCEDURAL)
        schedule = await service.create("Repotting schedule for spring", MemoryType.PROCEDURAL)
        await service.connect(orchid.id, schedule.id)

        results = await service.search(
            query="orchid care", detail_level=DetailLevel.COMPACT, include_associations=True
        )

        assert [memory.id for memory in results] == [orchid.id, schedule.id]
        assert all(isinstance(memory, Memory) for memory in results)
        assert store.records[schedule.id].access_count == 1


EXPEDITION = [
    "Day one: we mapped the northern ridge and found two springs below the old lookout tower.",
    "Day two: fog kept us in camp, so we catalogued samples and repaired the damaged tent poles.",
    "Day three: the descent took longer than planned because the lower trail had washed away.",
]


@pytest.fixture
async def chunked(service: MemoryService) -> list[Memory]:
    return await service.create_with_chunking(
        "\n\n".join(EXPEDITION),
        MemoryType.EPISODIC,
        importance=0.9,
        options=ChunkingOptions(method=ChunkingMethod.PARAGRAPH, max_chunk_size=50),
    )


class TestChunkReconstruction:
    async def test_parent_is_reassembled(self, service: MemoryService, chunked: list[Memory]):
        parent = chunked[0]

        results = await service.search_chunked(SearchParams(min_importance=0.8, reconstruct_chunks=True))

        assert len(results) == 1
        rebuilt = results[0]
        assert rebuilt.id == parent.id
        assert rebuilt.content == "\n\n".join(EXPEDITION)
        assert rebuilt.metadata["reconstructed"] is True
        assert rebuilt.metadata["chunk_count"] == 3

    async def test_without_flag_chunks_are_returned_as_stored(self, service: MemoryService, chunked: list[Memory]):
        results = await service.search_chunked(SearchParams(min_importance=0.8))

        assert {memory.id for memory in results} == {memory.id for memory in chunked}

    async def test_compact_results_are_not_reconstructed(self, service: MemoryService, chunked: list[Memory]):
        results = await service.search_chunked(
            SearchParams(min_importance=0.8, reconstruct_chunks=True, detail_level=DetailLevel.COMPACT)
        )

        assert len(results) == 4
        assert all(isinstance(memory, CompactMemory) for memory in results)

    async def test_every_child_is_reassembled_past_the_default_scroll(self, service: MemoryService):
        entries = [f"Log entry {index}: the crew checked the rigging and noted calm seas." for index in range(120)]
        parent, *children = await service.create_with_chunking(
            "\n\n".join(entries),
            MemoryType.SEMANTIC,
            options=ChunkingOptions(method=ChunkingMethod.PARAGRAPH, max_chunk_size=50),
        )
        assert len(children) == 120

        results = await service.search_chunked(SearchParams(min_importance=0.75, reconstruct_chunks=True))

        assert [memory.id for memory in results] == [parent.id]
        assert results[0].metadata["chunk_count"] == 120
        assert results[0].content == "\n\n".join(entries)
