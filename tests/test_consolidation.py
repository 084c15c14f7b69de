"""Tests for memory consolidation strategies."""

from __future__ import annotations

import pytest
from conftest import FakeAnalysisService, InMemoryVectorStore

from memory_mesh.core.errors import ValidationError
from memory_mesh.domain.models.graph import ConsolidationStrategy
from memory_mesh.domain.models.memory import MemoryType
from memory_mesh.services.memory_service import MemoryService


class TestConsolidate:
    async def test_keep_most_important(self, service: MemoryService, store: InMemoryVectorStore):
        sky = await service.create(
            "The sky is blue", MemoryType.SEMANTIC, context={"tags": ["sky"], "location": "outside"}, importance=0.9
        )
        grass = await service.create("Grass is green", MemoryType.SEMANTIC, context={"tags": ["grass"]}, importance=0.4)

        result = await service.consolidate([sky.id, grass.id], ConsolidationStrategy.KEEP_MOST_IMPORTANT)

        assert result.content == "The sky is blue"
        assert result.importance == pytest.approx(0.9)
        assert result.type == MemoryType.SEMANTIC
        assert result.context.location == "outside"
        assert result.tags == ["sky", "grass"]
        assert result.metadata["consolidated_from"] == [sky.id, grass.id]
        assert result.metadata["consolidation_strategy"] == "keep_most_important"
        assert store.records.keys() == {result.id}

    async def test_merge_content(self, service: MemoryService):
        first = await service.create("Met Ana at the market", MemoryType.EPISODIC, importance=0.3)
        second = await service.create("Ana sells honey", MemoryType.SEMANTIC, importance=0.6)

        result = await service.consolidate([first.id, second.id])

        assert result.content == "Met Ana at the market\n\n---\n\nAna sells honey"
        assert result.importance == pytest.approx(0.6)
        assert result.type == MemoryType.SEMANTIC

    async def test_summarize(self, service: MemoryService, analysis: FakeAnalysisService):
        first = await service.create("Ran 5km on Monday", MemoryType.EPISODIC, importance=0.2)
        second = await service.create("Ran 8km on Thursday", MemoryType.EPISODIC, importance=0.6)

        result = await service.consolidate([first.id, second.id], "summarize")

        assert result.content == "Summary of 2 memories"
        assert result.importance == pytest.approx(0.4)

    async def test_create_composite(self, service: MemoryService):
        long_text = "L" * 150
        first = await service.create(long_text, MemoryType.SEMANTIC)
        second = await service.create("Short fact", MemoryType.SEMANTIC)

        result = await service.consolidate([first.id, second.id], ConsolidationStrategy.CREATE_COMPOSITE)

        assert result.content == (
            "Composite memory from 2 sources:\n\n" + f"- {'L' * 100}...\n" + "- Short fact..."
        )

    async def test_result_links_to_sources(self, service: MemoryService, store: InMemoryVectorStore):
        first = await service.create("First source", MemoryType.SEMANTIC)
        second = await service.create("Second source", MemoryType.SEMANTIC)

        result = await service.consolidate([first.id, second.id], keep_originals=True)

        assert {first.id, second.id} <= set(result.associations)
        assert first.id in store.records
        assert second.id in store.records
        # Links from the consolidated memory are one way
        assert result.id not in store.records[first.id].associations

    async def test_chunk_lineage_is_not_copied(self, service: MemoryService):
        top = await service.create(
            "Chunk text", MemoryType.SEMANTIC, context={"chunk_of": "parent-1", "chunk_index": 2}, importance=0.9
        )
        other = await service.create("Other text", MemoryType.SEMANTIC, importance=0.1)

        result = await service.consolidate([top.id, other.id], ConsolidationStrategy.KEEP_MOST_IMPORTANT)

        assert result.context.chunk_of is None
        assert result.context.chunk_index is None

    async def test_unknown_ids_are_ignored(self, service: MemoryService):
        first = await service.create("First source", MemoryType.SEMANTIC)
        second = await service.create("Second source", MemoryType.SEMANTIC)

        result = await service.consolidate([first.id, "missing", second.id])

        assert result.metadata["consolidated_from"] == [first.id, second.id]

    async def test_needs_two_existing_memories(self, service: MemoryService, store: InMemoryVectorStore):
        only = await service.create("Alone", MemoryType.SEMANTIC)

        with pytest.raises(ValidationError):
            await service.consolidate([only.id, "missing"])

        assert store.records.keys() == {only.id}

    async def test_repeated_ids_count_once(self, service: MemoryService, store: InMemoryVectorStore):
        only = await service.create("Only one record", MemoryType.SEMANTIC)

        with pytest.raises(ValidationError):
            await service.consolidate([only.id, only.id])

        assert store.records.keys() == {only.id}

    async def test_repeated_ids_are_merged_once(self, service: MemoryService):
        first = await service.create("First source", MemoryType.SEMANTIC)
        second = await service.create("Second source", MemoryType.SEMANTIC)

        result = await service.consolidate([first.id, second.id, first.id])

        assert result.content == "First source\n\n---\n\nSecond source"
        assert result.metadata["consolidated_from"] == [first.id, second.id]
