"""Pytest fixtures and in-memory fakes for the memory service."""

from __future__ import annotations

import asyncio
import hashlib
import re
from typing import Any

import numpy as np
import pytest

from memory_mesh.core.base import ResourceErrorDetails
from memory_mesh.core.config import Settings
from memory_mesh.core.errors import NotFoundError
from memory_mesh.domain.models.memory import Memory, ScoredMemory
from memory_mesh.domain.specifications.composite import BaseSpecification
from memory_mesh.services.chunking import cosine_similarity
from memory_mesh.services.memory_service import MemoryService

DIMENSIONS = 64


def unit_vector(index: int, dims: int = DIMENSIONS) -> list[float]:
    vector = np.zeros(dims)
    vector[index] = 1.0
    return vector.tolist()


def vector_with_similarity(similarity: float, axis: int, dims: int = DIMENSIONS) -> list[float]:
    """Unit vector whose cosine with ``unit_vector(0)`` is exactly ``similarity``."""
    vector = np.zeros(dims)
    vector[0] = similarity
    vector[axis] = np.sqrt(1.0 - similarity**2)
    return vector.tolist()


class FakeEmbeddingService:
    """Deterministic embeddings.

    Texts containing a registered keyword get that keyword's vector (first
    registration wins); anything else gets a random unit vector seeded by the
    text, so unrelated texts are nearly orthogonal.
    """

    def __init__(self, dims: int = DIMENSIONS):
        self.dims = dims
        self.keywords: list[tuple[str, list[float]]] = []
        self.text_calls = 0
        self.batch_calls = 0

    def register(self, keyword: str, vector: list[float]) -> None:
        self.keywords.append((keyword, vector))

    def vector_for(self, text: str) -> list[float]:
        for keyword, vector in self.keywords:
            if keyword in text:
                return list(vector)
        seed = int.from_bytes(hashlib.sha256(text.encode()).digest()[:8], "big")
        vector = np.random.default_rng(seed).standard_normal(self.dims)
        return (vector / np.linalg.norm(vector)).tolist()

    async def embed_text(self, text: str) -> list[float]:
        self.text_calls += 1
        return self.vector_for(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls += 1
        return [self.vector_for(text) for text in texts]

    @property
    def calls(self) -> int:
        return self.text_calls + self.batch_calls


class FakeAnalysisService:
    """Keyword, valence and summary answers computed locally."""

    def __init__(self):
        self.summaries = 0

    async def extract_keywords(self, text: str) -> list[str]:
        words = [word.lower() for word in re.findall(r"[A-Za-z]+", text) if len(word) > 3]
        return list(dict.fromkeys(words))[:5]

    async def score_emotion(self, text: str) -> float:
        lowered = text.lower()
        if "happy" in lowered:
            return 0.8
        if "sad" in lowered:
            return -0.6
        return 0.0

    async def summarize(self, text: str) -> str:
        self.summaries += 1
        return f"Summary: {text[:40]}"

    async def summarize_many(self, texts: list[str]) -> str:
        self.summaries += 1
        return f"Summary of {len(texts)} memories"


class InMemoryVectorStore:
    """Dict-backed store with brute-force cosine search.

    ``get`` and ``patch`` yield to the event loop, so concurrent callers
    interleave the way they would against a real database.
    """

    def __init__(self):
        self.records: dict[str, Memory] = {}
        self.vectors: dict[str, list[float]] = {}
        self.upserts = 0
        self.patches = 0

    async def upsert(self, memory: Memory, embedding: list[float]) -> None:
        self.upserts += 1
        self.records[memory.id] = memory.model_copy(deep=True)
        self.vectors[memory.id] = list(embedding)

    async def search(
        self,
        embedding: list[float],
        limit: int,
        specification: BaseSpecification | None = None,
        score_threshold: float | None = None,
    ) -> list[ScoredMemory]:
        hits = []
        for memory_id, memory in self.records.items():
            if specification is not None and not specification.is_satisfied_by(memory):
                continue
            score = cosine_similarity(embedding, self.vectors[memory_id])
            if score_threshold is not None and score < score_threshold:
                continue
            hits.append(ScoredMemory(memory=memory.model_copy(deep=True), score=score))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    async def get(self, memory_id: str) -> Memory | None:
        await asyncio.sleep(0)
        memory = self.records.get(memory_id)
        return memory.model_copy(deep=True) if memory is not None else None

    async def delete(self, memory_id: str) -> None:
        self.records.pop(memory_id, None)
        self.vectors.pop(memory_id, None)

    async def delete_many(self, memory_ids: list[str]) -> None:
        for memory_id in memory_ids:
            await self.delete(memory_id)

    async def delete_all(self) -> None:
        self.records.clear()
        self.vectors.clear()

    async def patch(self, memory_id: str, fields: dict[str, Any]) -> None:
        current = await self.get(memory_id)
        if current is None:
            raise NotFoundError(
                f"Memory {memory_id} not found",
                details=ResourceErrorDetails(
                    source="InMemoryVectorStore",
                    operation="patch",
                    resource_id=memory_id,
                    resource_type="memory",
                    action="write",
                ),
            )
        await asyncio.sleep(0)
        self.patches += 1
        self.records[memory_id] = current.model_copy(update=fields)

    async def scroll(self, specification: BaseSpecification | None, limit: int) -> list[Memory]:
        matches = [
            memory
            for memory in self.records.values()
            if specification is None or specification.is_satisfied_by(memory)
        ]
        matches.sort(key=lambda memory: memory.timestamp, reverse=True)
        return [memory.model_copy(deep=True) for memory in matches[:limit]]


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        voyage_api_key="test-voyage-key",
        anthropic_api_key="test-anthropic-key",
        similarity_threshold=0.7,
    )


@pytest.fixture
def embeddings() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def analysis() -> FakeAnalysisService:
    return FakeAnalysisService()


@pytest.fixture
def store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def service(
    store: InMemoryVectorStore,
    embeddings: FakeEmbeddingService,
    analysis: FakeAnalysisService,
    test_settings: Settings,
) -> MemoryService:
    return MemoryService(store, embeddings, analysis, config=test_settings)
