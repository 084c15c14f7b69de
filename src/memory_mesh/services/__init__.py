"""Service layer interfaces and implementations."""

from typing import Any, Protocol, runtime_checkable

from memory_mesh.domain.models.memory import Memory, ScoredMemory
from memory_mesh.domain.specifications.composite import BaseSpecification


@runtime_checkable
class EmbeddingService(Protocol):
    """Protocol for embedding services."""

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts, one per input, in order."""
        ...


@runtime_checkable
class AnalysisService(Protocol):
    """Protocol for text analysis (keywords, valence, summaries)."""

    async def extract_keywords(self, text: str) -> list[str]: ...

    async def score_emotion(self, text: str) -> float:
        """Emotional valence in [-1, 1]."""
        ...

    async def summarize(self, text: str) -> str: ...

    async def summarize_many(self, texts: list[str]) -> str:
        """One summary covering all of ``texts``."""
        ...


@runtime_checkable
class VectorStore(Protocol):
    """Protocol for the memory store.

    ``search`` returns hits ordered by descending score. ``patch`` sets the
    given top-level fields on an existing record and leaves its embedding
    untouched.
    """

    async def upsert(self, memory: Memory, embedding: list[float]) -> None: ...

    async def search(
        self,
        embedding: list[float],
        limit: int,
        specification: BaseSpecification | None = None,
        score_threshold: float | None = None,
    ) -> list[ScoredMemory]: ...

    async def get(self, memory_id: str) -> Memory | None: ...

    async def delete(self, memory_id: str) -> None: ...

    async def delete_many(self, memory_ids: list[str]) -> None: ...

    async def delete_all(self) -> None: ...

    async def patch(self, memory_id: str, fields: dict[str, Any]) -> None: ...

    async def scroll(self, specification: BaseSpecification | None, limit: int) -> list[Memory]: ...


__all__ = ["AnalysisService", "EmbeddingService", "VectorStore"]
