"""Neo4j implementation of the ``VectorStore`` protocol.

Each memory is a ``:Memory`` node whose properties are the flattened record
(see ``Memory.to_neo4j_properties``) plus its vector in ``embedding``,
indexed by a cosine vector index.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, LiteralString

from neo4j.exceptions import DriverError, Neo4jError

from memory_mesh.core.base import DatabaseErrorDetails, ResourceErrorDetails
from memory_mesh.core.config import settings
from memory_mesh.core.decorators import with_session
from memory_mesh.core.errors import NotFoundError, ServiceError
from memory_mesh.core.logging import get_logger
from memory_mesh.domain.models.memory import Memory, ScoredMemory
from memory_mesh.infrastructure.neo4j.queries import MemoryQueries, SchemaQueries

if TYPE_CHECKING:
    from neo4j import AsyncDriver, AsyncSession, Record

    from memory_mesh.domain.specifications.composite import BaseSpecification

logger = get_logger(__name__)


class Neo4jVectorStore:
    """Memory store backed by Neo4j's native vector index."""

    def __init__(
        self,
        driver: AsyncDriver,
        index_name: str | None = None,
        database: str | None = None,
    ) -> None:
        self.driver = driver
        self.index_name = index_name or settings.neo4j_vector_index
        self.database = database or settings.neo4j_database

    async def _run(
        self,
        session: AsyncSession,
        query: LiteralString,
        params: dict[str, Any],
        operation: str,
    ) -> list[Record]:
        try:
            result = await session.run(query, parameters=params)
            return [record async for record in result]
        except (Neo4jError, DriverError) as e:
            raise ServiceError(
                message=f"Neo4j {operation} failed: {e}",
                details=DatabaseErrorDetails(
                    source="Neo4jVectorStore",
                    operation=operation,
                    service_name="Neo4j",
                    query_type=operation,
                    label="Memory",
                    index_name=self.index_name,
                ),
            ) from e

    @with_session()
    async def ensure_schema(self, session: AsyncSession, dimensions: int | None = None) -> None:
        """Create the id constraint and the vector index if they are missing."""
        dimensions = dimensions or settings.embedding_dimensions
        await self._run(session, *SchemaQueries.create_id_constraint(), operation="create_constraint")
        await self._run(
            session, *SchemaQueries.create_vector_index(self.index_name, dimensions), operation="create_index"
        )
        logger.info(f"Vector index '{self.index_name}' ready ({dimensions} dimensions)")

    @with_session()
    async def upsert(self, session: AsyncSession, memory: Memory, embedding: list[float]) -> None:
        await self._run(session, *MemoryQueries.upsert(memory.to_neo4j_properties(), embedding), operation="upsert")

    @with_session()
    async def search(
        self,
        session: AsyncSession,
        embedding: list[float],
        limit: int,
        specification: BaseSpecification | None = None,
        score_threshold: float | None = None,
    ) -> list[ScoredMemory]:
        filters = specification.to_filter() if specification is not None else None
        query, params = MemoryQueries.vector_search(self.index_name, embedding, limit, filters, score_threshold)
        records = await self._run(session, query, params, operation="vector_search")
        return [
            ScoredMemory(memory=Memory.from_neo4j_record(record["memory"]), score=record["score"])
            for record in records
        ]

    @with_session()
    async def get(self, session: AsyncSession, memory_id: str) -> Memory | None:
        records = await self._run(session, *MemoryQueries.get(memory_id), operation="get")
        if not records:
            return None
        return Memory.from_neo4j_record(records[0]["memory"])

    @with_session()
    async def delete(self, session: AsyncSession, memory_id: str) -> None:
        await self._run(session, *MemoryQueries.delete(memory_id), operation="delete")

    @with_session()
    async def delete_many(self, session: AsyncSession, memory_ids: list[str]) -> None:
        await self._run(session, *MemoryQueries.delete_many(memory_ids), operation="delete_many")

    @with_session()
    async def delete_all(self, session: AsyncSession) -> None:
        await self._run(session, *MemoryQueries.delete_all(), operation="delete_all")

    async def patch(self, memory_id: str, fields: dict[str, Any]) -> None:
        """Set top-level fields on a stored memory, keeping its embedding.

        Context and metadata are stored as prefixed properties, so the record is
        read, merged and written back whole. The read and the write are separate
        transactions; a concurrent patch in between is overwritten.

        Raises:
            NotFoundError: The memory does not exist
        """
        current = await self.get(memory_id)
        if current is None:
            raise NotFoundError(
                f"Memory {memory_id} not found",
                details=ResourceErrorDetails(
                    source="Neo4jVectorStore",
                    operation="patch",
                    resource_id=memory_id,
                    resource_type="memory",
                    action="write",
                ),
            )
        await self._replace(current.model_copy(update=fields))

    @with_session()
    async def _replace(self, session: AsyncSession, memory: Memory) -> None:
        await self._run(session, *MemoryQueries.replace_properties(memory.to_neo4j_properties()), operation="patch")

    @with_session()
    async def scroll(
        self,
        session: AsyncSession,
        specification: BaseSpecification | None,
        limit: int,
    ) -> list[Memory]:
        filters = specification.to_filter() if specification is not None else None
        records = await self._run(session, *MemoryQueries.scroll(filters, limit), operation="scroll")
        return [Memory.from_neo4j_record(record["memory"]) for record in records]
