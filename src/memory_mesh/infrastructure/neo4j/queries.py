"""Cypher queries for the memory store.

Every builder returns ``(query, params)``. Dynamic parts are limited to
compiled filter predicates and validated identifiers.
"""

from typing import Any, LiteralString, cast

from memory_mesh.infrastructure.neo4j.filter_compiler import compile_filters, compile_predicate

# Memories are returned without their vectors
MEMORY_PROJECTION = "m {.*, embedding: null}"


class MemoryQueries:
    """Queries over ``:Memory`` nodes."""

    @staticmethod
    def upsert(properties: dict[str, Any], embedding: list[float]) -> tuple[LiteralString, dict[str, Any]]:
        query = """
            MERGE (m:Memory {id: $id})
            SET m = $properties
            SET m.embedding = $embedding
            """
        return query, {"id": properties["id"], "properties": properties, "embedding": embedding}

    @staticmethod
    def get(memory_id: str) -> tuple[LiteralString, dict[str, Any]]:
        query = cast(LiteralString, f"MATCH (m:Memory {{id: $id}}) RETURN {MEMORY_PROJECTION} AS memory")
        return query, {"id": memory_id}

    @staticmethod
    def replace_properties(properties: dict[str, Any]) -> tuple[LiteralString, dict[str, Any]]:
        """Overwrite every property of a node except its embedding."""
        query = """
            MATCH (m:Memory {id: $id})
            WITH m, m.embedding AS embedding
            SET m = $properties
            SET m.embedding = embedding
            RETURN count(m) AS updated
            """
        return query, {"id": properties["id"], "properties": properties}

    @staticmethod
    def delete(memory_id: str) -> tuple[LiteralString, dict[str, Any]]:
        return "MATCH (m:Memory {id: $id}) DETACH DELETE m", {"id": memory_id}

    @staticmethod
    def delete_many(memory_ids: list[str]) -> tuple[LiteralString, dict[str, Any]]:
        query = """
            UNWIND $ids AS memory_id
            MATCH (m:Memory {id: memory_id})
            DETACH DELETE m
            """
        return query, {"ids": memory_ids}

    @staticmethod
    def delete_all() -> tuple[LiteralString, dict[str, Any]]:
        return "MATCH (m:Memory) DETACH DELETE m", {}

    @staticmethod
    def scroll(filters: dict[str, Any] | None, limit: int) -> tuple[LiteralString, dict[str, Any]]:
        """Filter-only listing, newest first."""
        where, params = compile_filters(filters, alias="m")
        query = f"""
            MATCH (m:Memory)
            {where}
            RETURN {MEMORY_PROJECTION} AS memory
            ORDER BY m.timestamp DESC
            LIMIT $limit
            """
        return cast(LiteralString, query), {**params, "limit": limit}

    @staticmethod
    def vector_search(
        index_name: str,
        embedding: list[float],
        limit: int,
        filters: dict[str, Any] | None,
        score_threshold: float | None,
    ) -> tuple[LiteralString, dict[str, Any]]:
        """k-nearest neighbours with an optional filter and cosine floor.

        The index reports cosine scores rescaled to ``(1 + cos) / 2``; they are
        mapped back to plain cosine similarity so thresholds keep their meaning.
        Filters run after the kNN step, so fewer than ``limit`` rows can come back.
        """
        predicate, params = compile_predicate(filters, alias="m")
        conditions = []
        if score_threshold is not None:
            conditions.append("score >= $threshold")
        if predicate:
            conditions.append(predicate)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            CALL db.index.vector.queryNodes($index_name, $k, $embedding)
            YIELD node, score AS raw_score
            WITH node AS m, 2 * raw_score - 1 AS score
            {where}
            RETURN {MEMORY_PROJECTION} AS memory, score
            ORDER BY score DESC
            LIMIT $k
            """
        return cast(LiteralString, query), {
            **params,
            "index_name": index_name,
            "k": limit,
            "embedding": embedding,
            "threshold": score_threshold,
        }


class SchemaQueries:
    """Index and constraint management."""

    @staticmethod
    def create_id_constraint() -> tuple[LiteralString, dict[str, Any]]:
        query = "CREATE CONSTRAINT memory_id IF NOT EXISTS FOR (m:Memory) REQUIRE m.id IS UNIQUE"
        return query, {}

    @staticmethod
    def create_vector_index(index_name: str, dimensions: int) -> tuple[LiteralString, dict[str, Any]]:
        """Create the cosine vector index over ``Memory.embedding``.

        Index names cannot be parameters, so ``index_name`` must be a plain
        identifier.
        """
        if not index_name.isidentifier():
            raise ValueError(f"Invalid index name: {index_name!r}")
        query = f"""
            CREATE VECTOR INDEX {index_name} IF NOT EXISTS
            FOR (m:Memory) ON m.embedding
            OPTIONS {{indexConfig: {{
              `vector.dimensions`: {int(dimensions)},
              `vector.similarity_function`: 'cosine'
            }}}}
            """
        return cast(LiteralString, query), {}
