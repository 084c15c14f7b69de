"""Memory service: record lifecycle, chunked storage, search and the association graph.

Associations are plain id lists on each record. They are weak references:
nothing cascades on delete, and traversals prune ids that no longer resolve.
Updates are read-merge-write without locking, so two concurrent updates of the
same record can lose one of the writes.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from memory_mesh.core.base import ApplicationError, ErrorLevel, ResourceErrorDetails, ValidationErrorDetails
from memory_mesh.core.config import Settings, settings
from memory_mesh.core.decorators import with_error_handling
from memory_mesh.core.errors import NotFoundError, ValidationError
from memory_mesh.core.logging import get_logger
from memory_mesh.domain.models.chunking import ChunkingMethod, ChunkingOptions
from memory_mesh.domain.models.graph import (
    AssociationGraph,
    BulkDeleteResult,
    ConsolidationStrategy,
    GraphEdge,
    GraphNode,
    GraphStats,
)
from memory_mesh.domain.models.memory import (
    CompactMemory,
    Memory,
    MemoryContext,
    MemoryType,
    MemoryUpdate,
    ScoredMemory,
)
from memory_mesh.domain.models.search import DetailLevel, SearchParams
from memory_mesh.domain.models.utils import utc_now
from memory_mesh.domain.specifications.memory import (
    ChunkOfSpecification,
    ReferencesSpecification,
    search_specification,
)
from memory_mesh.services.chunking import ChunkingService, estimate_tokens

if TYPE_CHECKING:
    from memory_mesh.domain.specifications.composite import BaseSpecification
    from memory_mesh.services import AnalysisService, EmbeddingService, VectorStore

logger = get_logger(__name__)

MAX_ASSOCIATIONS = 10
MAX_REVERSE_ASSOCIATIONS = 5
AUTO_ASSOCIATION_CANDIDATES = 5
AUTO_ASSOCIATION_KEEP = 3
MAX_SEARCH_CANDIDATES = 100
SUMMARY_PASSTHROUGH_LENGTH = 150
CHUNK_PARENT_PREVIEW = 200
DEFAULT_CHUNK_PARENT_IMPORTANCE = 0.8
RECONSTRUCTION_LIMIT = 100
REFERENCE_SCAN_LIMIT = 1000
GRAPH_SEED_IMPORTANCE = 0.7
GRAPH_SEED_LIMIT = 10
GRAPH_PREVIEW_LENGTH = 50
COMPOSITE_PREVIEW_LENGTH = 100

CHUNK_LINEAGE_KEYS = ("is_parent_chunk", "chunk_index", "chunk_of", "total_chunks", "semantic_density")

ContextInput = MemoryContext | Mapping[str, Any] | None


def estimate_importance(content: str, memory_type: MemoryType) -> float:
    """Heuristic importance for callers that do not supply one."""
    importance = 0.5
    if memory_type == MemoryType.EPISODIC:
        importance += 0.2
    elif memory_type == MemoryType.EMOTIONAL:
        importance += 0.15
    if len(content) > 200:
        importance += 0.1
    return min(importance, 1.0)


def _append_capped(ids: list[str], new_id: str, cap: int) -> list[str]:
    """Append and keep the newest ``cap`` ids; the oldest entries fall off first."""
    return [*ids, new_id][-cap:]


def _context_dict(context: ContextInput) -> dict[str, Any]:
    if context is None:
        return {}
    if isinstance(context, MemoryContext):
        return context.as_dict()
    return {key: value for key, value in context.items() if value is not None}


def _validate_content(content: str | None, operation: str) -> None:
    if content is None or not content.strip():
        raise ValidationError(
            "Memory content must not be empty",
            details=ValidationErrorDetails(
                source="memory_service",
                operation=operation,
                field="content",
                actual_value=content,
                constraint="non-empty after trimming",
            ),
        )


def _validate_importance(importance: float, operation: str) -> None:
    if not 0.0 <= importance <= 1.0:
        raise ValidationError(
            f"Importance must be between 0 and 1, got {importance}",
            details=ValidationErrorDetails(
                source="memory_service",
                operation=operation,
                field="importance",
                actual_value=importance,
                expected_type="float",
                constraint="0 <= importance <= 1",
            ),
        )


def _validate_type(memory_type: MemoryType | str, operation: str) -> MemoryType:
    try:
        return MemoryType(memory_type)
    except ValueError as e:
        raise ValidationError(
            f"Unknown memory type: {memory_type}",
            details=ValidationErrorDetails(
                source="memory_service",
                operation=operation,
                field="type",
                actual_value=memory_type,
                constraint=f"one of {[item.value for item in MemoryType]}",
            ),
        ) from e


class MemoryService:
    """Stores, searches, links and consolidates memories.

    The store and both providers are injected so tests can swap in fakes.
    """

    def __init__(
        self,
        store: VectorStore,
        embeddings: EmbeddingService,
        analysis: AnalysisService,
        chunker: ChunkingService | None = None,
        config: Settings | None = None,
    ):
        self.store = store
        self.embeddings = embeddings
        self.analysis = analysis
        self.chunker = chunker or ChunkingService(embeddings)
        self.config = config or settings

    # ------------------------------------------------------------------
    # Record lifecycle
    # ------------------------------------------------------------------

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def create(
        self,
        content: str,
        memory_type: MemoryType | str,
        context: ContextInput = None,
        importance: float | None = None,
        summary: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Memory:
        """Store a single memory.

        Args:
            content: Memory text, non-empty after trimming
            memory_type: One of the MemoryType values
            context: Situational attributes; caller tags replace extracted keywords
            importance: 0.0-1.0, estimated from type and length when omitted
            summary: Short summary, generated when omitted
            metadata: Provenance or tracking fields

        Returns:
            The stored memory, including any automatically discovered associations

        Raises:
            ValidationError: Empty content or importance outside [0, 1]
        """
        _validate_content(content, "create")
        memory_type = _validate_type(memory_type, "create")
        if importance is None:
            importance = estimate_importance(content, memory_type)
        else:
            _validate_importance(importance, "create")

        valence = await self.analysis.score_emotion(content)
        keywords = await self.analysis.extract_keywords(content)

        memory = Memory(
            content=content,
            summary=summary if summary is not None else await self._summarize(content),
            type=memory_type,
            importance=importance,
            emotional_valence=max(-1.0, min(1.0, valence)),
            context=MemoryContext(**{"tags": keywords, **_context_dict(context)}),
            metadata=dict(metadata or {}),
        )

        embedding = await self.embeddings.embed_text(memory.embedding_text())
        await self.store.upsert(memory, embedding)

        associations = await self._discover_associations(memory, embedding)
        if associations:
            memory = memory.model_copy(update={"associations": associations})

        logger.info(f"Stored {memory_type.value} memory {memory.id} with {len(associations)} associations")
        return memory

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def get(self, memory_id: str) -> Memory | None:
        """Fetch a memory by id and record the access."""
        memory = await self.store.get(memory_id)
        if memory is None:
            return None
        return await self._touch(memory)

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def update(self, memory_id: str, updates: MemoryUpdate | Mapping[str, Any]) -> Memory | None:
        """Apply a partial update.

        Context and metadata are merged key by key into the stored values; a
        ``None`` context value removes that key. Changing the content re-embeds
        the record. The read and the write are separate store calls, so
        concurrent updates of one record can overwrite each other.

        Returns:
            The updated memory, or None if it does not exist

        Raises:
            ValidationError: Empty content or importance outside [0, 1]
        """
        if not isinstance(updates, MemoryUpdate):
            updates = MemoryUpdate(**updates)

        current = await self.store.get(memory_id)
        if current is None:
            logger.info(f"Update skipped, memory {memory_id} not found")
            return None

        if updates.content is not None:
            _validate_content(updates.content, "update")
        if updates.importance is not None:
            _validate_importance(updates.importance, "update")

        fields: dict[str, Any] = {
            key: getattr(updates, key)
            for key in ("content", "summary", "type", "importance")
            if getattr(updates, key) is not None
        }
        content_changed = updates.content is not None and updates.content != current.content
        if content_changed and updates.summary is None:
            fields["summary"] = await self._summarize(updates.content)

        if updates.context is not None:
            merged = {**current.context.as_dict(), **updates.context}
            fields["context"] = MemoryContext(**{k: v for k, v in merged.items() if v is not None})

        fields["metadata"] = {
            **current.metadata,
            **(updates.metadata or {}),
            "updated_at": utc_now().isoformat(),
        }

        updated = current.model_copy(update=fields)
        if content_changed:
            embedding = await self.embeddings.embed_text(updated.embedding_text())
            await self.store.upsert(updated, embedding)
        else:
            await self.store.patch(memory_id, fields)

        logger.info(f"Updated memory {memory_id}", fields=sorted(fields), reembedded=content_changed)
        return updated

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def delete(self, memory_id: str) -> None:
        """Delete one memory. References to it elsewhere are left dangling."""
        await self.store.delete(memory_id)
        logger.info(f"Deleted memory {memory_id}")

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def bulk_delete(self, memory_ids: list[str]) -> BulkDeleteResult:
        """Delete several memories, unlinking them from the records that point at them.

        A failed batch delete falls back to deleting one id at a time; ids that
        still fail are reported in ``failed``.
        """
        ids = list(dict.fromkeys(memory_ids))
        if not ids:
            return BulkDeleteResult(deleted=0)

        doomed = set(ids)
        for memory_id in ids:
            referrers = await self.store.scroll(ReferencesSpecification(memory_id=memory_id), REFERENCE_SCAN_LIMIT)
            for referrer in referrers:
                if referrer.id not in doomed:
                    await self.remove_association(referrer.id, memory_id, bidirectional=False)

        try:
            await self.store.delete_many(ids)
        except ApplicationError as e:
            logger.warning(f"Batch delete of {len(ids)} memories failed, retrying one by one", error=str(e))
        else:
            logger.info(f"Bulk deleted {len(ids)} memories")
            return BulkDeleteResult(deleted=len(ids))

        deleted = 0
        failed: list[str] = []
        for memory_id in ids:
            try:
                await self.store.delete(memory_id)
                deleted += 1
            except ApplicationError as e:
                logger.error(f"Failed to delete memory {memory_id}", error=str(e))
                failed.append(memory_id)

        return BulkDeleteResult(deleted=deleted, failed=failed)

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def delete_all(self) -> bool:
        """Remove every memory. Callers are expected to confirm first."""
        await self.store.delete_all()
        logger.warning("Deleted all memories")
        return True

    # ------------------------------------------------------------------
    # Chunked storage
    # ------------------------------------------------------------------

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def create_with_chunking(
        self,
        content: str,
        memory_type: MemoryType | str,
        context: ContextInput = None,
        importance: float | None = None,
        options: ChunkingOptions | None = None,
        summary: str | None = None,
    ) -> list[Memory]:
        """Store long content as a parent memory plus one child per chunk.

        Content that fits in ``max_chunk_size`` tokens is stored as a single
        memory. Otherwise the parent holds a preview, each child holds one
        chunk, and parent-child and consecutive child-child pairs are linked
        in both directions.

        Returns:
            ``[memory]`` for short content, else ``[parent, *children]``
        """
        _validate_content(content, "create_with_chunking")
        memory_type = _validate_type(memory_type, "create_with_chunking")
        if importance is not None:
            _validate_importance(importance, "create_with_chunking")

        options = options or self._default_chunking_options()
        max_size = options.max_chunk_size or self.config.chunking.max_chunk_size
        if estimate_tokens(content) <= max_size:
            return [await self.create(content, memory_type, context, importance, summary)]

        chunks = await self.chunker.chunk(content, options)
        if not chunks:
            return [await self.create(content, memory_type, context, importance, summary)]

        base_context = _context_dict(context)
        total = len(chunks)

        parent = await self.create(
            f"[Chunked Memory - {total} parts] {content[:CHUNK_PARENT_PREVIEW]}...",
            memory_type,
            {**base_context, "is_parent_chunk": True, "total_chunks": total},
            importance if importance is not None else DEFAULT_CHUNK_PARENT_IMPORTANCE,
            summary,
        )

        children: list[Memory] = []
        for index, chunk in enumerate(chunks):
            density = chunk.metadata.semantic_density
            base_importance = importance if importance is not None else estimate_importance(chunk.content, memory_type)
            child_importance = max(0.0, min(1.0, base_importance * (density if density is not None else 1.0)))
            child = await self.create(
                chunk.content,
                memory_type,
                {
                    **base_context,
                    "chunk_index": index,
                    "chunk_of": parent.id,
                    "total_chunks": total,
                    "semantic_density": density,
                },
                child_importance,
            )
            children.append(child)

        for child in children:
            await self.connect(parent.id, child.id, bidirectional=True)
        for previous, following in zip(children, children[1:], strict=False):
            await self.connect(previous.id, following.id, bidirectional=True)

        logger.info(f"Stored chunked memory {parent.id} with {total} chunks ({options.method.value})")

        stored: list[Memory] = []
        for memory in (parent, *children):
            stored.append(await self.store.get(memory.id) or memory)
        return stored

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def search(self, params: SearchParams | None = None, **kwargs: Any) -> list[Memory] | list[CompactMemory]:
        """Semantic search, or filter-only listing when the query is blank.

        A blank query with no filters returns nothing and never calls the
        embedding provider. Every returned memory has its access recorded.
        With ``include_associations`` the directly associated memories are
        appended and the full records are returned whatever the detail level.
        """
        params = params or SearchParams(**kwargs)
        specification = search_specification(params)

        if not params.query.strip():
            if specification is None:
                return []
            memories = await self.store.scroll(specification, params.limit)
        else:
            threshold = self._resolve_threshold(params.similarity_threshold)
            embedding = await self.embeddings.embed_text(params.query)
            hits = await self._ranked_search(embedding, params.limit, specification, threshold)
            memories = [hit.memory for hit in hits]

        memories = [await self._touch(memory) for memory in memories]
        logger.debug(f"Search returned {len(memories)} memories", query=params.query[:50])

        if params.include_associations:
            return await self._with_associations(memories)
        if params.detail_level == DetailLevel.COMPACT:
            return [memory.to_compact() for memory in memories]
        return memories

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def search_chunked(self, params: SearchParams) -> list[Memory] | list[CompactMemory]:
        """Search, then replace chunked parents by their reassembled content.

        Reconstruction only happens for full-detail searches with
        ``reconstruct_chunks`` set. Child chunks are dropped from the result;
        parents without children are returned unchanged.
        """
        results = await self.search(params)
        if not params.reconstruct_chunks or params.detail_level == DetailLevel.COMPACT:
            return results

        processed: set[str] = set()
        output: list[Memory] = []
        for memory in results:
            if not isinstance(memory, Memory):
                output.append(memory)
                continue
            if memory.is_parent_chunk and memory.id not in processed:
                processed.add(memory.id)
                output.append(await self._reconstruct(memory))
            elif not memory.is_chunk:
                output.append(memory)
        return output

    # ------------------------------------------------------------------
    # Associations and graph
    # ------------------------------------------------------------------

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def connect(self, source_id: str, target_id: str, bidirectional: bool = True) -> None:
        """Link two memories. Linking an existing pair is a no-op.

        Each side keeps at most ten associations; the oldest is evicted first.

        Raises:
            NotFoundError: Either memory does not exist
        """
        source = await self.store.get(source_id)
        target = await self.store.get(target_id)
        if source is None or target is None:
            missing = source_id if source is None else target_id
            raise NotFoundError(
                f"Memory {missing} not found",
                details=ResourceErrorDetails(
                    source="memory_service",
                    operation="connect",
                    resource_id=missing,
                    resource_type="memory",
                    action="link",
                ),
            )

        if target_id not in source.associations:
            await self.store.patch(
                source_id, {"associations": _append_capped(source.associations, target_id, MAX_ASSOCIATIONS)}
            )
        if bidirectional and source_id not in target.associations:
            await self.store.patch(
                target_id, {"associations": _append_capped(target.associations, source_id, MAX_ASSOCIATIONS)}
            )
        logger.debug(f"Connected {source_id} -> {target_id}", bidirectional=bidirectional)

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def remove_association(self, source_id: str, target_id: str, bidirectional: bool = True) -> None:
        """Unlink two memories. Missing memories are ignored."""
        await self._unlink(source_id, target_id)
        if bidirectional:
            await self._unlink(target_id, source_id)

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def find_paths(
        self,
        start_id: str,
        end_id: str,
        max_depth: int = 5,
        include_content: bool = False,
    ) -> list[list[str]] | list[list[Memory]]:
        """Enumerate every simple path of at most ``max_depth`` hops.

        This is an exhaustive depth-first search, exponential in the branching
        factor; ``max_depth`` is what keeps it bounded. Ids that no longer
        resolve end their branch.

        Returns:
            Paths as id lists, or as memories when ``include_content`` is set
        """
        paths: list[list[str]] = []
        on_path: set[str] = set()

        async def explore(current: str, path: list[str], depth: int) -> None:
            if depth > max_depth:
                return
            if current == end_id:
                paths.append([*path, current])
                return

            memory = await self.store.get(current)
            if memory is None:
                return

            on_path.add(current)
            for next_id in memory.associations:
                if next_id not in on_path:
                    await explore(next_id, [*path, current], depth + 1)
            on_path.discard(current)

        await explore(start_id, [], 0)
        logger.debug(f"Found {len(paths)} paths from {start_id} to {end_id}", max_depth=max_depth)

        if not include_content:
            return paths

        hydrated: list[list[Memory]] = []
        for path in paths:
            memories = []
            for memory_id in path:
                memory = await self.get(memory_id)
                if memory is not None:
                    memories.append(memory)
            hydrated.append(memories)
        return hydrated

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def association_graph(
        self,
        center_id: str | None = None,
        depth: int = 2,
        min_importance: float | None = None,
        include_content: bool = False,
    ) -> AssociationGraph:
        """Extract the neighbourhood of a memory, breadth first.

        Without a center the walk starts from up to ten memories with
        importance of at least 0.7. Memories below ``min_importance`` are
        left out and not expanded. Edges are undirected and only kept when both
        ends made it into the graph.
        """
        if center_id is not None:
            seeds = [center_id]
        else:
            seed_memories = await self.search(
                SearchParams(min_importance=GRAPH_SEED_IMPORTANCE, limit=GRAPH_SEED_LIMIT)
            )
            seeds = [memory.id for memory in seed_memories]

        nodes: dict[str, GraphNode] = {}
        links: dict[str, list[str]] = {}
        queued = set(seeds)
        queue = deque((seed, 0) for seed in seeds)

        while queue:
            memory_id, distance = queue.popleft()
            if distance > depth:
                continue
            memory = await self.store.get(memory_id)
            if memory is None:
                continue
            if min_importance is not None and memory.importance < min_importance:
                continue

            nodes[memory_id] = GraphNode(
                id=memory.id,
                content=memory.content if include_content else memory.content[:GRAPH_PREVIEW_LENGTH] + "...",
                type=memory.type,
                importance=memory.importance,
                emotional_valence=memory.emotional_valence,
                timestamp=memory.timestamp,
            )
            links[memory_id] = memory.associations
            for associated_id in memory.associations:
                if associated_id not in queued:
                    queued.add(associated_id)
                    queue.append((associated_id, distance + 1))

        edge_keys: dict[tuple[str, str], None] = {}
        for memory_id, associated in links.items():
            for associated_id in associated:
                if associated_id in nodes and associated_id != memory_id:
                    pair = (memory_id, associated_id) if memory_id < associated_id else (associated_id, memory_id)
                    edge_keys[pair] = None

        edges = [GraphEdge(source=source, target=target) for source, target in edge_keys]
        return AssociationGraph(
            nodes=list(nodes.values()),
            edges=edges,
            stats=GraphStats(
                total_nodes=len(nodes),
                total_edges=len(edges),
                average_connections=len(edges) / max(len(nodes), 1),
            ),
        )

    # ------------------------------------------------------------------
    # Consolidation
    # ------------------------------------------------------------------

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def consolidate(
        self,
        memory_ids: list[str],
        strategy: ConsolidationStrategy | str = ConsolidationStrategy.MERGE_CONTENT,
        keep_originals: bool = False,
    ) -> Memory:
        """Combine several memories into one new semantic memory.

        Unknown and repeated ids are ignored. The result carries the union of the inputs'
        tags and links to every input; the inputs are deleted unless
        ``keep_originals`` is set.

        Raises:
            ValidationError: Fewer than two distinct ids resolve to memories
        """
        strategy = ConsolidationStrategy(strategy)

        memories: list[Memory] = []
        for memory_id in dict.fromkeys(memory_ids):
            memory = await self.get(memory_id)
            if memory is not None:
                memories.append(memory)

        if len(memories) < 2:
            raise ValidationError(
                "At least 2 existing memories are required for consolidation",
                details=ValidationErrorDetails(
                    source="memory_service",
                    operation="consolidate",
                    field="memory_ids",
                    actual_value=memory_ids,
                    constraint="at least 2 distinct existing memories",
                ),
            )

        contents = [memory.content for memory in memories]
        context: dict[str, Any] = {}

        if strategy == ConsolidationStrategy.MERGE_CONTENT:
            content = "\n\n---\n\n".join(contents)
            importance = max(memory.importance for memory in memories)
        elif strategy == ConsolidationStrategy.SUMMARIZE:
            content = await self.analysis.summarize_many(contents)
            importance = sum(memory.importance for memory in memories) / len(memories)
        elif strategy == ConsolidationStrategy.KEEP_MOST_IMPORTANT:
            top = max(memories, key=lambda memory: memory.importance)
            content = top.content
            importance = top.importance
            context = {k: v for k, v in top.context.as_dict().items() if k not in CHUNK_LINEAGE_KEYS}
        else:
            lines = "\n".join(f"- {text[:COMPOSITE_PREVIEW_LENGTH]}..." for text in contents)
            content = f"Composite memory from {len(memories)} sources:\n\n{lines}"
            importance = max(memory.importance for memory in memories)

        context["tags"] = list(dict.fromkeys(tag for memory in memories for tag in memory.tags))

        consolidated = await self.create(
            content,
            MemoryType.SEMANTIC,
            context,
            importance,
            metadata={
                "consolidated_from": [memory.id for memory in memories],
                "consolidation_strategy": strategy.value,
            },
        )

        for memory in memories:
            await self.connect(consolidated.id, memory.id, bidirectional=False)

        if not keep_originals:
            for memory in memories:
                await self.delete(memory.id)

        logger.info(
            f"Consolidated {len(memories)} memories into {consolidated.id}",
            strategy=strategy.value,
            kept_originals=keep_originals,
        )
        return await self.store.get(consolidated.id) or consolidated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_threshold(self, threshold: float | None) -> float:
        return threshold if threshold is not None else self.config.similarity_threshold

    def _default_chunking_options(self) -> ChunkingOptions:
        defaults = self.config.chunking
        return ChunkingOptions(
            method=ChunkingMethod(defaults.method),
            max_chunk_size=defaults.max_chunk_size,
            overlap_size=defaults.overlap_size,
            semantic_threshold=defaults.semantic_threshold,
        )

    async def _summarize(self, content: str) -> str:
        if len(content) <= SUMMARY_PASSTHROUGH_LENGTH:
            return content
        return await self.analysis.summarize(content)

    async def _ranked_search(
        self,
        embedding: list[float],
        limit: int,
        specification: BaseSpecification | None,
        threshold: float,
    ) -> list[ScoredMemory]:
        # Over-fetch so the score cut still leaves ``limit`` hits when possible
        candidates = min(limit * 3, MAX_SEARCH_CANDIDATES)
        hits = await self.store.search(embedding, candidates, specification, threshold)
        return [hit for hit in hits if hit.score >= threshold][:limit]

    async def _discover_associations(self, memory: Memory, embedding: list[float]) -> list[str]:
        hits = await self._ranked_search(
            embedding,
            AUTO_ASSOCIATION_CANDIDATES,
            None,
            self.config.similarity_threshold,
        )
        related = [hit.memory.id for hit in hits if hit.memory.id != memory.id][:AUTO_ASSOCIATION_KEEP]
        if not related:
            return []

        await self.store.patch(memory.id, {"associations": related})
        for related_id in related:
            other = await self.store.get(related_id)
            if other is None or memory.id in other.associations:
                continue
            await self.store.patch(
                related_id,
                {"associations": _append_capped(other.associations, memory.id, MAX_REVERSE_ASSOCIATIONS)},
            )
        return related

    async def _touch(self, memory: Memory) -> Memory:
        fields = {"last_accessed": utc_now(), "access_count": memory.access_count + 1}
        await self.store.patch(memory.id, fields)
        return memory.model_copy(update=fields)

    async def _with_associations(self, memories: list[Memory]) -> list[Memory]:
        seen = {memory.id for memory in memories}
        result = list(memories)
        for memory in memories:
            for associated_id in memory.associations:
                if associated_id in seen:
                    continue
                associated = await self.store.get(associated_id)
                if associated is None:
                    continue
                seen.add(associated_id)
                result.append(await self._touch(associated))
        return result

    async def _reconstruct(self, parent: Memory) -> Memory:
        limit = max(parent.context.total_chunks or 0, RECONSTRUCTION_LIMIT)
        children = await self.store.scroll(ChunkOfSpecification(parent_id=parent.id), limit)
        if not children:
            return parent
        children.sort(key=lambda child: child.context.chunk_index or 0)
        return parent.model_copy(
            update={
                "content": "\n\n".join(child.content for child in children),
                "metadata": {**parent.metadata, "reconstructed": True, "chunk_count": len(children)},
            }
        )

    async def _unlink(self, source_id: str, target_id: str) -> None:
        source = await self.store.get(source_id)
        if source is None or target_id not in source.associations:
            return
        await self.store.patch(
            source_id, {"associations": [item for item in source.associations if item != target_id]}
        )
