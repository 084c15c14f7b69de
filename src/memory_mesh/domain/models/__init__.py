"""Domain models for the memory service."""

from .chunking import ChunkingMethod, ChunkingOptions, ChunkMetadata, TextChunk
from .graph import (
    AssociationGraph,
    BulkDeleteResult,
    ConsolidationStrategy,
    GraphEdge,
    GraphNode,
    GraphStats,
)
from .memory import (
    CompactMemory,
    Memory,
    MemoryContext,
    MemoryType,
    MemoryUpdate,
    ScoredMemory,
)
from .search import DateRange, DetailLevel, EmotionalRange, SearchParams

__all__ = [
    # Graph
    "AssociationGraph",
    "BulkDeleteResult",
    # Chunking
    "ChunkMetadata",
    "ChunkingMethod",
    "ChunkingOptions",
    # Memory
    "CompactMemory",
    "ConsolidationStrategy",
    # Search
    "DateRange",
    "DetailLevel",
    "EmotionalRange",
    "GraphEdge",
    "GraphNode",
    "GraphStats",
    "Memory",
    "MemoryContext",
    "MemoryType",
    "MemoryUpdate",
    "ScoredMemory",
    "SearchParams",
    "TextChunk",
]
