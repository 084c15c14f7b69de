"""Association graph and bulk operation results."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from memory_mesh.domain.models.memory import MemoryType


class GraphNode(BaseModel):
    id: str
    content: str
    type: MemoryType
    importance: float
    emotional_valence: float
    timestamp: datetime


class GraphEdge(BaseModel):
    source: str
    target: str


class GraphStats(BaseModel):
    total_nodes: int
    total_edges: int
    average_connections: float


class AssociationGraph(BaseModel):
    """Neighbourhood of the association relation, edges undirected and deduplicated."""

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    stats: GraphStats


class BulkDeleteResult(BaseModel):
    deleted: int
    failed: list[str] = Field(default_factory=list)


class ConsolidationStrategy(str, Enum):
    MERGE_CONTENT = "merge_content"
    SUMMARIZE = "summarize"
    KEEP_MOST_IMPORTANT = "keep_most_important"
    CREATE_COMPOSITE = "create_composite"
