"""Tool definitions for the MCP server.

Each tool takes one request model; its JSON schema is the tool's input schema
and it validates the raw arguments before they reach the service.
"""

from typing import Any

from pydantic import BaseModel, Field

from memory_mesh.domain.models.chunking import ChunkingOptions
from memory_mesh.domain.models.graph import ConsolidationStrategy
from memory_mesh.domain.models.memory import BagValue, MemoryType, MemoryUpdate
from memory_mesh.domain.models.search import DetailLevel, SearchParams


class StoreMemoryRequest(BaseModel):
    content: str = Field(..., description="The memory text")
    memory_type: MemoryType = Field(default=MemoryType.EPISODIC, description="Kind of memory")
    context: dict[str, BagValue] | None = Field(
        default=None, description="Situational attributes (location, people, mood, activity, tags, ...)"
    )
    importance: float | None = Field(
        default=None, ge=0.0, le=1.0, description="0.0-1.0, estimated when omitted"
    )
    summary: str | None = Field(default=None, description="Short summary, generated when omitted")
    metadata: dict[str, BagValue] | None = Field(default=None, description="Provenance or tracking fields")


class StoreChunkedMemoryRequest(BaseModel):
    content: str = Field(..., description="Long text to store as a parent memory plus chunks")
    memory_type: MemoryType = MemoryType.EPISODIC
    context: dict[str, BagValue] | None = None
    importance: float | None = Field(default=None, ge=0.0, le=1.0)
    summary: str | None = None
    chunking: ChunkingOptions | None = Field(default=None, description="Chunking method and sizes")


class SearchMemoriesRequest(SearchParams):
    """Search arguments; tool results default to the compact projection."""

    detail_level: DetailLevel = DetailLevel.COMPACT


class MemoryIdRequest(BaseModel):
    memory_id: str = Field(..., description="Memory id")


class UpdateMemoryRequest(MemoryUpdate):
    memory_id: str = Field(..., description="Memory to update")


class DeleteMemoriesBulkRequest(BaseModel):
    memory_ids: list[str] = Field(..., min_length=1, description="Memories to delete")


class DeleteAllMemoriesRequest(BaseModel):
    confirm: bool = Field(default=False, description="Must be true to delete every memory")


class AssociationRequest(BaseModel):
    source_id: str
    target_id: str
    bidirectional: bool = True


class FindMemoryPathsRequest(BaseModel):
    start_id: str
    end_id: str
    max_depth: int = Field(default=5, ge=0, le=10, description="Maximum number of hops")
    include_content: bool = Field(default=False, description="Return memories instead of ids")


class AssociationGraphRequest(BaseModel):
    center_id: str | None = Field(default=None, description="Start memory; important memories when omitted")
    depth: int = Field(default=2, ge=0, le=5)
    min_importance: float | None = Field(default=None, ge=0.0, le=1.0)
    include_content: bool = False


class ConsolidateMemoriesRequest(BaseModel):
    memory_ids: list[str] = Field(..., min_length=2)
    strategy: ConsolidationStrategy = ConsolidationStrategy.MERGE_CONTENT
    keep_originals: bool = False


TOOLS: dict[str, tuple[str, type[BaseModel]]] = {
    "store_memory": (
        "Store a memory with automatic summary, keywords, emotional valence and associations.",
        StoreMemoryRequest,
    ),
    "store_memory_chunked": (
        "Store long content as a parent memory linked to one memory per chunk.",
        StoreChunkedMemoryRequest,
    ),
    "search_memories": (
        "Semantic search over memories, or a filtered listing when the query is empty.",
        SearchMemoriesRequest,
    ),
    "get_memory": ("Fetch one memory by id.", MemoryIdRequest),
    "update_memory": (
        "Partially update a memory; context and metadata are merged key by key.",
        UpdateMemoryRequest,
    ),
    "delete_memory": ("Delete one memory.", MemoryIdRequest),
    "delete_memories_bulk": (
        "Delete several memories and unlink them from the memories that reference them.",
        DeleteMemoriesBulkRequest,
    ),
    "delete_all_memories": ("Delete every memory. Requires confirm=true.", DeleteAllMemoriesRequest),
    "connect_memories": ("Associate two memories.", AssociationRequest),
    "remove_association": ("Remove the association between two memories.", AssociationRequest),
    "find_memory_paths": (
        "List every association path between two memories up to a maximum depth.",
        FindMemoryPathsRequest,
    ),
    "get_association_graph": (
        "Extract the association graph around a memory.",
        AssociationGraphRequest,
    ),
    "consolidate_memories": (
        "Combine several memories into one semantic memory.",
        ConsolidateMemoriesRequest,
    ),
}


def tool_schema(name: str) -> dict[str, Any]:
    _, model = TOOLS[name]
    return model.model_json_schema()
