"""Memory record domain model."""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from memory_mesh.domain.models.utils import from_epoch, utc_now

# Context and metadata bags only hold values a Neo4j property can store
ScalarValue = str | int | float | bool
BagValue = ScalarValue | list[str]

CONTEXT_PREFIX = "context_"
METADATA_PREFIX = "metadata_"


class MemoryType(str, Enum):
    """Kinds of memory a record can hold."""

    EPISODIC = "episodic"
    SEMANTIC = "semantic"
    PROCEDURAL = "procedural"
    EMOTIONAL = "emotional"
    SENSORY = "sensory"
    WORKING = "working"


class MemoryContext(BaseModel):
    """Situational attributes of a memory plus chunk lineage.

    Unknown keys are accepted as long as their values are scalars or lists of
    strings.
    """

    model_config = ConfigDict(extra="allow")

    location: str | None = None
    people: list[str] | None = None
    mood: str | None = None
    activity: str | None = None
    tags: list[str] | None = None
    source: str | None = None

    # Chunk lineage
    is_parent_chunk: bool | None = None
    chunk_index: int | None = None
    chunk_of: str | None = None
    total_chunks: int | None = None
    semantic_density: float | None = None

    @model_validator(mode="after")
    def _check_extra_values(self) -> "MemoryContext":
        for key, value in (self.model_extra or {}).items():
            if value is None or isinstance(value, ScalarValue):
                continue
            if isinstance(value, list) and all(isinstance(item, str) for item in value):
                continue
            raise ValueError(f"context value for '{key}' must be a scalar or a list of strings")
        return self

    def as_dict(self) -> dict[str, Any]:
        """Context entries that are actually set, extras included."""
        return self.model_dump(exclude_none=True)


class CompactMemory(BaseModel):
    """Lightweight projection returned by compact searches."""

    id: str
    content: str
    summary: str = ""
    type: MemoryType
    timestamp: datetime
    importance: float
    emotional_valence: float
    tags: list[str] = Field(default_factory=list)


class Memory(BaseModel):
    """A stored memory record."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str
    summary: str = ""
    type: MemoryType
    timestamp: datetime = Field(default_factory=utc_now)
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    emotional_valence: float = Field(default=0.0, ge=-1.0, le=1.0)
    associations: list[str] = Field(default_factory=list)
    context: MemoryContext = Field(default_factory=MemoryContext)
    metadata: dict[str, BagValue] = Field(default_factory=dict)
    last_accessed: datetime = Field(default_factory=utc_now)
    access_count: int = 0
    # Stored for clients; nothing in the service computes it
    decay: float = Field(default=0.0, ge=0.0, le=1.0)

    def __str__(self) -> str:
        return f"Memory(id={self.id[:8]}, type={self.type.value}, content='{self.content[:50]}...')"

    @property
    def tags(self) -> list[str]:
        return list(self.context.tags or [])

    @property
    def is_parent_chunk(self) -> bool:
        return bool(self.context.is_parent_chunk)

    @property
    def is_chunk(self) -> bool:
        return self.context.chunk_of is not None

    def embedding_text(self) -> str:
        """Text sent to the embedding provider: content, type and set context fields."""
        parts = []
        for key, value in self.context.as_dict().items():
            if not value:
                continue
            rendered = ", ".join(value) if isinstance(value, list) else value
            parts.append(f"{key}: {rendered}")
        return f"{self.content}\n\nType: {self.type.value}\nContext: {'; '.join(parts)}"

    def to_compact(self) -> CompactMemory:
        content = self.content
        if len(content) > 200:
            content = content[:197] + "..."
        return CompactMemory(
            id=self.id,
            content=content,
            summary=self.summary,
            type=self.type,
            timestamp=self.timestamp,
            importance=self.importance,
            emotional_valence=self.emotional_valence,
            tags=self.tags,
        )

    def to_neo4j_properties(self) -> dict[str, Any]:
        """Convert to a flat Neo4j property map.

        Context and metadata are flattened with ``context_``/``metadata_``
        prefixes, datetimes become epoch seconds and unset values are dropped.
        """
        props = self.model_dump(exclude={"context", "metadata", "timestamp", "last_accessed"})
        props["type"] = self.type.value
        props["timestamp"] = self.timestamp.timestamp()
        props["last_accessed"] = self.last_accessed.timestamp()

        for key, value in self.context.as_dict().items():
            props[f"{CONTEXT_PREFIX}{key}"] = value
        for key, value in self.metadata.items():
            if value is not None:
                props[f"{METADATA_PREFIX}{key}"] = value

        return props

    @classmethod
    def from_neo4j_record(cls, record: Mapping[str, Any]) -> "Memory":
        """Rebuild a memory from the properties of a ``:Memory`` node."""
        data = dict(record)
        data.pop("embedding", None)

        context = {}
        metadata = {}
        for key in list(data):
            if key.startswith(CONTEXT_PREFIX):
                context[key.removeprefix(CONTEXT_PREFIX)] = data.pop(key)
            elif key.startswith(METADATA_PREFIX):
                metadata[key.removeprefix(METADATA_PREFIX)] = data.pop(key)

        for field in ("timestamp", "last_accessed"):
            if isinstance(data.get(field), int | float):
                data[field] = from_epoch(data[field])

        return cls(**data, context=MemoryContext(**context), metadata=metadata)


class MemoryUpdate(BaseModel):
    """Partial update for an existing memory.

    ``importance`` is range-checked by the service so that callers get a
    ValidationError carrying the offending value.
    """

    content: str | None = None
    summary: str | None = None
    type: MemoryType | None = None
    importance: float | None = None
    context: dict[str, BagValue | None] | None = None
    metadata: dict[str, BagValue] | None = None


class ScoredMemory(BaseModel):
    """A nearest-neighbour hit from the vector store."""

    memory: Memory
    score: float
