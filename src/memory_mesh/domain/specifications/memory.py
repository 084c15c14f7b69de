"""Memory specifications used by search, reconstruction and cleanup.

Filter keys name Neo4j node properties: flat record fields as-is, context
entries with the ``context_`` prefix, datetimes as epoch seconds.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from memory_mesh.domain.models.memory import Memory, MemoryType
from memory_mesh.domain.models.search import SearchParams
from memory_mesh.domain.models.utils import ensure_utc
from memory_mesh.domain.specifications.composite import BaseSpecification, all_of


class MemoryTypeSpecification(BaseSpecification):
    """Exact match on memory type."""

    type: Literal["memory_type"] = "memory_type"
    memory_type: MemoryType

    def is_satisfied_by(self, entity: Memory) -> bool:
        return entity.type == self.memory_type

    def to_filter(self) -> dict[str, Any]:
        return {"type": self.memory_type.value}


class MinImportanceSpecification(BaseSpecification):
    """Find memories at or above an importance floor."""

    type: Literal["importance"] = "importance"
    min_importance: float = Field(0.5, ge=0.0, le=1.0)

    def is_satisfied_by(self, entity: Memory) -> bool:
        return entity.importance >= self.min_importance

    def to_filter(self) -> dict[str, Any]:
        return {"importance__gte": self.min_importance}


class EmotionalRangeSpecification(BaseSpecification):
    """Find memories whose valence falls inside an inclusive window."""

    type: Literal["emotional"] = "emotional"
    valence_min: float = Field(-1.0, ge=-1.0, le=1.0)
    valence_max: float = Field(1.0, ge=-1.0, le=1.0)

    def is_satisfied_by(self, entity: Memory) -> bool:
        return self.valence_min <= entity.emotional_valence <= self.valence_max

    def to_filter(self) -> dict[str, Any]:
        return {
            "emotional_valence__gte": self.valence_min,
            "emotional_valence__lte": self.valence_max,
        }


class DateRangeSpecification(BaseSpecification):
    """Find memories created inside an inclusive time window."""

    type: Literal["date_range"] = "date_range"
    start: datetime | None = None
    end: datetime | None = None

    def is_satisfied_by(self, entity: Memory) -> bool:
        timestamp = ensure_utc(entity.timestamp)
        if self.start is not None and timestamp < ensure_utc(self.start):
            return False
        if self.end is not None and timestamp > ensure_utc(self.end):
            return False
        return True

    def to_filter(self) -> dict[str, Any]:
        filters: dict[str, Any] = {}
        if self.start is not None:
            filters["timestamp__gte"] = ensure_utc(self.start).timestamp()
        if self.end is not None:
            filters["timestamp__lte"] = ensure_utc(self.end).timestamp()
        return filters


class ChunkOfSpecification(BaseSpecification):
    """Children of a chunked parent."""

    type: Literal["chunk_of"] = "chunk_of"
    parent_id: str

    def is_satisfied_by(self, entity: Memory) -> bool:
        return entity.context.chunk_of == self.parent_id

    def to_filter(self) -> dict[str, Any]:
        return {"context_chunk_of": self.parent_id}


class ReferencesSpecification(BaseSpecification):
    """Memories whose association list contains the given id."""

    type: Literal["references"] = "references"
    memory_id: str

    def is_satisfied_by(self, entity: Memory) -> bool:
        return self.memory_id in entity.associations

    def to_filter(self) -> dict[str, Any]:
        return {"associations__has": self.memory_id}


def search_specification(params: SearchParams) -> BaseSpecification | None:
    """Translate search filters into one conjunction, or None when unfiltered."""
    if not params.has_filters:
        return None

    emotional = None
    if params.emotional_range is not None:
        emotional = EmotionalRangeSpecification(
            valence_min=params.emotional_range.min,
            valence_max=params.emotional_range.max,
        )

    date_range = None
    if params.date_range is not None:
        date_range = DateRangeSpecification(start=params.date_range.start, end=params.date_range.end)

    return all_of(
        MemoryTypeSpecification(memory_type=params.type) if params.type is not None else None,
        MinImportanceSpecification(min_importance=params.min_importance)
        if params.min_importance is not None
        else None,
        emotional,
        date_range,
    )
