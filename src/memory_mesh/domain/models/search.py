"""Search request models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from memory_mesh.domain.models.memory import MemoryType
from memory_mesh.domain.models.utils import ensure_utc


class DetailLevel(str, Enum):
    COMPACT = "compact"
    FULL = "full"


class EmotionalRange(BaseModel):
    """Inclusive valence window."""

    min: float = Field(default=-1.0, ge=-1.0, le=1.0)
    max: float = Field(default=1.0, ge=-1.0, le=1.0)

    @model_validator(mode="after")
    def _ordered(self) -> "EmotionalRange":
        if self.min > self.max:
            raise ValueError("emotional range min must not exceed max")
        return self


class DateRange(BaseModel):
    """Inclusive creation-time window; either bound may be open."""

    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class SearchParams(BaseModel):
    """Parameters for semantic and filter-only search."""

    query: str = ""
    type: MemoryType | None = None
    min_importance: float | None = Field(default=None, ge=0.0, le=1.0)
    emotional_range: EmotionalRange | None = None
    date_range: DateRange | None = None
    limit: int = Field(default=10, ge=1, le=100)
    include_associations: bool = False
    similarity_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    detail_level: DetailLevel = DetailLevel.FULL
    reconstruct_chunks: bool = False

    @property
    def has_filters(self) -> bool:
        return any(
            value is not None
            for value in (self.type, self.min_importance, self.emotional_range, self.date_range)
        )
