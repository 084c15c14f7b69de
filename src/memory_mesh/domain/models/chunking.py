"""Chunking options and results."""

from enum import Enum

from pydantic import BaseModel, Field


class ChunkingMethod(str, Enum):
    FIXED = "fixed"
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"
    SEMANTIC = "semantic"


class ChunkingOptions(BaseModel):
    """How to split long content.

    ``max_chunk_size`` is a token estimate (chars / 4) for every method
    except ``fixed``, where it counts characters.
    """

    method: ChunkingMethod = ChunkingMethod.SEMANTIC
    max_chunk_size: int | None = Field(default=None, gt=0)
    overlap_size: int | None = Field(default=None, ge=0)
    semantic_threshold: float | None = Field(default=None, ge=-1.0, le=1.0)


class ChunkMetadata(BaseModel):
    sentence_count: int | None = None
    avg_sentence_length: float | None = None
    semantic_density: float | None = None


class TextChunk(BaseModel):
    """A contiguous piece of the source text.

    Offsets come from a first-match search of the chunk's opening sentence
    and are best effort when sentences repeat.
    """

    content: str
    start_index: int
    end_index: int
    embedding: list[float] | None = None
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)
