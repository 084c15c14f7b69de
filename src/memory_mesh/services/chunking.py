"""Text chunking for long memories.

Four strategies share one entry point, ``ChunkingService.chunk``:

- ``fixed``: character windows snapped to a nearby sentence end
- ``sentence``: sentences packed up to a token budget
- ``paragraph``: one chunk per blank-line separated block
- ``semantic``: neighbouring sentences grouped while their embeddings stay similar

Token counts are estimated as ``ceil(chars / 4)``.
"""

import math
import re
from collections.abc import Sequence

import numpy as np

from memory_mesh.core.errors import ProcessingError
from memory_mesh.core.logging import get_logger
from memory_mesh.domain.models.chunking import ChunkingMethod, ChunkingOptions, ChunkMetadata, TextChunk
from memory_mesh.services import EmbeddingService

logger = get_logger(__name__)

# Break after terminal punctuation when whitespace and a capital letter follow.
# "Dr. Smith" is split too; that is a known limitation of the heuristic.
SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+(?=[A-Z])")
PARAGRAPH_BREAK = re.compile(r"\n\n+")

CHARS_PER_TOKEN = 4
# Overlap budgets are converted to whole sentences at this many tokens each
OVERLAP_TOKENS_PER_SENTENCE = 50
DEFAULT_FIXED_SIZE = 500
SENTENCE_END_LOOKAROUND = 50
DEFAULT_SEMANTIC_THRESHOLD = 0.75


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def split_sentences(text: str) -> list[str]:
    return [part.strip() for part in SENTENCE_BOUNDARY.split(text) if part.strip()]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)
    norm = np.linalg.norm(vec_a) * np.linalg.norm(vec_b)
    if norm == 0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / norm)


def mean_embedding(embeddings: Sequence[Sequence[float]]) -> list[float]:
    return np.mean(np.asarray(embeddings, dtype=float), axis=0).tolist()


def semantic_density(embeddings: Sequence[Sequence[float]]) -> float:
    """Mean pairwise cosine similarity; 1.0 for fewer than two embeddings."""
    if len(embeddings) < 2:
        return 1.0
    matrix = np.asarray(embeddings, dtype=float)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    unit = matrix / norms
    similarities = unit @ unit.T
    upper = np.triu_indices(len(embeddings), k=1)
    return float(similarities[upper].mean())


def _overlap_sentences(overlap_size: int) -> int:
    return math.ceil(overlap_size / OVERLAP_TOKENS_PER_SENTENCE)


def _sentence_metadata(sentences: list[str], content: str) -> ChunkMetadata:
    return ChunkMetadata(
        sentence_count=len(sentences),
        avg_sentence_length=len(content) / len(sentences) if sentences else None,
    )


class ChunkingService:
    """Splits text into ordered chunks.

    The embedding service is only needed for the ``semantic`` method.
    """

    def __init__(self, embeddings: EmbeddingService | None = None):
        self.embeddings = embeddings

    async def chunk(self, text: str, options: ChunkingOptions | None = None) -> list[TextChunk]:
        options = options or ChunkingOptions()
        if not text or not text.strip():
            return []

        if options.method == ChunkingMethod.FIXED:
            chunks = self._chunk_fixed(text, options)
        elif options.method == ChunkingMethod.SENTENCE:
            chunks = self._chunk_sentences(text, options)
        elif options.method == ChunkingMethod.PARAGRAPH:
            chunks = self._chunk_paragraphs(text)
        else:
            chunks = await self._chunk_semantic(text, options)

        logger.debug(f"Split {len(text)} chars into {len(chunks)} {options.method.value} chunks")
        return chunks

    def _chunk_fixed(self, text: str, options: ChunkingOptions) -> list[TextChunk]:
        max_size = options.max_chunk_size or DEFAULT_FIXED_SIZE
        overlap = options.overlap_size if options.overlap_size is not None else max_size // 10
        chunks: list[TextChunk] = []

        start = 0
        while start < len(text):
            end = start + max_size
            if end < len(text):
                boundary = text.find(". ", max(start, end - SENTENCE_END_LOOKAROUND))
                if boundary != -1 and boundary < end + SENTENCE_END_LOOKAROUND:
                    end = boundary + 2
            else:
                end = len(text)

            piece = text[start:end]
            if piece.strip():
                chunks.append(TextChunk(content=piece, start_index=start, end_index=end))
            if end >= len(text):
                break
            # Always advance, even when the overlap swallows the whole window
            start = max(end - overlap, start + 1)

        return chunks

    def _chunk_sentences(self, text: str, options: ChunkingOptions) -> list[TextChunk]:
        sentences = split_sentences(text)
        max_tokens = options.max_chunk_size
        chunks: list[TextChunk] = []

        current: list[str] = []
        current_tokens = 0
        chunk_start = 0

        def close_chunk() -> None:
            content = " ".join(current)
            chunks.append(
                TextChunk(
                    content=content,
                    start_index=chunk_start,
                    end_index=chunk_start + len(content),
                    metadata=_sentence_metadata(current, content),
                )
            )

        for i, sentence in enumerate(sentences):
            sentence_tokens = estimate_tokens(sentence)
            if max_tokens and current and current_tokens + sentence_tokens > max_tokens:
                close_chunk()
                if options.overlap_size:
                    first = max(0, i - _overlap_sentences(options.overlap_size))
                    current = sentences[first:i]
                    current_tokens = sum(estimate_tokens(s) for s in current)
                    chunk_start = max(0, text.find(current[0]))
                else:
                    current = []
                    current_tokens = 0
                    chunk_start = max(0, text.find(sentence))

            current.append(sentence)
            current_tokens += sentence_tokens

        if current:
            close_chunk()

        return chunks

    def _chunk_paragraphs(self, text: str) -> list[TextChunk]:
        chunks: list[TextChunk] = []
        cursor = 0

        for paragraph in PARAGRAPH_BREAK.split(text):
            content = paragraph.strip()
            if not content:
                continue
            start = text.find(content, cursor)
            end = start + len(content)
            chunks.append(
                TextChunk(
                    content=content,
                    start_index=start,
                    end_index=end,
                    metadata=ChunkMetadata(sentence_count=len(split_sentences(content))),
                )
            )
            cursor = end

        return chunks

    async def _chunk_semantic(self, text: str, options: ChunkingOptions) -> list[TextChunk]:
        if self.embeddings is None:
            raise ProcessingError(
                "Semantic chunking requires an embedding service",
                details={"source": "chunking", "operation": "chunk_semantic"},
            )

        sentences = split_sentences(text)
        if not sentences:
            return []

        threshold = (
            options.semantic_threshold if options.semantic_threshold is not None else DEFAULT_SEMANTIC_THRESHOLD
        )
        max_tokens = options.max_chunk_size

        # Each sentence is embedded with its neighbours for context, in one batch
        groups = [
            " ".join(sentences[max(0, i - 1) : i + 2]).strip()
            for i in range(len(sentences))
        ]
        embeddings = await self.embeddings.embed_batch(groups)

        chunks: list[TextChunk] = []
        current = [sentences[0]]
        chunk_first = 0
        chunk_embedding = embeddings[0]

        def close_chunk(members: list[list[float]]) -> None:
            content = " ".join(current)
            start = max(0, text.find(current[0]))
            metadata = _sentence_metadata(current, content)
            metadata.semantic_density = semantic_density(members)
            chunks.append(
                TextChunk(
                    content=content,
                    start_index=start,
                    end_index=start + len(content),
                    embedding=list(chunk_embedding),
                    metadata=metadata,
                )
            )

        for i in range(1, len(sentences)):
            similarity = cosine_similarity(chunk_embedding, embeddings[i])
            estimated = estimate_tokens(" ".join(current) + " " + sentences[i])

            if similarity >= threshold and (not max_tokens or estimated <= max_tokens):
                current.append(sentences[i])
                chunk_embedding = mean_embedding(embeddings[chunk_first : i + 1])
                continue

            close_chunk(embeddings[chunk_first:i])

            if options.overlap_size:
                chunk_first = max(0, i - _overlap_sentences(options.overlap_size))
                current = sentences[chunk_first : i + 1]
                chunk_embedding = mean_embedding(embeddings[chunk_first : i + 1])
            else:
                chunk_first = i
                current = [sentences[i]]
                chunk_embedding = embeddings[i]

        close_chunk(embeddings[chunk_first:])
        return chunks

    @staticmethod
    def merge_chunks(chunks: list[TextChunk], similarity_threshold: float = 0.8) -> list[TextChunk]:
        """Greedily merge consecutive chunks whose embeddings are similar enough."""
        if not chunks:
            return []

        merged: list[TextChunk] = []
        current = chunks[0]

        for candidate in chunks[1:]:
            if (
                current.embedding
                and candidate.embedding
                and cosine_similarity(current.embedding, candidate.embedding) >= similarity_threshold
            ):
                content = f"{current.content} {candidate.content}"
                sentence_count = (current.metadata.sentence_count or 0) + (candidate.metadata.sentence_count or 0)
                current = TextChunk(
                    content=content,
                    start_index=current.start_index,
                    end_index=candidate.end_index,
                    embedding=mean_embedding([current.embedding, candidate.embedding]),
                    metadata=ChunkMetadata(
                        sentence_count=sentence_count,
                        avg_sentence_length=len(content) / sentence_count if sentence_count else None,
                        semantic_density=(
                            (current.metadata.semantic_density or 0) + (candidate.metadata.semantic_density or 0)
                        )
                        / 2,
                    ),
                )
            else:
                merged.append(current)
                current = candidate

        merged.append(current)
        return merged
