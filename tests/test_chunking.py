"""Tests for the text chunker."""

from __future__ import annotations

import pytest

from memory_mesh.core.errors import ProcessingError
from memory_mesh.domain.models.chunking import ChunkingMethod, ChunkingOptions, ChunkMetadata, TextChunk
from memory_mesh.services.chunking import (
    ChunkingService,
    estimate_tokens,
    semantic_density,
    split_sentences,
)


class TopicCountingEmbeddings:
    """Embeds a text as (occurrences of 'Cats', occurrences of 'Stocks')."""

    def __init__(self):
        self.batch_calls = 0
        self.text_calls = 0

    async def embed_text(self, text: str) -> list[float]:
        self.text_calls += 1
        return [float(text.count("Cats")), float(text.count("Stocks"))]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls += 1
        return [[float(text.count("Cats")), float(text.count("Stocks"))] for text in texts]


class TestHelpers:
    def test_estimate_tokens_rounds_up(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_split_sentences(self):
        text = "The cat sat. Did it purr? It did! then it slept."
        assert split_sentences(text) == ["The cat sat.", "Did it purr?", "It did! then it slept."]

    def test_abbreviations_are_split(self):
        """Known limitation: an abbreviation before a capital ends a sentence."""
        assert split_sentences("Dr. Smith arrived. He sat down.") == ["Dr.", "Smith arrived.", "He sat down."]

    def test_semantic_density(self):
        assert semantic_density([[1.0, 0.0]]) == 1.0
        assert semantic_density([[1.0, 0.0], [1.0, 0.0]]) == pytest.approx(1.0)
        assert semantic_density([[1.0, 0.0], [0.0, 1.0]]) == pytest.approx(0.0)


class TestFixedChunking:
    async def test_windows_without_sentence_breaks(self):
        chunker = ChunkingService()
        text = "a" * 1200

        chunks = await chunker.chunk(
            text, ChunkingOptions(method=ChunkingMethod.FIXED, max_chunk_size=500, overlap_size=0)
        )

        assert [(c.start_index, c.end_index) for c in chunks] == [(0, 500), (500, 1000), (1000, 1200)]
        assert "".join(c.content for c in chunks) == text

    async def test_overlap_repeats_the_window_tail(self):
        chunker = ChunkingService()
        text = "b" * 1200

        chunks = await chunker.chunk(
            text, ChunkingOptions(method=ChunkingMethod.FIXED, max_chunk_size=500, overlap_size=50)
        )

        assert [(c.start_index, c.end_index) for c in chunks] == [(0, 500), (450, 950), (900, 1200)]

    async def test_snaps_to_sentence_end(self):
        chunker = ChunkingService()
        text = "x" * 90 + ". " + "y" * 100

        chunks = await chunker.chunk(
            text, ChunkingOptions(method=ChunkingMethod.FIXED, max_chunk_size=100, overlap_size=0)
        )

        assert chunks[0].content == "x" * 90 + ". "
        assert chunks[-1].end_index == len(text)

    async def test_overlap_larger_than_window_terminates(self):
        chunker = ChunkingService()
        text = "c" * 25

        chunks = await chunker.chunk(
            text, ChunkingOptions(method=ChunkingMethod.FIXED, max_chunk_size=10, overlap_size=20)
        )

        assert chunks[-1].end_index == len(text)
        starts = [c.start_index for c in chunks]
        assert starts == sorted(set(starts))


class TestSentenceChunking:
    TEXT = "First sentence here. Second one follows. Third sentence ends."

    async def test_packs_sentences_up_to_budget(self):
        chunker = ChunkingService()

        chunks = await chunker.chunk(
            self.TEXT, ChunkingOptions(method=ChunkingMethod.SENTENCE, max_chunk_size=10)
        )

        assert [c.content for c in chunks] == [
            "First sentence here. Second one follows.",
            "Third sentence ends.",
        ]
        assert chunks[0].metadata.sentence_count == 2
        assert chunks[1].start_index == self.TEXT.index("Third")

    async def test_overlap_carries_previous_sentence(self):
        chunker = ChunkingService()

        chunks = await chunker.chunk(
            self.TEXT,
            ChunkingOptions(method=ChunkingMethod.SENTENCE, max_chunk_size=10, overlap_size=50),
        )

        assert [c.content for c in chunks] == [
            "First sentence here. Second one follows.",
            "Second one follows. Third sentence ends.",
        ]

    async def test_sentence_longer_than_budget_is_kept_whole(self):
        chunker = ChunkingService()
        text = "Tiny. " + "A very long sentence " * 10 + "ends here."

        chunks = await chunker.chunk(text, ChunkingOptions(method=ChunkingMethod.SENTENCE, max_chunk_size=5))

        assert len(chunks) == 2
        assert chunks[1].content.startswith("A very long sentence")


class TestParagraphChunking:
    async def test_one_chunk_per_paragraph(self):
        chunker = ChunkingService()
        text = "One para.\n\nTwo para. Still two.\n\n\nThree."

        chunks = await chunker.chunk(text, ChunkingOptions(method=ChunkingMethod.PARAGRAPH))

        assert [c.content for c in chunks] == ["One para.", "Two para. Still two.", "Three."]
        assert [text[c.start_index : c.end_index] for c in chunks] == [c.content for c in chunks]
        assert chunks[1].metadata.sentence_count == 2


class TestSemanticChunking:
    TEXT = "Cats purr loudly. Cats sleep all day. Stocks fell sharply. Stocks rose again."

    async def test_splits_on_topic_change(self):
        embeddings = TopicCountingEmbeddings()
        chunker = ChunkingService(embeddings)

        chunks = await chunker.chunk(
            self.TEXT, ChunkingOptions(method=ChunkingMethod.SEMANTIC, semantic_threshold=0.75)
        )

        assert [c.content for c in chunks] == [
            "Cats purr loudly. Cats sleep all day.",
            "Stocks fell sharply. Stocks rose again.",
        ]
        assert embeddings.batch_calls == 1
        assert embeddings.text_calls == 0
        for chunk in chunks:
            assert chunk.embedding is not None
            assert chunk.metadata.semantic_density == pytest.approx(0.894, abs=1e-3)

    async def test_low_threshold_keeps_one_chunk(self):
        chunker = ChunkingService(TopicCountingEmbeddings())

        chunks = await chunker.chunk(
            self.TEXT, ChunkingOptions(method=ChunkingMethod.SEMANTIC, semantic_threshold=0.0)
        )

        assert len(chunks) == 1
        assert chunks[0].content == self.TEXT

    async def test_requires_embedding_service(self):
        with pytest.raises(ProcessingError):
            await ChunkingService().chunk(self.TEXT, ChunkingOptions(method=ChunkingMethod.SEMANTIC))


class TestEdgeCases:
    @pytest.mark.parametrize("method", list(ChunkingMethod))
    async def test_blank_input_gives_no_chunks(self, method: ChunkingMethod):
        chunker = ChunkingService(TopicCountingEmbeddings())
        assert await chunker.chunk("   \n  ", ChunkingOptions(method=method)) == []


class TestMergeChunks:
    def test_merges_similar_neighbours(self):
        chunks = [
            TextChunk(
                content="Cats purr.",
                start_index=0,
                end_index=10,
                embedding=[1.0, 0.0],
                metadata=ChunkMetadata(sentence_count=1, semantic_density=1.0),
            ),
            TextChunk(
                content="Cats nap.",
                start_index=11,
                end_index=20,
                embedding=[1.0, 0.1],
                metadata=ChunkMetadata(sentence_count=1, semantic_density=0.8),
            ),
            TextChunk(content="Stocks fell.", start_index=21, end_index=33, embedding=[0.0, 1.0]),
        ]

        merged = ChunkingService.merge_chunks(chunks, similarity_threshold=0.8)

        assert [c.content for c in merged] == ["Cats purr. Cats nap.", "Stocks fell."]
        assert merged[0].start_index == 0
        assert merged[0].end_index == 20
        assert merged[0].metadata.sentence_count == 2
        assert merged[0].metadata.semantic_density == pytest.approx(0.9)

    def test_chunks_without_embeddings_are_not_merged(self):
        chunks = [
            TextChunk(content="One.", start_index=0, end_index=4),
            TextChunk(content="Two.", start_index=5, end_index=9),
        ]
        assert len(ChunkingService.merge_chunks(chunks)) == 2

    def test_empty(self):
        assert ChunkingService.merge_chunks([]) == []
