"""Unit tests for the TextChunker: sentence splitting, greedy packing, word overlap."""

from __future__ import annotations

import pytest

from tenantrag.services.ingestion.chunker import (
    QA_CHUNK_SIZE,
    QA_SINGLE_CHUNK_LIMIT,
    TextChunker,
)

# Nine words, 43 characters.
_SENTENCE = "word word word word word word word word end"


def _text(sentences: int) -> str:
    return ". ".join([_SENTENCE] * sentences) + "."


class TestChunkSizes:
    def test_2500_chars_produce_three_chunks(self) -> None:
        text = _text(56)
        assert 2400 < len(text) < 2600

        chunks = TextChunker(chunk_size=1000, overlap=200).chunk(text)

        assert len(chunks) == 3
        assert [c.chunk_id for c in chunks] == ["chunk_0", "chunk_1", "chunk_2"]
        assert [c.index for c in chunks] == [0, 1, 2]

    def test_chunks_stay_within_size_plus_terminal_period(self) -> None:
        chunks = TextChunker(chunk_size=1000, overlap=200).chunk(_text(56))
        for chunk in chunks:
            assert len(chunk.text) <= 1001
            assert chunk.text.endswith(".")

    def test_first_chunk_packs_greedily(self) -> None:
        chunks = TextChunker(chunk_size=1000, overlap=200).chunk(_text(56))
        # 22 sentences joined by ". " plus the closing period.
        assert len(chunks[0].text) == 22 * 43 + 21 * 2 + 1

    def test_short_text_is_single_chunk(self) -> None:
        chunks = TextChunker().chunk("Hello there. How are you today?")
        assert len(chunks) == 1
        assert chunks[0].text == "Hello there. How are you today."

    def test_larger_size_gives_fewer_chunks(self) -> None:
        text = _text(80)
        small = TextChunker(chunk_size=300, overlap=60).chunk(text)
        large = TextChunker(chunk_size=1500, overlap=60).chunk(text)
        assert len(small) > len(large)


class TestOverlap:
    def test_next_chunk_starts_with_tail_words(self) -> None:
        chunks = TextChunker(chunk_size=1000, overlap=200).chunk(_text(56))
        previous_buffer = chunks[0].text[:-1]
        tail = " ".join(previous_buffer.split()[-(200 // 6):])
        assert chunks[1].text.startswith(tail + ". ")

    def test_zero_overlap_starts_with_fresh_sentence(self) -> None:
        chunks = TextChunker(chunk_size=100, overlap=0).chunk(_text(10))
        assert len(chunks) > 1
        for chunk in chunks:
            assert chunk.text.startswith(_SENTENCE)

    def test_overlap_below_one_word_behaves_like_zero(self) -> None:
        with_small = TextChunker(chunk_size=100, overlap=5).chunk(_text(10))
        with_zero = TextChunker(chunk_size=100, overlap=0).chunk(_text(10))
        assert [c.text for c in with_small] == [c.text for c in with_zero]

    @pytest.mark.parametrize("chunk_size, overlap", [(300, 60), (200, 30), (500, 120)])
    def test_stripping_overlap_restores_sentence_sequence(
        self, chunk_size: int, overlap: int
    ) -> None:
        sentences = [f"Sentence {i:02d} covers topic {i:02d} in detail" for i in range(40)]
        text = ". ".join(sentences) + "."
        chunks = TextChunker(chunk_size=chunk_size, overlap=overlap).chunk(text)
        assert len(chunks) > 2

        rebuilt = TextChunker._split_sentences(chunks[0].text)
        for previous, current in zip(chunks, chunks[1:]):
            tail = previous.text[:-1].split()[-(overlap // 6):]
            prefix = " ".join(tail) + ". "
            assert current.text.startswith(prefix)
            rebuilt.extend(TextChunker._split_sentences(current.text[len(prefix):]))

        assert rebuilt == sentences


class TestEdgeCases:
    def test_empty_text_returns_no_chunks(self) -> None:
        assert TextChunker().chunk("") == []

    def test_punctuation_only_returns_no_chunks(self) -> None:
        assert TextChunker().chunk("... !!! ???") == []

    def test_oversized_sentence_is_kept_whole(self) -> None:
        long_sentence = "x" * 1500
        chunks = TextChunker(chunk_size=1000, overlap=200).chunk(f"{long_sentence}. Short one.")
        assert chunks[0].text == long_sentence + "."
        assert len(chunks) == 2

    def test_per_call_overrides(self) -> None:
        chunker = TextChunker(chunk_size=1000, overlap=200)
        chunks = chunker.chunk(_text(10), chunk_size=100, overlap=0)
        assert len(chunks) > 1

    def test_metadata_copied_to_every_chunk(self) -> None:
        chunks = TextChunker(chunk_size=100, overlap=0).chunk(
            _text(10), metadata={"source": "faq"}
        )
        assert all(c.metadata == {"source": "faq"} for c in chunks)

    @pytest.mark.parametrize("chunk_size, overlap", [(0, 10), (100, -1)])
    def test_invalid_configuration_rejected(self, chunk_size: int, overlap: int) -> None:
        with pytest.raises(ValueError):
            TextChunker(chunk_size=chunk_size, overlap=overlap)


class TestQAChunking:
    def test_short_pair_is_single_qa_chunk(self) -> None:
        content = "Question: What are your hours?\n\nAnswer: 9 to 5, Monday to Friday."
        chunks = TextChunker().chunk_qa(content, "What are your hours?", "9 to 5")

        assert len(chunks) == 1
        assert chunks[0].chunk_id == "qa_chunk_0"
        assert chunks[0].text == content
        assert chunks[0].metadata == {
            "type": "qa_pair",
            "question": "What are your hours?",
            "answer": "9 to 5",
        }

    def test_exactly_limit_stays_single(self) -> None:
        content = "a" * QA_SINGLE_CHUNK_LIMIT
        chunks = TextChunker().chunk_qa(content, "q", "a")
        assert len(chunks) == 1

    def test_long_pair_is_chunked_with_qa_metadata(self) -> None:
        answer = _text(40)
        content = f"Question: Tell me everything\n\nAnswer: {answer}"
        chunks = TextChunker().chunk_qa(content, "Tell me everything", answer)

        assert len(chunks) > 1
        assert chunks[0].chunk_id == "chunk_0"
        for chunk in chunks:
            assert len(chunk.text) <= QA_CHUNK_SIZE + 1
            assert chunk.metadata["type"] == "qa_pair"
            assert chunk.metadata["question"] == "Tell me everything"
