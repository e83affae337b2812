"""Sentence-based text chunking with word-overlap windows.

Splits extracted text into :class:`~tenantrag.models.rag.Chunk` objects
bounded by character count, for embedding one chunk per request.

The algorithm is deliberately simple and deterministic:

1. **Sentence split** -- break on runs of ``.``, ``!`` and ``?``; strip
   each piece and drop empty ones.
2. **Greedy accumulation** -- append sentences (joined by ``". "``) while
   ``len(buffer) + len(sentence) + 1 <= chunk_size``.  When the next
   sentence does not fit, the buffer is closed with a trailing ``"."``.
3. **Overlap** -- the next buffer starts with the last
   ``overlap // 6`` words of the closed buffer (six characters per word
   is a rough average), then ``". "``, then the sentence that did not
   fit.

A single sentence longer than ``chunk_size`` becomes its own chunk; it is
never split mid-sentence.

Q&A pairs get their own rule: short pairs stay whole as one
``qa_chunk_0``, longer ones are chunked with a smaller window and every
chunk carries the question and answer as metadata.
"""

from __future__ import annotations

import re
from typing import Any

import structlog

from tenantrag.models.rag import Chunk

logger = structlog.get_logger(logger_name=__name__)

_SENTENCE_SPLIT = re.compile(r"[.!?]+")

# Rough average characters per word, used to turn an overlap budget in
# characters into a word count.
_CHARS_PER_WORD = 6

QA_SINGLE_CHUNK_LIMIT = 1000
QA_CHUNK_SIZE = 800
QA_CHUNK_OVERLAP = 100


class TextChunker:
    """Splits text into overlapping sentence-aligned chunks.

    Parameters
    ----------
    chunk_size:
        Maximum characters per chunk before the trailing period (default
        1000).  An oversized single sentence is the only exception.
    overlap:
        Overlap budget in characters (default 200), converted to
        ``overlap // 6`` trailing words.
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0:
            raise ValueError(f"overlap must be non-negative, got {overlap}")
        self._chunk_size = chunk_size
        self._overlap = overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(
        self,
        text: str,
        chunk_size: int | None = None,
        overlap: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> list[Chunk]:
        """Split *text* into ordered chunks ``chunk_0 .. chunk_{n-1}``.

        Parameters
        ----------
        text:
            The full text to chunk.
        chunk_size, overlap:
            Per-call overrides of the constructor defaults.
        metadata:
            Extra metadata copied into every chunk.

        Returns
        -------
        list[Chunk]
            Empty input (or input with no sentence content) returns ``[]``.
        """
        size = self._chunk_size if chunk_size is None else chunk_size
        overlap_chars = self._overlap if overlap is None else overlap
        extra = dict(metadata or {})

        pieces = self._split_into_chunks(text or "", size, overlap_chars)
        chunks = [
            Chunk(chunk_id=f"chunk_{i}", index=i, text=piece, metadata=extra)
            for i, piece in enumerate(pieces)
        ]

        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            chunk_size=size,
            overlap=overlap_chars,
            input_chars=len(text or ""),
        )
        return chunks

    def chunk_qa(self, content: str, question: str, answer: str) -> list[Chunk]:
        """Chunk a Q&A document, tagging every chunk with the pair.

        Content of at most 1000 characters becomes a single ``qa_chunk_0``;
        longer content is chunked with size 800 and overlap 100.
        """
        metadata = {"type": "qa_pair", "question": question, "answer": answer}
        if len(content) <= QA_SINGLE_CHUNK_LIMIT:
            return [Chunk(chunk_id="qa_chunk_0", index=0, text=content, metadata=metadata)]
        return self.chunk(
            content,
            chunk_size=QA_CHUNK_SIZE,
            overlap=QA_CHUNK_OVERLAP,
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _split_sentences(text: str) -> list[str]:
        return [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]

    def _split_into_chunks(self, text: str, size: int, overlap_chars: int) -> list[str]:
        overlap_words = overlap_chars // _CHARS_PER_WORD
        pieces: list[str] = []
        buffer = ""

        for sentence in self._split_sentences(text):
            if len(buffer) + len(sentence) + 1 <= size:
                buffer = f"{buffer}. {sentence}" if buffer else sentence
                continue

            if buffer:
                pieces.append(buffer + ".")
            if overlap_words > 0 and buffer:
                tail = buffer.split()[-overlap_words:]
                buffer = " ".join(tail) + ". " + sentence
            else:
                buffer = sentence

        if buffer:
            pieces.append(buffer + ".")
        return pieces
