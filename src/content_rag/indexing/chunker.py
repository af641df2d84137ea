"""
Chunking utilities for embedding document content.

Chunk boundaries are token-budgeted with the same four-characters-per-token
estimate the embedding client uses. Every chunk is an exact slice of the
source text, so ``chunk.text == content[chunk.start_char:chunk.end_char]``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..embeddings import CHARS_PER_TOKEN, estimate_tokens

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_END = re.compile(r"[.!?]+\s+")


@dataclass(frozen=True)
class ChunkOptions:
    """Chunking parameters, sizes in estimated tokens."""

    max_chunk_size: int = 1000
    overlap: int = 150
    preserve_paragraphs: bool = True
    preserve_sentences: bool = True

    def __post_init__(self) -> None:
        if self.max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be > 0")
        if self.overlap < 0:
            raise ValueError("overlap must be >= 0")


@dataclass(frozen=True)
class TextChunk:
    """A content chunk with source offsets."""

    text: str
    index: int
    start_char: int
    end_char: int
    estimated_tokens: int


_CATEGORY_OPTIONS: dict[str, ChunkOptions] = {
    # product details need precise retrieval
    "products": ChunkOptions(max_chunk_size=800, overlap=100, preserve_paragraphs=True),
    # brand guidelines need context
    "brand": ChunkOptions(max_chunk_size=1300, overlap=200, preserve_paragraphs=True),
    "audience": ChunkOptions(max_chunk_size=1000, overlap=150, preserve_paragraphs=True),
    "content": ChunkOptions(max_chunk_size=1200, overlap=150, preserve_paragraphs=False),
    "competitors": ChunkOptions(max_chunk_size=1000, overlap=150, preserve_paragraphs=True),
}


def chunking_options_for_category(category: str | None) -> ChunkOptions:
    """Return the recommended chunking options for a document category."""
    if category is None:
        return ChunkOptions()
    return _CATEGORY_OPTIONS.get(category, ChunkOptions())


def _token_len(length: int) -> int:
    return -(-length // CHARS_PER_TOKEN)


class DocumentChunker:
    """
    Paragraph- or sentence-aware chunker with trailing-context overlap.

    Oversized paragraphs or sentences are hard-split into character windows
    that prefer to end on a period, then on a space.
    """

    def __init__(self, options: ChunkOptions | None = None) -> None:
        self.options = options or ChunkOptions()

    def chunk_text(self, text: str) -> list[TextChunk]:
        """Split *text* into chunks. Blank text yields no chunks."""
        if not text or not text.strip():
            return []

        total = len(text)
        estimated = estimate_tokens(text)
        if estimated <= self.options.max_chunk_size:
            return [
                TextChunk(
                    text=text,
                    index=0,
                    start_char=0,
                    end_char=total,
                    estimated_tokens=estimated,
                )
            ]

        if self.options.preserve_paragraphs:
            bounds = self._pack(text, self._segments(text, _PARAGRAPH_BREAK))
        elif self.options.preserve_sentences:
            bounds = self._pack(text, self._segments(text, _SENTENCE_END))
        else:
            bounds = self._hard_split(text, 0, total)

        return self._add_overlap(text, self._fold_blank(text, bounds))

    @staticmethod
    def _segments(text: str, boundary: re.Pattern[str]) -> list[tuple[int, int]]:
        # Each segment keeps its trailing separator so segments tile the text.
        spans: list[tuple[int, int]] = []
        start = 0
        for match in boundary.finditer(text):
            spans.append((start, match.end()))
            start = match.end()
        if start < len(text):
            spans.append((start, len(text)))
        return spans

    def _pack(self, text: str, spans: list[tuple[int, int]]) -> list[tuple[int, int]]:
        budget = self.options.max_chunk_size
        bounds: list[tuple[int, int]] = []
        current: tuple[int, int] | None = None

        for start, end in spans:
            candidate_start = current[0] if current is not None else start
            if _token_len(end - candidate_start) <= budget:
                current = (candidate_start, end)
                continue

            if current is not None:
                bounds.append(current)
                current = None

            if _token_len(end - start) > budget:
                bounds.extend(self._hard_split(text, start, end))
            else:
                current = (start, end)

        if current is not None:
            bounds.append(current)
        return bounds

    def _hard_split(self, text: str, start: int, end: int) -> list[tuple[int, int]]:
        # 90% of the character budget
        window = max(1, self.options.max_chunk_size * CHARS_PER_TOKEN * 9 // 10)
        bounds: list[tuple[int, int]] = []
        position = start

        while position < end:
            stop = min(position + window, end)
            if stop < end:
                half_mark = position + window * 0.5
                last_period = text.rfind(".", position, stop)
                if last_period > half_mark:
                    stop = last_period + 1
                else:
                    last_space = text.rfind(" ", position, stop)
                    if last_space > half_mark:
                        stop = last_space + 1
            bounds.append((position, stop))
            position = stop

        return bounds

    def _fold_blank(self, text: str, bounds: list[tuple[int, int]]) -> list[tuple[int, int]]:
        """
        Fold runs of whitespace-only slices into the neighbouring chunks.

        A run fills the previous chunk up to the budget and hands the rest to
        the next chunk. A run too long for both stays as its own slices, each
        already within budget.
        """
        limit = self.options.max_chunk_size * CHARS_PER_TOKEN
        folded: list[tuple[int, int]] = []
        run: list[tuple[int, int]] = []

        for bound in [*bounds, None]:
            if bound is not None and not text[bound[0] : bound[1]].strip():
                run.append(bound)
                continue

            if run:
                run_start, run_end = run[0][0], run[-1][1]
                room_before = limit - (folded[-1][1] - folded[-1][0]) if folded else 0
                room_after = limit - (bound[1] - bound[0]) if bound is not None else 0
                if run_end - run_start <= room_before + room_after:
                    split = run_start + min(room_before, run_end - run_start)
                    if folded:
                        folded[-1] = (folded[-1][0], split)
                    if bound is not None:
                        bound = (split, bound[1])
                else:
                    folded.extend(run)
                run = []

            if bound is not None:
                folded.append(bound)

        return folded

    def _add_overlap(self, text: str, bounds: list[tuple[int, int]]) -> list[TextChunk]:
        texts = [text[start:end] for start, end in bounds]
        starts = [start for start, _ in bounds]
        overlap_chars = self.options.overlap * CHARS_PER_TOKEN

        if len(bounds) > 1 and overlap_chars > 0:
            for i in range(1, len(bounds)):
                # Trailing context of the previous chunk's final text.
                overlap_text = texts[i - 1][-overlap_chars:]
                texts[i] = overlap_text + texts[i]
                starts[i] -= len(overlap_text)

        return [
            TextChunk(
                text=chunk_text,
                index=index,
                start_char=starts[index],
                end_char=bounds[index][1],
                estimated_tokens=estimate_tokens(chunk_text),
            )
            for index, chunk_text in enumerate(texts)
        ]


def split_document_into_chunks(
    content: str,
    options: ChunkOptions | None = None,
) -> list[TextChunk]:
    """Split a document into chunks ready for embedding."""
    return DocumentChunker(options).chunk_text(content)


def reconstruct_from_chunks(chunks: list[TextChunk], overlap: int = 0) -> str:
    """
    Rebuild the source text from chunks produced with *overlap* tokens.

    The leading overlap is stripped from every chunk after the first. When
    a previous chunk was shorter than the overlap window, only the text
    actually prepended (known from the offsets) is stripped.
    """
    if not chunks:
        return ""

    ordered = sorted(chunks, key=lambda chunk: chunk.index)
    if overlap <= 0:
        return "".join(chunk.text for chunk in ordered)

    overlap_chars = overlap * CHARS_PER_TOKEN
    parts = [ordered[0].text]
    for previous, chunk in zip(ordered, ordered[1:]):
        prepended = max(0, previous.end_char - chunk.start_char)
        parts.append(chunk.text[min(overlap_chars, prepended) :])
    return "".join(parts)
