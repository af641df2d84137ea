"""
Relevance filters applied to search results before context assembly.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Mapping, Sequence

from .ranker import SearchResult, rank_results

DEFAULT_MIN_SCORE = 0.6
DEFAULT_MAX_CHUNKS_PER_DOCUMENT = 3
DEFAULT_MIN_CHUNK_LENGTH = 50
DEFAULT_DEDUPLICATION_THRESHOLD = 0.95


def _word_set(text: str) -> set[str]:
    return {word for word in text.lower().split() if len(word) > 2}


def calculate_text_similarity(text1: str, text2: str) -> float:
    """Jaccard similarity of the distinct words longer than two characters."""
    words1 = _word_set(text1)
    words2 = _word_set(text2)
    if not words1 and not words2:
        return 1.0
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / len(words1 | words2)


def deduplicate_chunks(
    chunks: list[SearchResult],
    threshold: float = DEFAULT_DEDUPLICATION_THRESHOLD,
) -> list[SearchResult]:
    """Drop chunks whose text is at least *threshold* similar to an earlier kept chunk."""
    if len(chunks) <= 1:
        return list(chunks)

    unique: list[SearchResult] = []
    for chunk in chunks:
        if any(calculate_text_similarity(chunk.text, kept.text) >= threshold for kept in unique):
            continue
        unique.append(chunk)
    return unique


def limit_chunks_per_document(
    chunks: list[SearchResult],
    max_per_document: int,
) -> list[SearchResult]:
    """
    Keep at most *max_per_document* chunks of each document.

    Chunks of one document are grouped together, and documents keep the
    order of their first appearance.
    """
    grouped: dict[int, list[SearchResult]] = {}
    for chunk in chunks:
        kept = grouped.setdefault(chunk.document_id, [])
        if len(kept) < max_per_document:
            kept.append(chunk)

    result: list[SearchResult] = []
    for kept in grouped.values():
        result.extend(kept)
    return result


def filter_by_relevance(
    chunks: list[SearchResult],
    *,
    min_score: float = DEFAULT_MIN_SCORE,
    max_chunks_per_document: int = DEFAULT_MAX_CHUNKS_PER_DOCUMENT,
    min_chunk_length: int = DEFAULT_MIN_CHUNK_LENGTH,
    deduplicate: bool = True,
    deduplication_threshold: float = DEFAULT_DEDUPLICATION_THRESHOLD,
    categories: Sequence[str] | None = None,
    category_boosts: Mapping[str, float] | None = None,
) -> list[SearchResult]:
    """Apply score, length and category filters, optional boosts, per-document caps and dedup."""
    filtered = list(chunks)

    if min_score > 0:
        filtered = [chunk for chunk in filtered if chunk.score >= min_score]
    if min_chunk_length > 0:
        filtered = [chunk for chunk in filtered if len(chunk.text) >= min_chunk_length]
    if categories:
        allowed = set(categories)
        filtered = [chunk for chunk in filtered if chunk.category in allowed]

    if category_boosts:
        filtered = rank_results(
            [
                replace(
                    chunk,
                    score=min(1.0, chunk.score * category_boosts.get(chunk.category, 1.0)),
                )
                for chunk in filtered
            ]
        )

    if max_chunks_per_document > 0:
        filtered = limit_chunks_per_document(filtered, max_chunks_per_document)
    if deduplicate:
        filtered = deduplicate_chunks(filtered, deduplication_threshold)
    return filtered


def diversify_chunks(chunks: list[SearchResult], min_documents: int) -> list[SearchResult]:
    """
    Take leading chunks until *min_documents* distinct documents are covered
    and at least twice that many chunks are taken.
    """
    result: list[SearchResult] = []
    seen: set[int] = set()
    for chunk in chunks:
        seen.add(chunk.document_id)
        result.append(chunk)
        if len(seen) >= min_documents and len(result) >= min_documents * 2:
            break
    return result
