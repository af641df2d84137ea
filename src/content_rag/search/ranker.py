"""
Ranking helpers for semantic and hybrid result sets.
"""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class SearchResult:
    """One scored chunk returned by semantic or hybrid search."""

    document_id: int
    document_title: str
    chunk_index: int
    text: str
    score: float
    category: str
    start_position: int | None = None
    end_position: int | None = None


def rank_results(
    results: list[SearchResult], *, limit: int | None = None
) -> list[SearchResult]:
    """Sort by score descending (stable for ties) and apply limit."""
    ordered = sorted(results, key=lambda result: -result.score)
    if limit is None:
        return ordered
    return ordered[: max(limit, 0)]


def query_words(query: str) -> set[str]:
    """Distinct lowercase whitespace-separated words longer than two characters."""
    return {word for word in query.lower().split() if len(word) > 2}


def keyword_score(words: set[str], text: str) -> float:
    """Fraction of *words* that occur as substrings of *text*."""
    if not words:
        return 0.0
    text_lower = text.lower()
    matches = sum(1 for word in words if word in text_lower)
    return matches / len(words)


def blend_hybrid_scores(
    results: list[SearchResult],
    query: str,
    *,
    semantic_weight: float,
    keyword_weight: float,
) -> list[SearchResult]:
    """
    Re-score semantic results with keyword overlap and re-sort.

    Semantic scores are normalised by the best score in the set. The set
    itself is not filtered or truncated.
    """
    max_score = max((result.score for result in results), default=1.0)
    if max_score <= 0:
        max_score = 1.0

    words = query_words(query)
    blended = [
        replace(
            result,
            score=(result.score / max_score) * semantic_weight
            + keyword_score(words, result.text) * keyword_weight,
        )
        for result in results
    ]
    return rank_results(blended)
