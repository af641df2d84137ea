"""Search helpers for embedded documents."""

from .context import (
    AssembledContext,
    DocumentSource,
    RagContext,
    RagContextAssembler,
    RagSource,
    build_rag_prompt,
    count_chunks_that_fit,
    estimate_context_overhead,
    select_chunks_within_budget,
    truncate_context_to_fit,
)
from .filters import (
    calculate_text_similarity,
    deduplicate_chunks,
    diversify_chunks,
    filter_by_relevance,
    limit_chunks_per_document,
)
from .ranker import (
    SearchResult,
    blend_hybrid_scores,
    keyword_score,
    query_words,
    rank_results,
)
from .semantic import SemanticSearchEngine
from .similarity import cosine_similarity

__all__ = [
    "AssembledContext",
    "DocumentSource",
    "RagContext",
    "RagContextAssembler",
    "RagSource",
    "build_rag_prompt",
    "count_chunks_that_fit",
    "estimate_context_overhead",
    "select_chunks_within_budget",
    "truncate_context_to_fit",
    "calculate_text_similarity",
    "deduplicate_chunks",
    "diversify_chunks",
    "filter_by_relevance",
    "limit_chunks_per_document",
    "SearchResult",
    "blend_hybrid_scores",
    "keyword_score",
    "query_words",
    "rank_results",
    "SemanticSearchEngine",
    "cosine_similarity",
]
