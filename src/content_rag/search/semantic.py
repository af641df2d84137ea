"""
Vector-based semantic search engine.

Embeds a query and scores it against every stored chunk embedding of the
user's documents with cosine similarity. This is a brute-force linear
scan; swapping in an approximate index would change ranking and tie order.
"""

from __future__ import annotations

import logging

from .ranker import SearchResult, blend_hybrid_scores, rank_results
from .similarity import cosine_similarity
from ..embeddings import EmbeddingClient
from ..models import HybridSearchOptions, SearchOptions
from ..storage import StorageBackend

logger = logging.getLogger(__name__)


class SemanticSearchEngine:
    """Embed a query and search stored chunk embeddings."""

    def __init__(
        self,
        storage: StorageBackend,
        embedding_client: EmbeddingClient,
    ) -> None:
        self.storage = storage
        self.embedding_client = embedding_client

    async def search(
        self,
        *,
        user_id: str,
        query: str,
        options: SearchOptions | None = None,
    ) -> list[SearchResult]:
        """Return chunks scoring at least ``options.threshold``, best first."""
        opts = options or SearchOptions()
        query_embedding = await self.embedding_client.generate_embedding(query)

        candidates = self.storage.fetch_candidate_chunks(
            user_id=user_id,
            categories=list(opts.categories),
        )

        scored: list[SearchResult] = []
        for row in candidates:
            score = cosine_similarity(query_embedding, row["embedding"])
            if score < opts.threshold:
                continue
            scored.append(
                SearchResult(
                    document_id=int(row["document_id"]),
                    document_title=str(row["document_title"]),
                    chunk_index=int(row["chunk_index"]),
                    text=str(row["chunk_text"]) if opts.include_text else "",
                    score=score,
                    category=str(row["category"]),
                    start_position=row["start_pos"],
                    end_position=row["end_pos"],
                )
            )

        logger.debug(
            "Semantic search for user %s: %d candidates, %d above %.2f",
            user_id,
            len(candidates),
            len(scored),
            opts.threshold,
        )
        return rank_results(scored, limit=opts.limit)

    async def hybrid_search(
        self,
        *,
        user_id: str,
        query: str,
        options: HybridSearchOptions | None = None,
    ) -> list[SearchResult]:
        """Semantic search re-ranked by a blend with query keyword overlap.

        The semantic result set is reordered, never re-filtered or re-limited.
        """
        opts = options or HybridSearchOptions()
        semantic_results = await self.search(
            user_id=user_id,
            query=query,
            options=opts.semantic_options(),
        )
        return blend_hybrid_scores(
            semantic_results,
            query,
            semantic_weight=opts.semantic_weight,
            keyword_weight=opts.keyword_weight,
        )
