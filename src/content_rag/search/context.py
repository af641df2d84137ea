"""
RAG context assembly from semantic search results.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .filters import diversify_chunks, filter_by_relevance
from .ranker import SearchResult
from .semantic import SemanticSearchEngine
from ..embeddings import CHARS_PER_TOKEN, estimate_tokens
from ..models import (
    Category,
    DOCUMENT_CATEGORIES,
    HybridSearchOptions,
    RagContextOptions,
    SearchOptions,
)

RAG_THRESHOLD = 0.6
RAG_CANDIDATE_LIMIT = 20
CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class RagSource:
    """Attribution for one chunk included in the context."""

    id: int
    title: str
    score: float


@dataclass(frozen=True)
class RagContext:
    """Assembled prompt context and the chunks it came from."""

    context: str
    sources: list[RagSource] = field(default_factory=list)
    total_tokens: int = 0


def count_chunks_that_fit(texts: list[str], max_tokens: int) -> int:
    """Number of leading *texts* whose estimated tokens fit in *max_tokens*."""
    total = 0
    count = 0
    for text in texts:
        tokens = estimate_tokens(text)
        if total + tokens > max_tokens:
            break
        total += tokens
        count += 1
    return count


@dataclass(frozen=True)
class DocumentSource:
    """A document cited by assembled context, with its best chunk score."""

    id: int
    title: str
    category: str
    score: float
    chunk_count: int


@dataclass(frozen=True)
class AssembledContext:
    """Filtered context plus per-document sources and budget accounting."""

    context: str
    sources: list[DocumentSource] = field(default_factory=list)
    tokens_used: int = 0
    chunks_included: int = 0
    truncated: bool = False


def select_chunks_within_budget(
    chunks: list[SearchResult], max_tokens: int
) -> list[SearchResult]:
    """Leading *chunks* whose estimated tokens fit in *max_tokens*."""
    return chunks[: count_chunks_that_fit([chunk.text for chunk in chunks], max_tokens)]


def estimate_context_overhead(chunk_count: int, include_sources: bool) -> int:
    """Tokens taken by separators (8 each), chunk headers (10 each) and a sources section (50)."""
    overhead = (chunk_count - 1) * 8 + chunk_count * 10
    if include_sources:
        overhead += 50
    return overhead


def truncate_context_to_fit(context: str, max_tokens: int) -> str:
    """
    Shorten *context* to roughly *max_tokens*.

    Cuts at the last chunk separator when one lies in the final fifth of the
    kept text, otherwise at the proportional character position.
    """
    current_tokens = estimate_tokens(context)
    if current_tokens <= max_tokens:
        return context

    target_length = int((max_tokens / current_tokens) * len(context))
    marker = CONTEXT_SEPARATOR.rstrip("\n")
    boundary = context.rfind(marker, 0, target_length + len(marker))
    if boundary > target_length * 0.8:
        return context[:boundary].strip()
    return context[:target_length].strip()


def _format_block(result: SearchResult) -> str:
    return f"[{result.document_title} ({result.category})]\n{result.text}"


def _group_sources(chunks: list[SearchResult]) -> list[DocumentSource]:
    grouped: dict[int, DocumentSource] = {}
    for chunk in chunks:
        existing = grouped.get(chunk.document_id)
        if existing is None:
            grouped[chunk.document_id] = DocumentSource(
                id=chunk.document_id,
                title=chunk.document_title,
                category=chunk.category,
                score=chunk.score,
                chunk_count=1,
            )
        else:
            grouped[chunk.document_id] = DocumentSource(
                id=existing.id,
                title=existing.title,
                category=existing.category,
                score=max(existing.score, chunk.score),
                chunk_count=existing.chunk_count + 1,
            )
    return sorted(grouped.values(), key=lambda source: -source.score)


def build_rag_prompt(context: str, query: str, sources: list[DocumentSource] | None = None) -> str:
    """Wrap assembled context and the user's query in a citation prompt."""
    parts = ["Use the following context from the user's documents to answer their query."]
    if sources:
        parts.append(
            "Cite your sources using the document titles provided. "
            f"The following {len(sources)} document(s) were used:"
        )
        parts.extend(f"  - {source.title} ({source.category})" for source in sources)
    parts.extend(
        [
            "",
            "**Context**",
            "---",
            context or "(No relevant context found)",
            "---",
            "",
            "**Query**",
            query,
        ]
    )
    return "\n".join(parts)


class RagContextAssembler:
    """Pack the best-matching chunks into a token budget."""

    def __init__(self, search_engine: SemanticSearchEngine) -> None:
        self.search_engine = search_engine

    async def get_rag_context(
        self,
        *,
        user_id: str,
        query: str,
        categories: list[Category] | None = None,
        max_tokens: int = 4000,
    ) -> RagContext:
        results = await self.search_engine.search(
            user_id=user_id,
            query=query,
            options=SearchOptions(
                categories=list(categories) if categories is not None else list(DOCUMENT_CATEGORIES),
                threshold=RAG_THRESHOLD,
                limit=RAG_CANDIDATE_LIMIT,
                include_text=True,
            ),
        )

        sources: list[RagSource] = []
        parts: list[str] = []
        current_tokens = 0
        for result in results:
            chunk_tokens = len(result.text) // CHARS_PER_TOKEN
            # Stop at the first chunk that overflows; later, smaller ones are not tried.
            if current_tokens + chunk_tokens > max_tokens:
                break
            sources.append(
                RagSource(
                    id=result.document_id,
                    title=result.document_title,
                    score=result.score,
                )
            )
            parts.append(_format_block(result))
            current_tokens += chunk_tokens

        return RagContext(
            context=CONTEXT_SEPARATOR.join(parts),
            sources=sources,
            total_tokens=current_tokens,
        )

    async def assemble_rag_context(
        self,
        *,
        user_id: str,
        query: str,
        options: RagContextOptions | None = None,
    ) -> AssembledContext:
        """
        Search, filter, diversify and budget chunks into cited context.

        Twice ``max_chunks`` candidates are fetched; at most three chunks per
        document survive, near-duplicate texts are dropped, and the token
        budget is reduced by the estimated formatting overhead.
        """
        opts = options or RagContextOptions()
        categories = opts.search_categories()
        if opts.hybrid:
            results = await self.search_engine.hybrid_search(
                user_id=user_id,
                query=query,
                options=HybridSearchOptions(
                    categories=categories,
                    threshold=opts.threshold,
                    limit=opts.max_chunks * 2,
                    semantic_weight=opts.semantic_weight,
                    keyword_weight=opts.keyword_weight,
                ),
            )
        else:
            results = await self.search_engine.search(
                user_id=user_id,
                query=query,
                options=SearchOptions(
                    categories=categories,
                    threshold=opts.threshold,
                    limit=opts.max_chunks * 2,
                ),
            )
        if not results:
            return AssembledContext(context="")

        filtered = filter_by_relevance(
            results,
            min_score=opts.threshold,
            categories=opts.categories,
        )
        diversified = diversify_chunks(filtered, min(3, len(filtered)))

        overhead = estimate_context_overhead(
            min(opts.max_chunks, len(diversified)), opts.include_sources
        )
        selected = select_chunks_within_budget(diversified, opts.max_tokens - overhead)

        context = CONTEXT_SEPARATOR.join(_format_block(chunk) for chunk in selected)
        return AssembledContext(
            context=context,
            sources=_group_sources(selected) if opts.include_sources else [],
            tokens_used=estimate_tokens(context),
            chunks_included=len(selected),
            truncated=len(selected) < len(diversified),
        )
