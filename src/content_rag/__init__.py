"""
content_rag - retrieval-augmented generation core for reference documents.

This package chunks user documents, embeds the chunks through a
Voyage-compatible embedding API, stores them in DuckDB, and serves cosine
and hybrid search plus token-budgeted context for LLM prompts.

Example usage:
    >>> from content_rag import DuckDBStorage, EmbeddingClient, SemanticSearchEngine
    >>> storage = DuckDBStorage("rag.duckdb")
    >>> engine = SemanticSearchEngine(storage, EmbeddingClient())
    >>> results = await engine.search(user_id="user_1", query="brand voice")
"""

from .credentials import (
    Credential,
    CredentialProvider,
    CredentialResolver,
    EnvCredentialProvider,
    StoreCredentialProvider,
    default_resolver,
)
from .embeddings import (
    DEFAULT_MODEL,
    EmbeddingClient,
    estimate_embedding_cost,
    estimate_tokens,
    fit_to_context,
    truncate_to_tokens,
)
from .errors import (
    CredentialError,
    DimensionMismatchError,
    InvalidInputError,
    NotFoundError,
    ProviderError,
    RagError,
)
from .indexing import (
    ChunkOptions,
    EmbeddingPipeline,
    ReembedResult,
    TextChunk,
    reconstruct_from_chunks,
    split_document_into_chunks,
)
from .models import (
    DOCUMENT_CATEGORIES,
    HybridSearchOptions,
    RagContextOptions,
    SearchOptions,
)
from .search import (
    AssembledContext,
    RagContext,
    RagContextAssembler,
    SearchResult,
    SemanticSearchEngine,
    cosine_similarity,
)
from .storage import DuckDBStorage

__all__ = [
    # Credentials
    "Credential",
    "CredentialProvider",
    "CredentialResolver",
    "EnvCredentialProvider",
    "StoreCredentialProvider",
    "default_resolver",
    # Embeddings
    "DEFAULT_MODEL",
    "EmbeddingClient",
    "estimate_embedding_cost",
    "estimate_tokens",
    "fit_to_context",
    "truncate_to_tokens",
    # Errors
    "CredentialError",
    "DimensionMismatchError",
    "InvalidInputError",
    "NotFoundError",
    "ProviderError",
    "RagError",
    # Indexing
    "ChunkOptions",
    "EmbeddingPipeline",
    "ReembedResult",
    "TextChunk",
    "reconstruct_from_chunks",
    "split_document_into_chunks",
    # Search
    "DOCUMENT_CATEGORIES",
    "HybridSearchOptions",
    "SearchOptions",
    "RagContextOptions",
    "AssembledContext",
    "RagContext",
    "RagContextAssembler",
    "SearchResult",
    "SemanticSearchEngine",
    "cosine_similarity",
    # Storage
    "DuckDBStorage",
]
