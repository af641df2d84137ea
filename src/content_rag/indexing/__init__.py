"""Chunking and embedding components for content_rag."""

from .chunker import (
    ChunkOptions,
    DocumentChunker,
    TextChunk,
    chunking_options_for_category,
    reconstruct_from_chunks,
    split_document_into_chunks,
)
from .pipeline import EmbeddingPipeline, EmbedResult, ReembedResult

__all__ = [
    "ChunkOptions",
    "DocumentChunker",
    "TextChunk",
    "chunking_options_for_category",
    "reconstruct_from_chunks",
    "split_document_into_chunks",
    "EmbeddingPipeline",
    "EmbedResult",
    "ReembedResult",
]
