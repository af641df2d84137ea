"""Storage backends for documents and chunk embeddings."""

from .base import ApiKeyRecord, ChunkEmbeddingRecord, DocumentRecord, StorageBackend
from .duckdb import DuckDBStorage

__all__ = [
    "ApiKeyRecord",
    "ChunkEmbeddingRecord",
    "DocumentRecord",
    "StorageBackend",
    "DuckDBStorage",
]
