"""
Storage interfaces and data models for documents and chunk embeddings.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from ..models import Category, EmbeddingStatus


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class DocumentRecord:
    """A user-owned reference document."""

    id: int
    user_id: str
    title: str
    category: Category
    content: str
    embedded: bool = False
    embedding_status: EmbeddingStatus = "not_started"
    embedding_progress: int = 0
    chunks_count: int = 0
    embedding_model: str | None = None
    last_embedded_at: datetime | None = None
    created_at: datetime | None = None
    deleted_at: datetime | None = None


@dataclass(frozen=True)
class ChunkEmbeddingRecord:
    """One stored vector for one slice of a document."""

    document_id: int
    embedding: list[float]
    model: str
    chunk_index: int
    chunk_text: str
    start_pos: int
    end_pos: int


@dataclass(frozen=True)
class ApiKeyRecord:
    """An encrypted provider API key."""

    provider: str
    encrypted_key: str
    nonce: str
    is_valid: bool = True


class StorageBackend(Protocol):
    """Protocol for persistence operations used by search and embedding workflows."""

    def initialize(self) -> None:
        """Initialize required tables/sequences."""

    def create_document(
        self,
        *,
        user_id: str,
        title: str,
        content: str,
        category: Category = "general",
    ) -> int:
        """Insert a new document and return its id."""

    def get_document(
        self,
        *,
        document_id: int,
        user_id: str,
        include_deleted: bool = False,
    ) -> DocumentRecord | None:
        """Get a document by id, scoped to its owner."""

    def list_documents(
        self,
        *,
        user_id: str,
        include_deleted: bool = False,
    ) -> list[DocumentRecord]:
        """List documents owned by a user."""

    def update_document_embedding_state(
        self,
        *,
        document_id: int,
        **fields: Any,
    ) -> None:
        """Update embedding lifecycle columns of a document."""

    def soft_delete_document(self, *, document_id: int, user_id: str) -> bool:
        """Mark a document deleted. Return True when a row was updated."""

    def delete_document(self, *, document_id: int, user_id: str) -> bool:
        """Remove a document and its chunk embeddings."""

    def fetch_candidate_chunks(
        self,
        *,
        user_id: str,
        categories: list[str],
    ) -> list[dict[str, Any]]:
        """Return every chunk of the user's embedded, non-deleted documents in *categories*."""

    def delete_chunk_embeddings(self, *, document_id: int) -> int:
        """Delete all chunk embeddings of a document. Return count deleted."""

    def insert_chunk_embedding(self, record: ChunkEmbeddingRecord) -> None:
        """Insert a single chunk embedding row."""

    def count_chunk_embeddings(self, *, document_id: int) -> int:
        """Count stored chunk embeddings for a document."""

    def list_chunk_embeddings(self, *, document_id: int) -> list[ChunkEmbeddingRecord]:
        """List chunk embeddings of a document ordered by chunk index."""

    def embedding_stats(self, *, user_id: str) -> dict[str, int]:
        """Return total/embedded/pending/processing document counts."""

    def get_api_key(self, *, provider: str) -> ApiKeyRecord | None:
        """Fetch the stored API key for a provider."""

    def save_api_key(self, record: ApiKeyRecord) -> None:
        """Create or replace the stored API key for a provider."""
