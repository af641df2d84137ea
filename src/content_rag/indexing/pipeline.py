"""
Embedding pipeline orchestration.

Chunks a stored document, embeds every chunk, and replaces the document's
stored chunk embeddings while publishing progress on the document row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .chunker import (
    ChunkOptions,
    TextChunk,
    chunking_options_for_category,
    split_document_into_chunks,
)
from ..embeddings import EmbeddingClient
from ..errors import InvalidInputError, NotFoundError, ProviderError
from ..storage import ChunkEmbeddingRecord, DocumentRecord, StorageBackend
from ..storage.base import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmbedResult:
    """Summary output for a background embedding job."""

    document_id: int
    chunks_processed: int
    model: str
    already_embedded: bool = False
    success: bool = True


@dataclass(frozen=True)
class ReembedResult:
    """Outcome of a re-embedding run, reported instead of raised."""

    success: bool
    chunks_processed: int
    error: str | None = None


class EmbeddingPipeline:
    """Chunk, embed, and persist documents."""

    def __init__(
        self,
        storage: StorageBackend,
        embedding_client: EmbeddingClient,
        *,
        model: str | None = None,
    ) -> None:
        self.storage = storage
        self.embedding_client = embedding_client
        self.model = model or embedding_client.model

    async def embed_document(
        self,
        *,
        document_id: int,
        user_id: str,
        force: bool = False,
    ) -> EmbedResult:
        """Embed a document for the first time, or again when *force* is set.

        Raises NotFoundError for a missing document and InvalidInputError
        when its content produces no chunks.
        """
        document = self.storage.get_document(document_id=document_id, user_id=user_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found for user {user_id}")

        if document.embedded and not force:
            return EmbedResult(
                document_id=document_id,
                chunks_processed=document.chunks_count,
                model=document.embedding_model or self.model,
                already_embedded=True,
            )

        chunks = self._chunk(document, chunking_options_for_category(document.category))
        if not chunks:
            raise InvalidInputError("Document content is empty or could not be chunked")

        self._mark_processing(document_id, len(chunks))
        vectors = await self._embed_chunks(chunks)
        # Persist progress every third chunk and on the last one.
        self._replace_embeddings(document_id, chunks, vectors, progress_every=3)
        self._mark_completed(document_id, len(chunks))

        logger.info(
            "Embedded document %s: %d chunks with %s", document_id, len(chunks), self.model
        )
        return EmbedResult(
            document_id=document_id,
            chunks_processed=len(chunks),
            model=self.model,
        )

    async def reembed_document(self, *, document_id: int, user_id: str) -> ReembedResult:
        """
        Re-chunk and re-embed a document, replacing all stored chunk rows.

        Always chunks with the default options, whatever the category, and
        finds soft-deleted documents too. Never raises. Rows written before a
        failure are left in place; a retry deletes and replaces them.
        """
        try:
            document = self.storage.get_document(
                document_id=document_id, user_id=user_id, include_deleted=True
            )
            if document is None:
                return ReembedResult(
                    success=False, chunks_processed=0, error="Document not found"
                )

            chunks = self._chunk(document)
            self._mark_processing(document_id, len(chunks))

            vectors = await self._embed_chunks(chunks)
            self._replace_embeddings(document_id, chunks, vectors, progress_every=1)
            self._mark_completed(document_id, len(chunks))

            logger.info("Re-embedded document %s: %d chunks", document_id, len(chunks))
            return ReembedResult(success=True, chunks_processed=len(chunks))
        except Exception as exc:
            logger.exception("Re-embedding error for document %s", document_id)
            return ReembedResult(
                success=False,
                chunks_processed=0,
                error=str(exc) or exc.__class__.__name__,
            )

    def _chunk(
        self, document: DocumentRecord, options: ChunkOptions | None = None
    ) -> list[TextChunk]:
        chunks = split_document_into_chunks(document.content or "", options)
        # whitespace runs too long to fold into a neighbour have nothing to embed
        return [chunk for chunk in chunks if chunk.text.strip()]

    async def _embed_chunks(self, chunks: list[TextChunk]) -> list[list[float]]:
        vectors = await self.embedding_client.generate_embeddings_batch(
            [chunk.text for chunk in chunks],
            model=self.model,
        )
        if len(vectors) != len(chunks):
            raise ProviderError(
                f"Expected {len(chunks)} embeddings, got {len(vectors)}",
                code="count_mismatch",
            )
        return vectors

    def _mark_processing(self, document_id: int, chunks_count: int) -> None:
        self.storage.update_document_embedding_state(
            document_id=document_id,
            chunks_count=chunks_count,
            embedding_progress=0,
            embedding_status="processing",
        )

    def _replace_embeddings(
        self,
        document_id: int,
        chunks: list[TextChunk],
        vectors: list[list[float]],
        *,
        progress_every: int,
    ) -> None:
        deleted = self.storage.delete_chunk_embeddings(document_id=document_id)
        logger.debug("Deleted %d old chunk embeddings for document %s", deleted, document_id)

        last = len(chunks) - 1
        for i, (chunk, vector) in enumerate(zip(chunks, vectors)):
            self.storage.insert_chunk_embedding(
                ChunkEmbeddingRecord(
                    document_id=document_id,
                    embedding=vector,
                    model=self.model,
                    chunk_index=i,
                    chunk_text=chunk.text,
                    start_pos=chunk.start_char,
                    end_pos=chunk.end_char,
                )
            )
            if i % progress_every == 0 or i == last:
                self.storage.update_document_embedding_state(
                    document_id=document_id,
                    embedding_progress=i + 1,
                )

    def _mark_completed(self, document_id: int, chunks_count: int) -> None:
        self.storage.update_document_embedding_state(
            document_id=document_id,
            embedded=True,
            embedding_status="completed",
            embedding_progress=chunks_count,
            last_embedded_at=utcnow(),
            embedding_model=self.model,
        )
