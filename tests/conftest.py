from pathlib import Path
from typing import Callable

import pytest

from content_rag.errors import ProviderError
from content_rag.storage import ChunkEmbeddingRecord, DuckDBStorage


class FakeEmbeddingClient:
    """Stands in for EmbeddingClient: fixed query vector, length-derived chunk vectors."""

    def __init__(
        self,
        query_vector: list[float] | None = None,
        *,
        fail_with: Exception | None = None,
    ) -> None:
        self.model = "fake-embed-1"
        self.query_vector = query_vector or [1.0, 0.0, 0.0]
        self.fail_with = fail_with
        self.queries: list[str] = []
        self.batches: list[list[str]] = []

    async def generate_embedding(self, text: str, model: str | None = None) -> list[float]:
        if self.fail_with is not None:
            raise self.fail_with
        self.queries.append(text)
        return list(self.query_vector)

    async def generate_embeddings_batch(
        self, texts: list[str], model: str | None = None
    ) -> list[list[float]]:
        if self.fail_with is not None:
            raise self.fail_with
        self.batches.append(list(texts))
        return [[float(len(text)), 1.0, 0.0] for text in texts]


@pytest.fixture
def storage(tmp_path: Path):
    db = DuckDBStorage(str(tmp_path / "rag.duckdb"))
    yield db
    db.close()


@pytest.fixture
def fake_client() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture
def failing_client() -> FakeEmbeddingClient:
    return FakeEmbeddingClient(
        fail_with=ProviderError("rate limit exceeded", code="rate_limit", status_code=429)
    )


@pytest.fixture
def seed_document(storage: DuckDBStorage) -> Callable[..., int]:
    """Insert a document plus chunk embeddings, marked embedded by default."""

    def _seed(
        *,
        chunks: list[tuple[str, list[float]]],
        user_id: str = "user_1",
        title: str = "Doc",
        category: str = "general",
        embedded: bool = True,
        model: str = "fake-embed-1",
    ) -> int:
        document_id = storage.create_document(
            user_id=user_id,
            title=title,
            content="".join(text for text, _ in chunks),
            category=category,
        )
        position = 0
        for index, (text, vector) in enumerate(chunks):
            storage.insert_chunk_embedding(
                ChunkEmbeddingRecord(
                    document_id=document_id,
                    embedding=vector,
                    model=model,
                    chunk_index=index,
                    chunk_text=text,
                    start_pos=position,
                    end_pos=position + len(text),
                )
            )
            position += len(text)
        if embedded:
            storage.update_document_embedding_state(
                document_id=document_id,
                embedded=True,
                embedding_status="completed",
                chunks_count=len(chunks),
                embedding_progress=len(chunks),
                embedding_model=model,
            )
        return document_id

    return _seed
