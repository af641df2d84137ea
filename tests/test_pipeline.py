import pytest

import content_rag.indexing.pipeline as pipeline_module
from content_rag.errors import InvalidInputError, NotFoundError, ProviderError
from content_rag.indexing import (
    ChunkOptions,
    EmbeddingPipeline,
    chunking_options_for_category,
    split_document_into_chunks,
)

LONG_CONTENT = "\n\n".join(
    f"Section {i}. " + "Our products are built for busy teams. " * 38 for i in range(12)
)


class RecordingStorage:
    """Delegates to a real storage and records embedding state updates."""

    def __init__(self, inner, *, fail_on_insert: int | None = None) -> None:
        self.inner = inner
        self.updates: list[dict] = []
        self.inserts = 0
        self.fail_on_insert = fail_on_insert

    def update_document_embedding_state(self, *, document_id, **fields):
        self.updates.append(dict(fields))
        return self.inner.update_document_embedding_state(document_id=document_id, **fields)

    def insert_chunk_embedding(self, record):
        self.inserts += 1
        if self.fail_on_insert is not None and self.inserts == self.fail_on_insert:
            raise RuntimeError("disk full")
        return self.inner.insert_chunk_embedding(record)

    def __getattr__(self, name):
        return getattr(self.inner, name)


def _progress(updates: list[dict]) -> list[int]:
    return [u["embedding_progress"] for u in updates if set(u) == {"embedding_progress"}]


def _expected_chunks(content: str, category: str = "general"):
    return split_document_into_chunks(content, chunking_options_for_category(category))


# ---------------------------------------------------------------------------
# Re-embedding
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reembed_replaces_rows_and_completes(storage, fake_client) -> None:
    document_id = storage.create_document(user_id="user_1", title="Catalog", content=LONG_CONTENT)
    pipeline = EmbeddingPipeline(storage, fake_client)
    expected = _expected_chunks(LONG_CONTENT)
    assert len(expected) > 3

    result = await pipeline.reembed_document(document_id=document_id, user_id="user_1")

    assert result.success is True
    assert result.chunks_processed == len(expected)
    assert result.error is None

    rows = storage.list_chunk_embeddings(document_id=document_id)
    assert [row.chunk_index for row in rows] == list(range(len(expected)))
    assert [row.chunk_text for row in rows] == [chunk.text for chunk in expected]
    assert [(row.start_pos, row.end_pos) for row in rows] == [
        (chunk.start_char, chunk.end_char) for chunk in expected
    ]
    assert rows[0].embedding == [float(len(expected[0].text)), 1.0, 0.0]
    assert {row.model for row in rows} == {"fake-embed-1"}

    document = storage.get_document(document_id=document_id, user_id="user_1")
    assert document.embedded is True
    assert document.embedding_status == "completed"
    assert document.embedding_progress == len(expected)
    assert document.chunks_count == len(expected)
    assert document.embedding_model == "fake-embed-1"
    assert document.last_embedded_at is not None


@pytest.mark.asyncio
async def test_reembed_deletes_previous_embeddings(storage, fake_client, seed_document) -> None:
    document_id = seed_document(chunks=[(f"old {i}", [0.0, 1.0, 0.0]) for i in range(5)])
    pipeline = EmbeddingPipeline(storage, fake_client)

    result = await pipeline.reembed_document(document_id=document_id, user_id="user_1")

    assert result.chunks_processed == 1
    rows = storage.list_chunk_embeddings(document_id=document_id)
    assert len(rows) == 1
    assert rows[0].chunk_text == "old 0old 1old 2old 3old 4"


@pytest.mark.asyncio
async def test_reembed_uses_default_chunking_for_every_category(storage, fake_client) -> None:
    # about 880 estimated tokens: one chunk by default, more under the products preset
    content = "\n\n".join(["Our products are built for busy teams. " * 30] * 3)
    assert len(_expected_chunks(content, "products")) > 1
    document_id = storage.create_document(
        user_id="user_1", title="Products", content=content, category="products"
    )

    result = await EmbeddingPipeline(storage, fake_client).reembed_document(
        document_id=document_id, user_id="user_1"
    )

    assert result.chunks_processed == 1
    assert fake_client.batches == [[content]]


@pytest.mark.asyncio
async def test_reembed_finds_soft_deleted_document(storage, fake_client) -> None:
    document_id = storage.create_document(user_id="user_1", title="Old", content="Archived notes.")
    assert storage.soft_delete_document(document_id=document_id, user_id="user_1")

    result = await EmbeddingPipeline(storage, fake_client).reembed_document(
        document_id=document_id, user_id="user_1"
    )

    assert result.success is True
    assert result.chunks_processed == 1
    assert storage.count_chunk_embeddings(document_id=document_id) == 1


@pytest.mark.asyncio
async def test_blank_chunks_are_not_embedded(storage, fake_client, monkeypatch) -> None:
    content = "First paragraph here.\n\n" + " " * 40 + "\n\nSecond one."
    chunks = split_document_into_chunks(content, ChunkOptions(max_chunk_size=8, overlap=0))
    assert any(not chunk.text.strip() for chunk in chunks)
    monkeypatch.setattr(pipeline_module, "split_document_into_chunks", lambda text, options=None: chunks)
    document_id = storage.create_document(user_id="user_1", title="Gappy", content=content)

    result = await EmbeddingPipeline(storage, fake_client).reembed_document(
        document_id=document_id, user_id="user_1"
    )

    assert result.success is True
    assert fake_client.batches == [["First paragraph here.", "Second one."]]
    rows = storage.list_chunk_embeddings(document_id=document_id)
    assert [row.chunk_index for row in rows] == [0, 1]
    assert [row.chunk_text for row in rows] == ["First paragraph here.", "Second one."]


@pytest.mark.asyncio
async def test_reembed_reports_progress_for_every_chunk(storage, fake_client) -> None:
    document_id = storage.create_document(user_id="user_1", title="Catalog", content=LONG_CONTENT)
    spy = RecordingStorage(storage)
    total = len(_expected_chunks(LONG_CONTENT))

    await EmbeddingPipeline(spy, fake_client).reembed_document(
        document_id=document_id, user_id="user_1"
    )

    assert spy.updates[0] == {
        "chunks_count": total,
        "embedding_progress": 0,
        "embedding_status": "processing",
    }
    assert _progress(spy.updates) == list(range(1, total + 1))
    assert spy.updates[-1]["embedding_status"] == "completed"


@pytest.mark.asyncio
async def test_reembed_missing_document(storage, fake_client) -> None:
    result = await EmbeddingPipeline(storage, fake_client).reembed_document(
        document_id=999, user_id="user_1"
    )

    assert result.success is False
    assert result.chunks_processed == 0
    assert result.error == "Document not found"


@pytest.mark.asyncio
async def test_reembed_other_users_document_is_not_found(storage, fake_client) -> None:
    document_id = storage.create_document(user_id="owner", title="Mine", content="Private notes.")

    result = await EmbeddingPipeline(storage, fake_client).reembed_document(
        document_id=document_id, user_id="intruder"
    )

    assert result.success is False
    assert storage.count_chunk_embeddings(document_id=document_id) == 0


@pytest.mark.asyncio
async def test_reembed_provider_failure_is_reported(storage, failing_client) -> None:
    document_id = storage.create_document(user_id="user_1", title="ABC", content="A. B. C.")

    result = await EmbeddingPipeline(storage, failing_client).reembed_document(
        document_id=document_id, user_id="user_1"
    )

    assert result.success is False
    assert result.chunks_processed == 0
    assert result.error == "rate limit exceeded"
    document = storage.get_document(document_id=document_id, user_id="user_1")
    assert document.embedded is False


@pytest.mark.asyncio
async def test_reembed_failure_leaves_written_rows(storage, fake_client) -> None:
    document_id = storage.create_document(user_id="user_1", title="Catalog", content=LONG_CONTENT)
    spy = RecordingStorage(storage, fail_on_insert=3)

    result = await EmbeddingPipeline(spy, fake_client).reembed_document(
        document_id=document_id, user_id="user_1"
    )

    assert result.success is False
    assert result.error == "disk full"
    assert storage.count_chunk_embeddings(document_id=document_id) == 2
    document = storage.get_document(document_id=document_id, user_id="user_1")
    assert document.embedding_status == "processing"
    assert document.embedded is False


# ---------------------------------------------------------------------------
# First-time embedding
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_embed_document_reports_progress_every_third_chunk(storage, fake_client) -> None:
    document_id = storage.create_document(user_id="user_1", title="Catalog", content=LONG_CONTENT)
    spy = RecordingStorage(storage)
    total = len(_expected_chunks(LONG_CONTENT))

    result = await EmbeddingPipeline(spy, fake_client).embed_document(
        document_id=document_id, user_id="user_1"
    )

    assert result.chunks_processed == total
    assert result.already_embedded is False
    assert result.model == "fake-embed-1"
    expected = [i + 1 for i in range(total) if i % 3 == 0 or i == total - 1]
    assert _progress(spy.updates) == expected
    assert storage.count_chunk_embeddings(document_id=document_id) == total


@pytest.mark.asyncio
async def test_embed_document_skips_already_embedded(storage, fake_client, seed_document) -> None:
    document_id = seed_document(chunks=[("one", [1.0, 0.0, 0.0]), ("two", [1.0, 0.0, 0.0])])

    result = await EmbeddingPipeline(storage, fake_client).embed_document(
        document_id=document_id, user_id="user_1"
    )

    assert result.already_embedded is True
    assert result.chunks_processed == 2
    assert fake_client.batches == []


@pytest.mark.asyncio
async def test_embed_document_force_embeds_again(storage, fake_client, seed_document) -> None:
    document_id = seed_document(chunks=[("one", [1.0, 0.0, 0.0]), ("two", [1.0, 0.0, 0.0])])

    result = await EmbeddingPipeline(storage, fake_client).embed_document(
        document_id=document_id, user_id="user_1", force=True
    )

    assert result.already_embedded is False
    assert result.chunks_processed == 1
    assert fake_client.batches == [["onetwo"]]
    assert storage.count_chunk_embeddings(document_id=document_id) == 1


@pytest.mark.asyncio
async def test_embed_document_errors_raise(storage, fake_client) -> None:
    pipeline = EmbeddingPipeline(storage, fake_client)
    with pytest.raises(NotFoundError):
        await pipeline.embed_document(document_id=404, user_id="user_1")

    blank = storage.create_document(user_id="user_1", title="Blank", content="   \n ")
    with pytest.raises(InvalidInputError):
        await pipeline.embed_document(document_id=blank, user_id="user_1")
    assert storage.get_document(document_id=blank, user_id="user_1").embedding_status == "not_started"


@pytest.mark.asyncio
async def test_embed_document_provider_failure_raises(storage, failing_client) -> None:
    document_id = storage.create_document(user_id="user_1", title="ABC", content="A. B. C.")

    with pytest.raises(ProviderError, match="rate limit exceeded"):
        await EmbeddingPipeline(storage, failing_client).embed_document(
            document_id=document_id, user_id="user_1"
        )
