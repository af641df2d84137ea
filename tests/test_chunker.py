import pytest

from content_rag.indexing.chunker import (
    ChunkOptions,
    DocumentChunker,
    chunking_options_for_category,
    reconstruct_from_chunks,
    split_document_into_chunks,
)

SENTENCES = (
    "The quick brown fox. It jumped over the lazy dog. "
    "This is a third sentence that is unrelated."
)

PARAGRAPHS = "a" * 30 + "\n\n" + "b" * 30 + "\n\n" + "c" * 10


def _assert_slices(content: str, chunks) -> None:
    for index, chunk in enumerate(chunks):
        assert chunk.index == index
        assert chunk.text == content[chunk.start_char : chunk.end_char]


def test_empty_and_blank_text_yield_no_chunks() -> None:
    chunker = DocumentChunker()
    assert chunker.chunk_text("") == []
    assert chunker.chunk_text("   \n\n  ") == []


def test_short_text_is_single_chunk() -> None:
    content = "Short product note.\n\nWith two paragraphs."

    chunks = split_document_into_chunks(content)

    assert len(chunks) == 1
    chunk = chunks[0]
    assert chunk.text == content
    assert (chunk.start_char, chunk.end_char) == (0, len(content))
    assert chunk.estimated_tokens == 11


def test_paragraphs_are_packed_within_budget() -> None:
    options = ChunkOptions(max_chunk_size=10, overlap=0)

    chunks = split_document_into_chunks(PARAGRAPHS, options)

    assert [chunk.text for chunk in chunks] == [
        "a" * 30 + "\n\n",
        "b" * 30 + "\n\n",
        "c" * 10,
    ]
    assert all(chunk.estimated_tokens <= 10 for chunk in chunks)
    _assert_slices(PARAGRAPHS, chunks)


def test_small_paragraphs_share_a_chunk() -> None:
    content = "one.\n\ntwo.\n\n" + "x" * 60
    options = ChunkOptions(max_chunk_size=10, overlap=0)

    chunks = split_document_into_chunks(content, options)

    assert chunks[0].text == "one.\n\ntwo.\n\n"
    _assert_slices(content, chunks)


def test_oversized_paragraph_is_hard_split() -> None:
    content = "word " * 40 + "\n\nTail paragraph."
    options = ChunkOptions(max_chunk_size=10, overlap=0)

    chunks = split_document_into_chunks(content, options)

    assert len(chunks) > 2
    assert all(chunk.estimated_tokens <= 10 for chunk in chunks)
    assert reconstruct_from_chunks(chunks) == content
    _assert_slices(content, chunks)


def test_long_whitespace_paragraph_never_exceeds_budget() -> None:
    content = "First paragraph here.\n\n" + " " * 40 + "\n\nSecond one."
    options = ChunkOptions(max_chunk_size=8, overlap=0)

    chunks = split_document_into_chunks(content, options)

    assert all(chunk.estimated_tokens <= 8 for chunk in chunks)
    assert chunks[0].text == "First paragraph here."
    assert chunks[-1].text == "Second one."
    assert reconstruct_from_chunks(chunks) == content
    _assert_slices(content, chunks)


def test_whitespace_run_is_shared_between_neighbours_when_it_fits() -> None:
    content = "First paragraph here.\n\n" + " " * 20 + "\n\nSecond one."
    options = ChunkOptions(max_chunk_size=8, overlap=0)

    chunks = split_document_into_chunks(content, options)

    # the previous chunk fills up to 32 characters, the rest opens the next one
    assert [chunk.text for chunk in chunks] == [content[:32], content[32:]]
    assert all(chunk.estimated_tokens <= 8 for chunk in chunks)
    _assert_slices(content, chunks)


def test_sentence_mode_respects_tiny_budget() -> None:
    options = ChunkOptions(max_chunk_size=5, overlap=0, preserve_paragraphs=False)

    chunks = split_document_into_chunks(SENTENCES, options)

    assert len(chunks) > 1
    assert all(chunk.estimated_tokens <= 5 for chunk in chunks)
    boundaries = {chunk.end_char for chunk in chunks}
    # Both sentence ends are chunk boundaries.
    assert SENTENCES.index("It") in boundaries
    assert SENTENCES.index("This") in boundaries
    assert chunks[1].text == "fox. "
    _assert_slices(SENTENCES, chunks)


def test_sentence_mode_packs_whole_sentences() -> None:
    options = ChunkOptions(max_chunk_size=14, overlap=0, preserve_paragraphs=False)

    chunks = split_document_into_chunks(SENTENCES, options)

    assert [chunk.text for chunk in chunks] == [
        "The quick brown fox. It jumped over the lazy dog. ",
        "This is a third sentence that is unrelated.",
    ]


def test_hard_split_without_structure_prefers_spaces() -> None:
    content = "word " * 40
    options = ChunkOptions(
        max_chunk_size=10,
        overlap=0,
        preserve_paragraphs=False,
        preserve_sentences=False,
    )

    chunks = split_document_into_chunks(content, options)

    assert all(len(chunk.text) <= 36 for chunk in chunks)
    assert all(chunk.text.endswith(" ") for chunk in chunks)
    assert "".join(chunk.text for chunk in chunks) == content


def test_overlap_prepends_previous_tail() -> None:
    options = ChunkOptions(max_chunk_size=10, overlap=2)

    chunks = split_document_into_chunks(PARAGRAPHS, options)

    assert len(chunks) == 3
    assert chunks[1].text == "aaaaaa\n\n" + "b" * 30 + "\n\n"
    assert chunks[1].start_char == 24
    assert chunks[2].text.startswith("bbbbbb\n\n")
    _assert_slices(PARAGRAPHS, chunks)


@pytest.mark.parametrize(
    "content",
    [
        PARAGRAPHS,
        SENTENCES,
        "word " * 300,
        "\n\n".join(f"Paragraph {i}. " + "Some filler text here. " * (i + 1) for i in range(12)),
    ],
)
@pytest.mark.parametrize("overlap", [0, 1, 5, 40])
def test_reconstruct_round_trip(content: str, overlap: int) -> None:
    options = ChunkOptions(max_chunk_size=12, overlap=overlap)

    chunks = split_document_into_chunks(content, options)

    assert reconstruct_from_chunks(chunks, overlap=overlap) == content
    _assert_slices(content, chunks)


def test_chunking_is_deterministic() -> None:
    options = ChunkOptions(max_chunk_size=8, overlap=2)
    assert split_document_into_chunks(SENTENCES * 3, options) == split_document_into_chunks(
        SENTENCES * 3, options
    )


def test_reconstruct_ignores_input_order() -> None:
    options = ChunkOptions(max_chunk_size=10, overlap=1)
    chunks = split_document_into_chunks(PARAGRAPHS, options)

    assert reconstruct_from_chunks(list(reversed(chunks)), overlap=1) == PARAGRAPHS
    assert reconstruct_from_chunks([]) == ""


def test_category_presets() -> None:
    products = chunking_options_for_category("products")
    assert (products.max_chunk_size, products.overlap) == (800, 100)
    assert chunking_options_for_category("brand").max_chunk_size == 1300
    assert chunking_options_for_category("content").preserve_paragraphs is False
    assert chunking_options_for_category("general") == ChunkOptions()
    assert chunking_options_for_category("offers") == ChunkOptions()
    assert chunking_options_for_category(None) == ChunkOptions()


@pytest.mark.parametrize(
    "kwargs",
    [{"max_chunk_size": 0}, {"max_chunk_size": -5}, {"overlap": -1}],
)
def test_invalid_options_are_rejected(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        ChunkOptions(**kwargs)
