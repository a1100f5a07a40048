import pytest

from data.processor import DocumentProcessor, chunk_text, normalize_whitespace, sliding_windows


def test_chunks_cover_text_with_overlap(study_text):
    """Consecutive chunks share exactly `overlap` characters and rebuild the text"""
    chunks = chunk_text(study_text, chunk_size=1200, overlap=150)
    cleaned = normalize_whitespace(study_text)

    assert len(chunks) > 2
    for chunk in chunks[:-1]:
        assert len(chunk.page_content) == 1200
    for previous, current in zip(chunks, chunks[1:]):
        assert previous.page_content[-150:] == current.page_content[:150]

    rebuilt = chunks[0].page_content + "".join(c.page_content[150:] for c in chunks[1:])
    assert rebuilt == cleaned


def test_chunk_ids_and_metadata():
    chunks = DocumentProcessor(chunk_size=200, chunk_overlap=20).split_text("word " * 300, source="col-1")

    assert [c.id for c in chunks] == [f"p_{i}" for i in range(len(chunks))]
    assert all(c.metadata["source"] == "col-1" for c in chunks)
    assert all(c.metadata["total"] == len(chunks) for c in chunks)


def test_chunk_cap_truncates_silently(study_text):
    chunks = chunk_text(study_text, chunk_size=100, overlap=10, max_chunks=5)

    assert len(chunks) == 5
    assert chunks[0].page_content == normalize_whitespace(study_text)[:100]


def test_whitespace_is_collapsed():
    chunks = chunk_text("alpha\n\n\tbeta    gamma " * 20, chunk_size=1200, overlap=150)

    assert len(chunks) == 1
    assert "  " not in chunks[0].page_content
    assert "\n" not in chunks[0].page_content


def test_short_text_below_minimum_yields_nothing():
    assert chunk_text("too short", min_chunk_chars=50) == []
    assert chunk_text("   \n  ") == []


def test_short_trailing_window_is_dropped():
    text = "x" * 1000
    # Windows: [0, 600), [550, 1000); second is 450 chars so it is kept
    assert len(chunk_text(text, chunk_size=600, overlap=50, min_chunk_chars=50)) == 2
    # A higher minimum discards the tail window
    assert len(chunk_text(text, chunk_size=600, overlap=50, min_chunk_chars=500)) == 1


def test_sliding_windows_terminate_at_end():
    windows = list(sliding_windows(1210, 1200, 150))

    assert windows == [(0, 1200), (1050, 1210)]


@pytest.mark.parametrize("size, overlap", [(0, 0), (100, 100), (100, 150), (100, -1)])
def test_sliding_windows_reject_bad_parameters(size, overlap):
    with pytest.raises(ValueError):
        list(sliding_windows(500, size, overlap))


def test_memory_ceiling_stops_chunking(study_text):
    processor = DocumentProcessor(
        chunk_size=100,
        chunk_overlap=10,
        max_chunks=300,
        memory_probe=lambda: 5000.0,
        memory_ceiling_mb=1500,
        memory_check_every=10,
    )

    chunks = processor.split_text(study_text)

    assert len(chunks) == 10


def test_chunk_statistics():
    processor = DocumentProcessor(chunk_size=200, chunk_overlap=20)
    chunks = processor.split_text("lorem ipsum " * 100)

    stats = processor.get_chunk_statistics(chunks)

    assert stats["total_chunks"] == len(chunks)
    assert stats["max_chunk_length"] == 200
    assert processor.get_chunk_statistics([]) == {}
