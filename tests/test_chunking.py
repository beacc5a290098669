"""Tests for document chunking."""

import pytest

from kbindex.chunking import chunk_document, create_context_prefix, split_text
from kbindex.config import ChunkSettings
from kbindex.types import sanitize_title


def _reconstruct(pieces: list[str], overlap: int) -> str:
    return pieces[0] + "".join(p[overlap:] for p in pieces[1:])


def _sample_text() -> str:
    paragraphs = []
    for p in range(12):
        sentences = [f"Paragraph {p} sentence {s} talks about topic {p * s}." for s in range(6)]
        paragraphs.append(" ".join(sentences))
    return "\n\n".join(paragraphs)


class TestSingleChunk:

    def test_short_content_is_one_chunk(self):
        chunks = chunk_document("My Doc", "Short content.")
        assert len(chunks) == 1
        assert chunks[0].id == "doc:my-doc:chunk:0"
        assert chunks[0].content == "Short content."
        assert chunks[0].context_prefix == 'This is the full content of the document "My Doc".'

    def test_exactly_chunk_size_is_one_chunk(self):
        chunks = chunk_document("T", "x" * 1000)
        assert len(chunks) == 1

    def test_empty_content_is_one_empty_chunk(self):
        chunks = chunk_document("T", "")
        assert len(chunks) == 1
        assert chunks[0].content == ""


class TestMultipleChunks:

    def test_2500_chars_gives_three_chunks(self):
        chunks = chunk_document("Big Doc", "x" * 2500)
        assert len(chunks) == 3
        assert [len(c.content) for c in chunks] == [1000, 1000, 900]
        assert "beginning" in chunks[0].context_prefix
        assert "part 2 of 3" in chunks[1].context_prefix
        assert "end" in chunks[2].context_prefix

    def test_chunk_ids_are_sequential(self):
        chunks = chunk_document("Big Doc", "x" * 2500)
        assert [c.id for c in chunks] == [
            "doc:big-doc:chunk:0", "doc:big-doc:chunk:1", "doc:big-doc:chunk:2",
        ]
        assert [c.chunk_index for c in chunks] == [0, 1, 2]

    def test_coverage_with_overlap(self):
        content = _sample_text()
        pieces = split_text(content)
        assert len(pieces) > 2
        assert _reconstruct(pieces, 200) == content

    def test_chunk_lengths_within_bounds(self):
        pieces = split_text(_sample_text())
        for piece in pieces[:-1]:
            assert 100 <= len(piece) <= 1000
        assert len(pieces[-1]) <= 1000

    def test_consecutive_chunks_share_overlap(self):
        pieces = split_text(_sample_text())
        for prev, cur in zip(pieces, pieces[1:]):
            assert prev[-200:] == cur[:200]

    def test_deterministic(self):
        content = _sample_text()
        first = chunk_document("Doc", content)
        second = chunk_document("Doc", content)
        assert [(c.id, c.content) for c in first] == [(c.id, c.content) for c in second]


class TestBoundaries:

    def test_prefers_paragraph_break(self):
        content = "a" * 600 + "\n\n" + "b" * 1400
        pieces = split_text(content)
        assert len(pieces[0]) == 602
        assert pieces[0].endswith("\n\n")

    def test_falls_back_to_sentence_break(self):
        content = "a" * 700 + ". " + "b" * 1000
        pieces = split_text(content)
        assert len(pieces[0]) == 702
        assert pieces[0].endswith(". ")

    def test_ignores_break_too_close_to_start(self):
        content = "a" * 50 + "\n\n" + "b" * 2000
        pieces = split_text(content)
        assert len(pieces[0]) == 1000

    def test_paragraph_preferred_over_later_sentence(self):
        content = "a" * 500 + "\n\n" + "b" * 300 + ". " + "c" * 1000
        pieces = split_text(content)
        assert len(pieces[0]) == 502

    def test_always_advances(self):
        # Dense paragraph breaks still yield forward progress
        content = ("y" * 148 + "\n\n") * 30
        pieces = split_text(content)
        assert _reconstruct(pieces, 200) == content
        assert len(pieces) < len(content)


class TestSettings:

    def test_custom_settings(self):
        settings = ChunkSettings(size=100, overlap=20, min_size=10)
        pieces = split_text("z" * 250, settings)
        assert [len(p) for p in pieces] == [100, 100, 90]
        assert _reconstruct(pieces, 20) == "z" * 250

    def test_overlap_must_be_smaller_than_size(self):
        with pytest.raises(ValueError, match="overlap"):
            split_text("x" * 500, ChunkSettings(size=100, overlap=100, min_size=10))

    def test_min_size_must_be_positive(self):
        with pytest.raises(ValueError, match="min chunk size"):
            split_text("x" * 500, ChunkSettings(size=100, overlap=10, min_size=0))


class TestContextPrefix:

    def test_positions(self):
        assert create_context_prefix("T", 0, 1) == 'This is the full content of the document "T".'
        assert create_context_prefix("T", 0, 4) == 'This is the beginning of the document "T".'
        assert create_context_prefix("T", 2, 4) == 'This is part 3 of 4 from the document "T".'
        assert create_context_prefix("T", 3, 4) == 'This is the end of the document "T".'

    def test_text_to_embed_joins_prefix_and_content(self):
        chunk = chunk_document("Doc", "Body text.")[0]
        assert chunk.text_to_embed == (
            'This is the full content of the document "Doc".\n\nBody text.'
        )

    def test_id_uses_storage_id(self):
        title = "A very long title " * 10
        chunk = chunk_document(title, "body")[0]
        assert chunk.id == f"doc:{sanitize_title(title)}:chunk:0"
        assert chunk.title == title

    def test_titles_sharing_a_long_prefix_get_distinct_ids(self):
        alpha = "Quarterly engineering planning notes for platform team Alpha"
        beta = "Quarterly engineering planning notes for platform team Beta"
        assert chunk_document(alpha, "body")[0].id != chunk_document(beta, "body")[0].id
