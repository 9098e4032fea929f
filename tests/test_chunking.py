"""Tests for the chunking strategies and pipeline."""

import pytest

from aitutorial.chunking import (
    ChunkingPipeline,
    DocumentChunk,
    chunk_text,
    fixed_size_chunking,
    load_corpus,
    semantic_chunking,
    split_paragraphs,
    split_sentences,
    structure_aware_chunking,
    window_chunking,
)


HTML = """
<html><body>
  <h1>API</h1>
  <p>Intro text.</p>
  <h2>Authentication</h2>
  <p>Send a bearer token.</p>
  <ul><li>Keys expire yearly.</li></ul>
  <h2>Errors</h2>
  <p>Errors return JSON.</p>
</body></html>
"""


def test_split_paragraphs_drops_empty_and_strips():
    text = "  First paragraph.  \n\n\n\nSecond paragraph.\n\n   \n\n"
    assert split_paragraphs(text) == ["First paragraph.", "Second paragraph."]


def test_split_sentences():
    assert split_sentences("One. Two.  Three.") == ["One", "Two", "Three"]


def test_fixed_size_chunking_overlap():
    chunks = fixed_size_chunking("abcdefghij", chunk_size=4, overlap=1)
    assert chunks == ["abcd", "defg", "ghij", "j"]


def test_fixed_size_chunking_without_overlap_covers_text():
    text = "x" * 1050
    chunks = fixed_size_chunking(text, chunk_size=500, overlap=0)
    assert [len(c) for c in chunks] == [500, 500, 50]
    assert "".join(chunks) == text


@pytest.mark.parametrize("chunk_size, overlap", [(0, 0), (10, 10), (10, -1)])
def test_fixed_size_chunking_rejects_bad_sizes(chunk_size, overlap):
    with pytest.raises(ValueError):
        fixed_size_chunking("some text", chunk_size=chunk_size, overlap=overlap)


def test_window_chunking_strips_windows():
    assert window_chunking("abc def ghi", chunk_size=4) == ["abc", "def", "ghi"]


def test_semantic_chunking_prefers_paragraph_breaks():
    chunks = semantic_chunking("First para.\n\nSecond para.", chunk_size=15, chunk_overlap=0)
    assert chunks == ["First para.\n\n", "Second para."]


def test_semantic_chunking_short_text_is_single_chunk():
    assert semantic_chunking("short", chunk_size=100, chunk_overlap=10) == ["short"]


def test_semantic_chunking_hard_splits_without_separators():
    chunks = semantic_chunking("a" * 25, chunk_size=10, chunk_overlap=0)
    assert chunks == ["a" * 10, "a" * 10, "a" * 5]


def test_semantic_chunking_overlap_repeats_context():
    text = "alpha beta gamma delta epsilon zeta"
    chunks = semantic_chunking(text, chunk_size=12, chunk_overlap=4)
    assert chunks[0] == "alpha beta "
    # The second chunk starts 4 characters before the first split
    assert chunks[1] == "eta gamma "
    assert chunks[-1].endswith("zeta")


def test_semantic_chunking_always_advances_with_large_overlap():
    text = "word " * 50
    chunks = semantic_chunking(text, chunk_size=10, chunk_overlap=50)
    assert chunks
    assert chunks[-1].endswith("word ")


def test_structure_aware_chunking_keeps_heading_path():
    chunks = structure_aware_chunking(HTML)

    assert [c['metadata']['section_path'] for c in chunks] == [
        "API",
        "API > Authentication",
        "API > Authentication",
        "API > Errors",
    ]
    assert chunks[1]['content'] == "API > Authentication\n\nSend a bearer token."
    assert chunks[2]['metadata']['element_type'] == 'li'


class TestDocumentChunk:

    def test_from_document_fills_metadata(self):
        chunk = DocumentChunk.from_document("Hello big world", "notes.md", 2, 5, {'author': 'sam'})

        assert chunk.metadata['chunk_id'] == "notes.md_2"
        assert chunk.metadata['total_chunks'] == 5
        assert chunk.metadata['word_count'] == 3
        assert chunk.metadata['char_count'] == 15
        assert chunk.metadata['author'] == 'sam'
        assert chunk.metadata['language'] == 'en'
        assert chunk.metadata['created_at']

    def test_missing_required_metadata_raises(self):
        with pytest.raises(ValueError, match="Missing metadata"):
            DocumentChunk(content="text", metadata={'source': 'a.md'})

    def test_to_dict(self):
        chunk = DocumentChunk.from_document("Hello", "a.md", 0, 1)
        data = chunk.to_dict()
        assert data['content'] == "Hello"
        assert data['metadata']['source'] == "a.md"


class TestChunkingPipeline:

    def test_unknown_strategy(self):
        with pytest.raises(ValueError, match="Unknown chunking strategy"):
            ChunkingPipeline(strategy="magic")

    def test_filters_short_chunks(self):
        pipeline = ChunkingPipeline(strategy="paragraph", min_words=3)
        chunks = pipeline.process_document("one two three four\n\ntoo short", "doc.txt")

        assert [c.content for c in chunks] == ["one two three four"]
        assert chunks[0].metadata['total_chunks'] == 2

    def test_identical_documents_are_cached(self):
        pipeline = ChunkingPipeline(strategy="paragraph", min_words=1)
        first = pipeline.process_document("same text here", "a.txt")
        second = pipeline.process_document("same text here", "b.txt")
        assert first is second

    def test_process_batch_yields_batches(self):
        pipeline = ChunkingPipeline(strategy="paragraph", min_words=1)
        documents = [(f"para {i} a\n\npara {i} b", f"doc{i}") for i in range(3)]

        batches = list(pipeline.process_batch(documents, batch_size=4))

        assert [len(b) for b in batches] == [4, 2]

    def test_overlap_applies_to_semantic_and_fixed(self):
        text = "abcdefghij" * 3

        semantic = ChunkingPipeline(strategy="semantic", min_words=1, chunk_size=10, overlap=4)
        fixed = ChunkingPipeline(strategy="fixed", min_words=1, chunk_size=10, overlap=4)

        expected = fixed_size_chunking(text, chunk_size=10, overlap=4)
        assert [c.content for c in fixed.process_document(text, "f.txt")] == expected
        assert [c.content for c in semantic.process_document(text, "s.txt")] == \
            semantic_chunking(text, chunk_size=10, chunk_overlap=4)
        assert len(expected) > 3

    def test_from_config_uses_chunking_section(self, config):
        config['chunking'].update({'strategy': 'fixed', 'min_words': 7, 'chunk_size': 120, 'overlap': 10})

        pipeline = ChunkingPipeline.from_config(config)

        assert pipeline.strategy == 'fixed'
        assert pipeline.min_words == 7
        assert pipeline.chunk_size == 120
        assert pipeline.overlap == 10

    def test_structure_aware_strategy(self):
        pipeline = ChunkingPipeline(strategy="structure_aware", min_words=1)
        chunks = pipeline.process_document(HTML, "api.html")
        assert chunks[0].content.startswith("API\n\n")


class TestChunkText:

    def test_uses_configured_strategy(self, config):
        config['chunking']['strategy'] = 'sentence'
        assert chunk_text("A. B.", config) == ["A", "B"]

    def test_unknown_strategy(self, config):
        config['chunking']['strategy'] = 'nope'
        with pytest.raises(ValueError):
            chunk_text("text", config)


def test_load_corpus_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_corpus(tmp_path / "missing.txt")


def test_load_corpus_reads_sample(config):
    documents = split_paragraphs(load_corpus(config['paths']['corpus']))
    assert len(documents) == 15
