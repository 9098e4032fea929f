"""Tests for the Qdrant-backed semantic retriever."""

import pytest

from aitutorial.semantic import SemanticRetriever


@pytest.fixture
def retriever(documents, embed_fn):
    retriever = SemanticRetriever(documents, embed_fn, top_k=3)
    yield retriever
    retriever.close()


def test_empty_corpus_raises(embed_fn):
    with pytest.raises(ValueError):
        SemanticRetriever([], embed_fn)


def test_search_returns_most_similar_first(retriever):
    results = retriever.search("cross encoder reranker")

    assert len(results) == 3
    assert results[0].doc_index == 3
    assert results[0].document.startswith("A cross-encoder reranker")
    assert [r.rank for r in results] == [1, 2, 3]
    assert results[0].score >= results[1].score >= results[2].score


def test_search_top_k_override(retriever):
    assert len(retriever.search("chunking", top_k=1)) == 1
    assert retriever.search_indexes("chunking splits long documents", top_k=1) == [4]


def test_reindexing_replaces_collection(documents, embed_fn, tmp_path):
    storage = tmp_path / "qdrant"

    first = SemanticRetriever(documents, embed_fn, location=str(storage))
    first.close()

    second = SemanticRetriever(documents[:2], embed_fn, location=str(storage), top_k=10)
    try:
        assert len(second.search("search")) == 2
    finally:
        second.close()


def test_from_config(documents, embed_fn, config):
    config['semantic']['collection_name'] = 'test_collection'
    config['retrieval']['top_k'] = 2

    retriever = SemanticRetriever.from_config(documents, config, embed_fn)
    try:
        assert retriever.collection_name == 'test_collection'
        assert len(retriever.search("embedding vectors")) == 2
    finally:
        retriever.close()
