"""Tests for embedding helpers."""

import numpy as np
import pytest

from aitutorial import embedding
from aitutorial.embedding import (
    cosine_similarity,
    create_embed_fn,
    embed_texts,
    get_embedding,
    get_embedding_dimension,
)


def test_embed_texts_batches_and_keeps_order(fake_client, embed_fn):
    texts = ["first text", "second text", "third text"]
    vectors = embed_texts(texts, fake_client, "text-embedding-3-small", batch_size=2)

    assert len(fake_client.embedding_calls) == 2
    assert fake_client.embedding_calls[0]['input'] == ["first text", "second text"]
    assert vectors == embed_fn(texts)


def test_get_embedding_single_text(fake_client, embed_fn):
    assert get_embedding("hello", fake_client, "m") == embed_fn(["hello"])[0]


def test_openai_embed_fn_uses_configured_model(config, fake_client):
    config['embedding']['model'] = 'text-embedding-3-large'
    embed = create_embed_fn(config, client=fake_client)

    embed(["a", "b"])

    assert fake_client.embedding_calls[0]['model'] == 'text-embedding-3-large'


def test_sentence_transformers_embed_fn(config, monkeypatch):
    class FakeModel:
        def encode(self, texts, normalize_embeddings=False):
            assert normalize_embeddings
            return np.array([[1.0, 0.0]] * len(texts))

    loaded = []

    def fake_load(name):
        loaded.append(name)
        return FakeModel()

    monkeypatch.setattr(embedding, 'load_local_model', fake_load)
    config['embedding']['provider'] = 'sentence_transformers'

    vectors = create_embed_fn(config)(["x", "y"])

    assert loaded == ['all-MiniLM-L6-v2']
    assert vectors == [[1.0, 0.0], [1.0, 0.0]]


def test_unknown_provider(config):
    config['embedding']['provider'] = 'carrier-pigeon'
    with pytest.raises(ValueError, match="Unknown embedding provider"):
        create_embed_fn(config)


def test_cosine_similarity():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([1, 1], [-1, -1]) == pytest.approx(-1.0)
    assert cosine_similarity([0, 0], [1, 1]) == 0.0


def test_embedding_dimension(config, embed_fn):
    assert get_embedding_dimension(config) == 1536

    config['embedding']['provider'] = 'sentence_transformers'
    assert get_embedding_dimension(config) == 384

    config['embedding'] = {'provider': 'openai', 'model': 'custom-model'}
    assert get_embedding_dimension(config, embed_fn) == len(embed_fn(["test"])[0])
