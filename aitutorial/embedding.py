# =============================================================================
# Embedding Module
# =============================================================================
# This module generates vector embeddings for text.
# Embeddings are numerical representations that capture the meaning of text:
# similar texts get vectors that point in similar directions.
#
# Two providers are supported:
#   - openai                : OpenAI embeddings API (text-embedding-3-small)
#   - sentence_transformers : a local model (all-MiniLM-L6-v2), no API key needed

import numpy as np
from openai import OpenAI
from sentence_transformers import SentenceTransformer

from aitutorial.config import get_openai_api_key


# Cache for the local embedding model (loading is expensive)
_local_model = None
_local_model_name = None


def create_openai_client(config=None):
    """
    Create an OpenAI client using the configured API key.

    Args:
        config: Configuration dictionary (not currently used, kept for consistency)

    Returns:
        OpenAI: An initialized OpenAI client

    Raises:
        ValueError: If no API key is configured
    """
    return OpenAI(api_key=get_openai_api_key())


def get_embedding(text, client, model):
    """
    Generate an embedding vector for a single piece of text.

    Args:
        text: The text to embed
        client: An OpenAI client instance
        model: The embedding model to use (e.g., "text-embedding-3-small")

    Returns:
        list: A list of floats representing the embedding vector
    """
    response = client.embeddings.create(input=text, model=model)
    return response.data[0].embedding


def embed_texts(texts, client, model, batch_size=100, logger=None):
    """
    Generate embeddings for many texts, batch_size texts per API call.

    Args:
        texts: List of strings
        client: An OpenAI client instance
        model: The embedding model to use
        batch_size: Number of texts sent in one request
        logger: Optional logger for tracking progress

    Returns:
        list: One embedding per text, in the same order
    """
    embeddings = []
    total = len(texts)

    for start in range(0, total, batch_size):
        batch = texts[start:start + batch_size]
        response = client.embeddings.create(input=batch, model=model)

        # The API returns items with an index; keep the input order
        ordered = sorted(response.data, key=lambda item: item.index)
        embeddings.extend(item.embedding for item in ordered)

        if logger:
            logger.info(f"  Embedded {min(start + batch_size, total)}/{total} texts")

    return embeddings


def load_local_model(model_name):
    """
    Load a sentence-transformers model, cached between calls.

    Args:
        model_name: Hugging Face model name (e.g., "all-MiniLM-L6-v2")

    Returns:
        SentenceTransformer: The loaded model
    """
    global _local_model, _local_model_name

    if _local_model is not None and _local_model_name == model_name:
        return _local_model

    print(f"Loading embedding model: {model_name}")
    _local_model = SentenceTransformer(model_name)
    _local_model_name = model_name

    return _local_model


def create_embed_fn(config, client=None):
    """
    Build the embedding function used by the retrievers.

    The returned function takes a list of strings and returns a list of
    vectors, so retrievers don't need to know which provider is behind it.

    Args:
        config: Configuration dictionary with embedding settings
        client: Optional OpenAI client (created from secrets if not given)

    Returns:
        callable: fn(list[str]) -> list[list[float]]

    Raises:
        ValueError: If the provider is unknown
    """
    settings = config.get('embedding', {})
    provider = settings.get('provider', 'openai')

    if provider == 'openai':
        model = settings.get('model', 'text-embedding-3-small')
        batch_size = settings.get('batch_size', 100)
        openai_client = client or create_openai_client(config)

        def embed(texts):
            return embed_texts(texts, openai_client, model, batch_size)

        return embed

    if provider == 'sentence_transformers':
        local_model = load_local_model(settings.get('local_model', 'all-MiniLM-L6-v2'))

        def embed(texts):
            vectors = local_model.encode(list(texts), normalize_embeddings=True)
            return [vector.tolist() for vector in vectors]

        return embed

    raise ValueError(f"Unknown embedding provider: {provider}")


def cosine_similarity(a, b):
    """
    Cosine similarity between two vectors.

    Args:
        a: First vector
        b: Second vector

    Returns:
        float: Similarity in [-1, 1], or 0.0 if either vector has zero length
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def get_embedding_dimension(config, embed_fn=None):
    """
    Get the dimension (size) of embeddings for the configured model.

    Different embedding models produce vectors of different sizes:
    - text-embedding-3-small: 1536 dimensions
    - text-embedding-3-large: 3072 dimensions
    - all-MiniLM-L6-v2: 384 dimensions

    Args:
        config: Configuration dictionary with embedding settings
        embed_fn: Optional embedding function used to measure the dimension of unknown models

    Returns:
        int: The embedding dimension
    """
    settings = config.get('embedding', {})
    if settings.get('provider', 'openai') == 'sentence_transformers':
        model = settings.get('local_model', 'all-MiniLM-L6-v2')
    else:
        model = settings.get('model', 'text-embedding-3-small')

    dimensions = {
        'text-embedding-3-small': 1536,
        'text-embedding-3-large': 3072,
        'text-embedding-ada-002': 1536,
        'all-MiniLM-L6-v2': 384,
    }

    if model in dimensions:
        return dimensions[model]

    # Unknown model: embed a sample and measure it
    embed = embed_fn or create_embed_fn(config)
    return len(embed(["test"])[0])
