# =============================================================================
# Reranking Module
# =============================================================================
# This module re-scores first-pass retrieval candidates with a slower but more
# precise model that looks at the query and each document together.
#
# Two methods are available:
#   - cross_encoder : a sentence-transformers CrossEncoder scores (query, doc) pairs
#   - embedding     : cosine similarity between the query embedding and the
#                     embedding of a combined "Query: ... Document: ..." text

from sentence_transformers import CrossEncoder

from aitutorial.embedding import cosine_similarity
from aitutorial.run_tracker import log


# Global variable to cache the model (loading is expensive)
_reranker_model = None
_reranker_model_name = None


def load_reranker(config):
    """
    Load the cross-encoder model for reranking.

    The model is cached globally to avoid reloading it on every search.

    Args:
        config: Configuration dictionary with reranking settings

    Returns:
        CrossEncoder: The loaded cross-encoder model
    """
    global _reranker_model, _reranker_model_name

    settings = config.get('reranking', {})
    model_name = settings.get('model', 'cross-encoder/ms-marco-MiniLM-L-6-v2')
    device = settings.get('device', 'cpu')

    if _reranker_model is not None and _reranker_model_name == model_name:
        return _reranker_model

    print(f"Loading reranker model: {model_name} (device: {device})")
    _reranker_model = CrossEncoder(model_name, device=device)
    _reranker_model_name = model_name

    return _reranker_model


def rerank_with_cross_encoder(question, results, config, logger=None):
    """
    Rerank search results using a cross-encoder model.

    Args:
        question: The user's question
        results: List of result dictionaries, each with a 'document' field
        config: Configuration dictionary with reranking settings
        logger: Optional logger for tracking progress

    Returns:
        list: The results reordered by 'rerank_score' (added to each result)
    """
    if not results:
        return results

    log(f"Reranking {len(results)} results with cross-encoder...", logger)

    model = load_reranker(config)

    # The cross-encoder reads (query, document) pairs together
    pairs = [(question, result['document']) for result in results]
    scores = model.predict(pairs)

    for result, score in zip(results, scores):
        result['rerank_score'] = float(score)

    return sorted(results, key=lambda r: r['rerank_score'], reverse=True)


def rerank_by_embedding(question, candidates, embed_fn, logger=None):
    """
    Rerank candidates by embedding the query together with each document.

    Each candidate is embedded as "Query: <question>\\n\\nDocument: <text>",
    and scored by cosine similarity against the embedding of the question alone.

    Args:
        question: The user's question
        candidates: List of result dictionaries, each with a 'document' field
        embed_fn: Function mapping a list of strings to a list of vectors
        logger: Optional logger for tracking progress

    Returns:
        list: The candidates reordered by 'rerank_score' (added to each)
    """
    if not candidates:
        return candidates

    log(f"Reranking {len(candidates)} results with embeddings...", logger)

    pair_texts = [f"Query: {question}\n\nDocument: {c['document']}" for c in candidates]
    vectors = embed_fn([question] + pair_texts)
    query_vector, pair_vectors = vectors[0], vectors[1:]

    for candidate, vector in zip(candidates, pair_vectors):
        candidate['rerank_score'] = cosine_similarity(query_vector, vector)

    return sorted(candidates, key=lambda c: c['rerank_score'], reverse=True)


def rerank(question, candidates, config, embed_fn=None, logger=None):
    """
    Rerank with the method named in config['reranking']['method'].

    Args:
        question: The user's question
        candidates: List of result dictionaries
        config: Configuration dictionary
        embed_fn: Embedding function, required for the 'embedding' method
        logger: Optional logger

    Returns:
        list: The reranked candidates

    Raises:
        ValueError: If the method is unknown or embed_fn is missing
    """
    method = config.get('reranking', {}).get('method', 'cross_encoder')

    if method == 'cross_encoder':
        return rerank_with_cross_encoder(question, candidates, config, logger)

    if method == 'embedding':
        if embed_fn is None:
            raise ValueError("Embedding reranking needs an embedding function")
        return rerank_by_embedding(question, candidates, embed_fn, logger)

    raise ValueError(f"Unknown reranking method: {method}")


def rerank_with_details(question, candidates, config, embed_fn=None, logger=None):
    """
    Rerank and report how much the order changed.

    Useful for analysis: shows which documents the reranker promoted.

    Args:
        question: The user's question
        candidates: List of result dictionaries with 'doc_index' (or 'document')
        config: Configuration dictionary
        embed_fn: Embedding function for the 'embedding' method
        logger: Optional logger

    Returns:
        tuple: (reranked_results, details_dict)
    """
    def key(result):
        return result.get('doc_index', result['document'])

    original_order = [key(c) for c in candidates]
    original_scores = [c.get('score', 0) for c in candidates]

    reranked = rerank(question, candidates, config, embed_fn, logger)

    new_order = [key(r) for r in reranked]

    rank_changes = []
    for new_rank, doc_key in enumerate(new_order):
        old_rank = original_order.index(doc_key)
        rank_changes.append({
            'doc': doc_key,
            'old_rank': old_rank + 1,
            'new_rank': new_rank + 1,
            'change': old_rank - new_rank,  # Positive = moved up
        })

    details = {
        'method': config.get('reranking', {}).get('method', 'cross_encoder'),
        'original_order': original_order,
        'new_order': new_order,
        'original_scores': original_scores,
        'rerank_scores': [r.get('rerank_score', 0) for r in reranked],
        'rank_changes': rank_changes,
    }

    return reranked, details
