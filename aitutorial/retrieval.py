# =============================================================================
# Retrieval Module
# =============================================================================
# This module is the single entry point for searching a document list.
# It supports four methods:
#   - keyword  : naive substring counting, the baseline (lexical.py)
#   - bm25     : keyword search (lexical.py)
#   - semantic : vector search in Qdrant (semantic.py)
#   - hybrid   : both, merged with Reciprocal Rank Fusion (fusion.py)
# and optional reranking of a larger candidate pool (reranking.py).

from aitutorial.config import deep_merge
from aitutorial.embedding import create_embed_fn
from aitutorial.fusion import reciprocal_rank_fusion, rrf_fuse
from aitutorial.lexical import BM25Retriever, keyword_search
from aitutorial.reranking import rerank, rerank_with_details
from aitutorial.run_tracker import log
from aitutorial.semantic import SemanticRetriever


METHODS = ('bm25', 'semantic', 'hybrid', 'keyword')


def uses_embeddings(method, config):
    """True when searching with this method (and the configured reranker) needs an embed_fn."""
    reranking = config.get('reranking', {})
    return method in ('semantic', 'hybrid') or (
        reranking.get('enabled', False) and reranking.get('method') == 'embedding'
    )


def build_retrievers(documents, config, method, embed_fn=None, logger=None):
    """
    Create the retrievers a search method needs.

    Building a semantic retriever embeds every document, so callers that run
    many queries (like the evaluation) build them once and pass them in.

    Args:
        documents: List of document strings
        config: Configuration dictionary
        method: 'bm25', 'semantic', 'hybrid' or 'keyword'
        embed_fn: Optional embedding function (built from config if needed)
        logger: Optional logger

    Returns:
        tuple: (lexical_retriever or None, semantic_retriever or None)

    Raises:
        ValueError: If the method is unknown
    """
    if method not in METHODS:
        raise ValueError(f"Unknown retrieval method: {method}. Choose from {', '.join(METHODS)}")

    lexical = None
    semantic = None

    if method in ('bm25', 'hybrid'):
        lexical = BM25Retriever.from_config(documents, config)
    if method in ('semantic', 'hybrid'):
        semantic = SemanticRetriever.from_config(documents, config, embed_fn, logger)

    return lexical, semantic


def hybrid_search(question, documents, lexical, semantic, candidates=20, k=60):
    """
    Run BM25 and semantic search and merge them with RRF.

    Args:
        question: The search query
        documents: The document list both retrievers were built from
        lexical: A BM25Retriever
        semantic: A SemanticRetriever
        candidates: How deep each retriever searches before fusion
        k: RRF constant

    Returns:
        list: Result dictionaries (document, doc_index, score, rank), best first
    """
    bm25_results = lexical.search(question, top_k=candidates)
    semantic_results = semantic.search(question, top_k=candidates)

    fused = rrf_fuse(bm25_results, semantic_results, k=k)

    # Map the fused documents back to their position in the corpus
    positions = {}
    for i, document in enumerate(documents):
        positions.setdefault(document, i)

    return [
        {
            'document': item.document,
            'doc_index': positions[item.document],
            'score': item.score,
            'rank': item.rank,
        }
        for item in fused
    ]


def fusion_breakdown(question, lexical, semantic, candidates=20, k=60):
    """
    Show how the two rankings of a hybrid search combine.

    Returns:
        dict: {'bm25': [doc indices], 'semantic': [doc indices], 'fused': [doc indices]}
    """
    bm25_ranking = lexical.search_indexes(question, top_k=candidates)
    semantic_ranking = semantic.search_indexes(question, top_k=candidates)

    return {
        'bm25': bm25_ranking,
        'semantic': semantic_ranking,
        'fused': reciprocal_rank_fusion([bm25_ranking, semantic_ranking], k=k),
    }


def retrieve(question, documents, config, method=None, embed_fn=None,
             retrievers=None, logger=None):
    """
    Retrieve the top_k documents for a question without printing anything.

    This function:
    1. Builds (or reuses) the retrievers for the chosen method
    2. Retrieves a candidate pool (3x top_k when reranking is enabled)
    3. Optionally reranks the pool
    4. Returns the top_k results

    Args:
        question: The user's question
        documents: List of document strings to search
        config: Configuration dictionary
        method: 'bm25', 'semantic', 'hybrid' or 'keyword' (default: retrieval.method)
        embed_fn: Optional embedding function for semantic search and reranking
        retrievers: Optional (lexical, semantic) tuple from build_retrievers()
        logger: Optional logger

    Returns:
        list: Result dictionaries, each containing:
            - document: The document text
            - doc_index: Position of the document in the corpus
            - score: Retrieval score (keyword count, BM25, cosine or fused RRF score)
            - rank: 1-based position in the returned list
            - rerank_score: (if reranking enabled) reranker score

    Raises:
        ValueError: If the method is unknown
    """
    retrieval = config.get('retrieval', {})
    method = method or retrieval.get('method', 'hybrid')
    top_k = retrieval.get('top_k', 3)
    reranking_enabled = config.get('reranking', {}).get('enabled', False)

    if method not in METHODS:
        raise ValueError(f"Unknown retrieval method: {method}. Choose from {', '.join(METHODS)}")

    if embed_fn is None and uses_embeddings(method, config):
        embed_fn = create_embed_fn(config)

    if retrievers is None:
        retrievers = build_retrievers(documents, config, method, embed_fn, logger)
    lexical, semantic = retrievers

    # Get more candidates when a reranker will pick the best ones
    pool_size = top_k * 3 if reranking_enabled else top_k

    if method == 'keyword':
        results = [r.to_dict() for r in keyword_search(documents, question, top_k=pool_size)]
    elif method == 'bm25':
        results = [r.to_dict() for r in lexical.search(question, top_k=pool_size)]
    elif method == 'semantic':
        results = [r.to_dict() for r in semantic.search(question, top_k=pool_size)]
    else:
        candidates = max(retrieval.get('candidates', 20), pool_size)
        k = config.get('fusion', {}).get('k', 60)
        results = hybrid_search(question, documents, lexical, semantic, candidates, k)

    results = results[:pool_size]

    if reranking_enabled:
        results = rerank(question, results, config, embed_fn, logger)

    results = results[:top_k]
    for rank, result in enumerate(results, 1):
        result['rank'] = rank

    return results


def retrieve_with_details(question, documents, config, method=None, embed_fn=None, logger=None):
    """
    Retrieve, rerank and explain both steps.

    The candidate pool (3x top_k) is retrieved without reranking, then
    reranked with rerank_with_details so the rank changes can be shown.
    Hybrid searches also report the BM25, semantic and fused rankings.

    Returns:
        tuple: (top_k results, details dict with 'reranking' and optionally 'fusion')
    """
    method = method or config.get('retrieval', {}).get('method', 'hybrid')
    top_k = config.get('retrieval', {}).get('top_k', 3)

    # Reranking is always on here; the pool is fetched without it
    config = deep_merge(config, {'reranking': {'enabled': True}})
    if embed_fn is None and uses_embeddings(method, config):
        embed_fn = create_embed_fn(config)

    retrievers = build_retrievers(documents, config, method, embed_fn, logger)
    pool_config = deep_merge(config, {
        'retrieval': {'top_k': top_k * 3},
        'reranking': {'enabled': False},
    })
    candidates = retrieve(question, documents, pool_config, method, embed_fn, retrievers, logger)

    reranked, rerank_details = rerank_with_details(question, candidates, config, embed_fn, logger)
    details = {'reranking': rerank_details}

    if method == 'hybrid':
        lexical, semantic = retrievers
        details['fusion'] = fusion_breakdown(
            question, lexical, semantic,
            config['retrieval'].get('candidates', 20),
            config.get('fusion', {}).get('k', 60),
        )

    results = reranked[:top_k]
    for rank, result in enumerate(results, 1):
        result['rank'] = rank

    return results, details


def search(question, documents, config, method=None, logger=None,
           embed_fn=None, retrievers=None):
    """
    Main search function - retrieve and report the results.

    Same arguments and return value as retrieve(). Without a logger the
    results are printed (interactive mode); with one they are logged.
    """
    method = method or config.get('retrieval', {}).get('method', 'hybrid')

    if logger:
        logger.info(f"Searching ({method}) for: '{question}'")
    else:
        print(f"\n{'=' * 70}")
        print(f"Question: '{question}'  [method: {method}]")
        print('=' * 70)

    results = retrieve(question, documents, config, method, embed_fn, retrievers, logger)

    log(f"Retrieved {len(results)} documents", logger)

    if not logger:
        print_results(results)

    return results


def print_results(results):
    print(f"\nTop {len(results)} results:")
    print('-' * 70)

    for result in results:
        score_str = f"score: {result['score']:.4f}"
        if 'rerank_score' in result:
            score_str += f", rerank: {result['rerank_score']:.4f}"

        print(f"\n{result['rank']}. Doc {result['doc_index']} ({score_str})")
        print(f"   {result['document'][:200]}...")
