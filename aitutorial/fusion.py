# =============================================================================
# Rank Fusion Module
# =============================================================================
# Reciprocal Rank Fusion (RRF) merges several ranked lists into one.
# A document gets 1 / (k + rank) from every list it appears in, so documents
# ranked well by several retrievers rise to the top. Only ranks are used,
# which means BM25 scores and cosine similarities never need to be compared.

from dataclasses import dataclass


@dataclass
class FusedResult:
    document: str
    score: float
    rank: int

    def to_dict(self):
        return {'document': self.document, 'score': self.score, 'rank': self.rank}


def _check_k(k):
    if k < 0:
        raise ValueError(f"RRF constant k must be >= 0, got {k}")


def rrf_fuse(*ranked_lists, k=60):
    """
    Fuse ranked result lists keyed by document text.

    Args:
        *ranked_lists: Lists of results with 'document' and 1-based 'rank'
                       (RankedResult objects or dicts)
        k: RRF constant; larger values flatten the difference between ranks

    Returns:
        list: FusedResult objects sorted by fused score. Ties keep the order
              in which the documents were first seen.

    Example:
        a = [RankedResult("x", 3.1, 1, 0), RankedResult("y", 2.0, 2, 1)]
        b = [RankedResult("y", 0.9, 1, 1)]
        rrf_fuse(a, b)[0].document -> "y"   # 1/62 + 1/61 beats 1/61
    """
    _check_k(k)
    scores = {}

    for ranked in ranked_lists:
        for item in ranked:
            document = item['document'] if isinstance(item, dict) else item.document
            rank = item['rank'] if isinstance(item, dict) else item.rank
            scores[document] = scores.get(document, 0.0) + 1.0 / (k + rank)

    # dicts keep insertion order, and sorted() is stable
    ordered = sorted(scores.items(), key=lambda pair: pair[1], reverse=True)

    return [
        FusedResult(document=document, score=score, rank=rank)
        for rank, (document, score) in enumerate(ordered, 1)
    ]


def reciprocal_rank_fusion(rankings, k=60):
    """
    Fuse rankings given as lists of document indices.

    The document at position p (0-based) of a ranking contributes 1 / (k + p + 1).

    Args:
        rankings: List of rankings, each a list of document indices
        k: RRF constant

    Returns:
        list: Document indices sorted by fused score
    """
    _check_k(k)
    scores = {}

    for ranking in rankings:
        for position, doc_index in enumerate(ranking):
            scores[doc_index] = scores.get(doc_index, 0.0) + 1.0 / (k + position + 1)

    return [doc_index for doc_index, _ in sorted(scores.items(), key=lambda pair: pair[1], reverse=True)]
