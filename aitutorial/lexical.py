# =============================================================================
# Lexical Retrieval Module (BM25)
# =============================================================================
# This module implements keyword search with the Okapi BM25 ranking function.
# BM25 rewards documents that contain the query terms often, penalises very
# common terms (IDF) and normalises for document length.
#
# It also contains the naive substring-counting scorer that the hybrid search
# demonstration uses as a point of comparison.

import math
import re
from collections import Counter
from dataclasses import dataclass


@dataclass
class RankedResult:
    """One ranked hit from a retriever. Ranks start at 1."""
    document: str
    score: float
    rank: int
    doc_index: int

    def to_dict(self):
        return {
            'document': self.document,
            'doc_index': self.doc_index,
            'score': self.score,
            'rank': self.rank,
        }


def tokenize(text):
    """
    Lower-case, remove punctuation and split on whitespace.

    Args:
        text: The text to tokenize

    Returns:
        list: The tokens

    Example:
        tokenize("Hello, World!") -> ['hello', 'world']
    """
    cleaned = re.sub(r'[^\w\s]', '', text.lower())
    return [token for token in cleaned.split() if token]


def rank_scores(documents, scores, top_k):
    """
    Turn per-document scores into RankedResult objects.

    Sorting is stable, so documents with equal scores keep their original order.
    """
    order = sorted(range(len(documents)), key=lambda i: scores[i], reverse=True)
    return [
        RankedResult(document=documents[i], score=scores[i], rank=rank, doc_index=i)
        for rank, i in enumerate(order[:top_k], 1)
    ]


class BM25Retriever:
    """
    In-memory BM25 index over a list of documents.

    Args:
        documents: List of document strings
        k1: Term-frequency saturation (default 1.5)
        b: Length normalisation strength (default 0.75)
        top_k: Default number of results returned by search()

    Raises:
        ValueError: If documents is empty
    """

    def __init__(self, documents, k1=1.5, b=0.75, top_k=5):
        if not documents:
            raise ValueError("BM25Retriever needs at least one document")

        self.documents = list(documents)
        self.k1 = k1
        self.b = b
        self.top_k = top_k

        self.doc_tokens = [tokenize(doc) for doc in self.documents]
        self.term_freqs = [Counter(tokens) for tokens in self.doc_tokens]
        self.doc_lengths = [len(tokens) for tokens in self.doc_tokens]
        self.avgdl = sum(self.doc_lengths) / len(self.documents)

        # Number of documents containing each term
        self.doc_freqs = Counter()
        for freqs in self.term_freqs:
            self.doc_freqs.update(freqs.keys())

    @classmethod
    def from_config(cls, documents, config):
        settings = config.get('bm25', {})
        return cls(
            documents,
            k1=settings.get('k1', 1.5),
            b=settings.get('b', 0.75),
            top_k=config.get('retrieval', {}).get('top_k', 5),
        )

    def idf(self, term):
        """Inverse document frequency: ln((N - n + 0.5) / (n + 0.5) + 1)."""
        n = self.doc_freqs.get(term, 0)
        total = len(self.documents)
        return math.log((total - n + 0.5) / (n + 0.5) + 1)

    def get_scores(self, query):
        """
        Score every document against the query.

        Args:
            query: The search query

        Returns:
            list: One BM25 score per document, in document order
        """
        query_tokens = tokenize(query)
        scores = [0.0] * len(self.documents)

        # Every document is empty, nothing can match
        if self.avgdl == 0:
            return scores

        for term in query_tokens:
            if term not in self.doc_freqs:
                continue

            idf = self.idf(term)
            for i, freqs in enumerate(self.term_freqs):
                tf = freqs.get(term, 0)
                if tf == 0:
                    continue
                norm = 1 - self.b + self.b * self.doc_lengths[i] / self.avgdl
                scores[i] += idf * tf * (self.k1 + 1) / (tf + self.k1 * norm)

        return scores

    def search(self, query, top_k=None):
        """
        Rank documents for a query.

        Args:
            query: The search query
            top_k: Number of results (defaults to the retriever's top_k)

        Returns:
            list: RankedResult objects, best first
        """
        limit = self.top_k if top_k is None else top_k
        return rank_scores(self.documents, self.get_scores(query), limit)

    def search_indexes(self, query, top_k=None):
        """Same as search() but only returns document indices."""
        return [result.doc_index for result in self.search(query, top_k)]


def keyword_search(documents, query, top_k=5):
    """
    Naive keyword scorer: counts document words containing each query word.

    This is deliberately simple and is only used to contrast with BM25 and
    semantic search.

    Args:
        documents: List of document strings
        query: The search query
        top_k: Number of results

    Returns:
        list: RankedResult objects, best first
    """
    query_terms = query.lower().split()
    scores = []

    for doc in documents:
        doc_terms = doc.lower().split()
        score = 0
        for term in query_terms:
            score += sum(1 for word in doc_terms if term in word)
        scores.append(score)

    return rank_scores(documents, scores, top_k)
