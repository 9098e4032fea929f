# =============================================================================
# Semantic Retrieval Module
# =============================================================================
# This module handles vector search over a list of documents.
# Every document is embedded once and stored in a Qdrant collection; a query
# is embedded the same way and Qdrant returns the nearest documents by
# cosine similarity.
#
# By default Qdrant runs in-process (":memory:"), which is all the tutorials
# need. Point semantic.location at a folder to keep the collection on disk.

from qdrant_client import QdrantClient, models

from aitutorial.config import resolve_path
from aitutorial.embedding import create_embed_fn
from aitutorial.lexical import RankedResult


def create_qdrant_client(location=":memory:"):
    """
    Create a Qdrant client.

    Args:
        location: ":memory:" for an in-process database, otherwise a folder
                  path for local on-disk storage

    Returns:
        QdrantClient: The client
    """
    if location == ":memory:":
        return QdrantClient(location=":memory:")

    storage_path = resolve_path(location)
    storage_path.mkdir(parents=True, exist_ok=True)
    return QdrantClient(path=str(storage_path))


class SemanticRetriever:
    """
    Vector retriever backed by Qdrant.

    Args:
        documents: List of document strings
        embed_fn: Function mapping a list of strings to a list of vectors
        collection_name: Name of the Qdrant collection
        location: ":memory:" or a folder path
        top_k: Default number of results

    Raises:
        ValueError: If documents is empty
    """

    def __init__(self, documents, embed_fn, collection_name="tutorial_documents",
                 location=":memory:", top_k=5, logger=None):
        if not documents:
            raise ValueError("SemanticRetriever needs at least one document")

        self.documents = list(documents)
        self.embed_fn = embed_fn
        self.collection_name = collection_name
        self.top_k = top_k
        self.client = create_qdrant_client(location)

        self._index(logger)

    @classmethod
    def from_config(cls, documents, config, embed_fn=None, logger=None):
        """
        Build a retriever from the 'semantic' and 'embedding' config sections.

        Args:
            documents: List of document strings
            config: Configuration dictionary
            embed_fn: Optional embedding function (built from config if not given)
            logger: Optional logger for tracking progress

        Returns:
            SemanticRetriever: The ready-to-search retriever
        """
        settings = config.get('semantic', {})
        return cls(
            documents,
            embed_fn or create_embed_fn(config),
            collection_name=settings.get('collection_name', 'tutorial_documents'),
            location=settings.get('location', ':memory:'),
            top_k=config.get('retrieval', {}).get('top_k', 5),
            logger=logger,
        )

    def _index(self, logger=None):
        """Embed all documents and upload them as points."""
        message = f"Embedding {len(self.documents)} documents for semantic search..."
        if logger:
            logger.info(message)
        else:
            print(message)

        vectors = self.embed_fn(self.documents)

        # Start from an empty collection so re-runs don't mix old documents in
        if self.client.collection_exists(self.collection_name):
            self.client.delete_collection(self.collection_name)

        self.client.create_collection(
            collection_name=self.collection_name,
            vectors_config=models.VectorParams(
                size=len(vectors[0]),
                distance=models.Distance.COSINE,
            ),
        )

        points = [
            models.PointStruct(
                id=i,
                vector=list(vector),
                payload={'document': document, 'doc_index': i},
            )
            for i, (document, vector) in enumerate(zip(self.documents, vectors))
        ]

        self.client.upload_points(collection_name=self.collection_name, points=points)

        message = f"Indexed {len(points)} documents in collection '{self.collection_name}'"
        if logger:
            logger.info(message)
        else:
            print(message)

    def search(self, query, top_k=None):
        """
        Find the documents most similar to the query.

        Args:
            query: The search query
            top_k: Number of results (defaults to the retriever's top_k)

        Returns:
            list: RankedResult objects, best first (score = cosine similarity)
        """
        limit = self.top_k if top_k is None else top_k
        query_vector = self.embed_fn([query])[0]

        hits = self.client.query_points(
            collection_name=self.collection_name,
            query=list(query_vector),
            limit=limit,
        ).points

        return [
            RankedResult(
                document=hit.payload['document'],
                score=hit.score,
                rank=rank,
                doc_index=hit.payload['doc_index'],
            )
            for rank, hit in enumerate(hits, 1)
        ]

    def search_indexes(self, query, top_k=None):
        """Same as search() but only returns document indices."""
        return [result.doc_index for result in self.search(query, top_k)]

    def close(self):
        self.client.close()
