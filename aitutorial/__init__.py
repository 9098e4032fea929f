# =============================================================================
# LLM Application Tutorial - Source Package
# =============================================================================
# This package contains the modules behind every demonstration:
#   - config.py      : Configuration loading and merging
#   - run_tracker.py : Track experiments in ./runs folder
#   - chunking.py    : Split documents into chunks (several strategies)
#   - lexical.py     : BM25 and keyword search
#   - embedding.py   : Embeddings with OpenAI or sentence-transformers
#   - semantic.py    : Vector search in an in-memory Qdrant collection
#   - fusion.py      : Reciprocal Rank Fusion of ranked lists
#   - reranking.py   : Rerank candidates with a cross-encoder or embeddings
#   - retrieval.py   : One entry point for bm25 / semantic / hybrid search
#   - llm.py         : OpenAI chat helpers
#   - response.py    : Generate answers from retrieved context
#   - rag.py         : Simple, iterative, agentic and needle-in-haystack RAG
#   - graph_rag.py   : Knowledge graph guided retrieval
#   - prompting.py   : Prompt engineering techniques
#   - structured.py  : Parse and validate JSON / XML / text model output
#   - agents.py      : Tool-calling agent loop
#   - mcp_server.py  : Expose tools over the Model Context Protocol
#   - evaluation.py  : Retrieval metrics, LLM judges and monitoring
