# =============================================================================
# MCP Server Module
# =============================================================================
# This module exposes tools over the Model Context Protocol (MCP), so any
# MCP-capable agent can discover and call them.
#
# Tools:
#   - get_weather      : mock weather for a location
#   - search_documents : BM25 search over the configured corpus
#
# Run with:  python main.py mcp-server  (stdio, or --transport streamable-http)

import json

from mcp.server.fastmcp import FastMCP

from aitutorial.agents import get_weather
from aitutorial.chunking import load_corpus, split_paragraphs
from aitutorial.lexical import BM25Retriever


TRANSPORTS = ('stdio', 'sse', 'streamable-http')


def search_corpus(retriever, query, top_k=3):
    """
    Run a BM25 search and format the hits as JSON text for the agent.

    Args:
        retriever: A BM25Retriever
        query: The search query
        top_k: Number of results

    Returns:
        str: JSON list of {'rank', 'score', 'doc_index', 'document'}
    """
    results = retriever.search(query, top_k=top_k)
    return json.dumps(
        [
            {'rank': r.rank, 'score': round(r.score, 4), 'doc_index': r.doc_index, 'document': r.document}
            for r in results
        ],
        indent=2,
    )


def build_server(config, documents=None):
    """
    Create the MCP server and register its tools.

    Args:
        config: Configuration dictionary ('mcp', 'paths', 'bm25' sections)
        documents: Optional documents to search (defaults to the corpus paragraphs)

    Returns:
        FastMCP: The server, ready to run
    """
    settings = config.get('mcp', {})
    server = FastMCP(settings.get('name', 'TutorialToolServer'))

    if documents is None:
        documents = split_paragraphs(load_corpus(config['paths']['corpus']))
    retriever = BM25Retriever.from_config(documents, config)

    @server.tool(name='get_weather')
    def weather_tool(location: str, units: str = 'celsius') -> str:
        """Get current weather conditions for a location. Use this when users ask about weather, temperature, or atmospheric conditions."""
        return get_weather(location, units)

    @server.tool(name='search_documents')
    def search_tool(query: str, top_k: int = 3) -> str:
        """Search the tutorial corpus with BM25 keyword search and return the best matching passages."""
        return search_corpus(retriever, query, top_k)

    return server


def run_server(config, transport=None):
    """
    Build the server and serve until interrupted.

    Args:
        config: Configuration dictionary
        transport: 'stdio', 'sse' or 'streamable-http' (default: mcp.transport)

    Raises:
        ValueError: If the transport is unknown
    """
    transport = transport or config.get('mcp', {}).get('transport', 'stdio')
    if transport not in TRANSPORTS:
        raise ValueError(f"Unknown MCP transport: {transport}. Choose from {', '.join(TRANSPORTS)}")

    server = build_server(config)
    server.run(transport=transport)
