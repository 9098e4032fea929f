# =============================================================================
# RAG Strategies Module
# =============================================================================
# This module contains the retrieval-augmented generation patterns:
#   - SimpleRAG       : retrieve top documents, answer from them
#   - IterativeRAG    : refine a vague query with the LLM until results are good
#   - AgenticRAG      : let the LLM analyse the query and pick filters first
#   - needle_in_haystack_search : keyword-filter chunks to find one specific fact
#   - hierarchical_summary      : map-reduce summary of a long document
#
# Any retriever with search(query, top_k) returning RankedResult objects works
# here: BM25Retriever and SemanticRetriever both qualify.

import json

from aitutorial.llm import chat, get_model
from aitutorial.response import build_user_prompt, format_context, generate_answer
from aitutorial.run_tracker import log
from aitutorial.semantic import SemanticRetriever


NO_INFORMATION = "No information found."
NEEDLE_NOT_FOUND = "I couldn't find any relevant information in the documents."


def chunk_contents(chunks):
    """Chunk texts from a chunk_text() result; structure_aware chunks are dicts."""
    return [c['content'] if isinstance(c, dict) else c for c in chunks]


# =============================================================================
# Simple RAG
# =============================================================================

class SimpleRAG:
    """
    The basic pipeline: retrieve, show the context, generate.

    Args:
        retriever: Optional retriever; call index() to build one from documents
        client: OpenAI client used for generation
        config: Configuration dictionary
        logger: Optional logger
    """

    def __init__(self, retriever=None, client=None, config=None, logger=None):
        self.retriever = retriever
        self.client = client
        self.config = config or {}
        self.logger = logger

    def index(self, documents, embed_fn=None):
        """Build a semantic retriever over the documents."""
        self.retriever = SemanticRetriever.from_config(documents, self.config, embed_fn, self.logger)
        return self.retriever

    def query(self, question, top_k=3):
        """
        Answer a question from the top_k retrieved documents.

        Args:
            question: The user's question
            top_k: Number of documents used as context

        Returns:
            dict: {'answer': str, 'documents': list of retrieved texts}

        Raises:
            RuntimeError: If no retriever has been set up
        """
        if self.retriever is None:
            raise RuntimeError("RAG system not initialized")

        results = self.retriever.search(question, top_k=top_k)
        documents = [r.document for r in results]

        for r in results:
            log(f"  [{r.rank}] (score {r.score:.3f}) {r.document[:100]}", self.logger)

        answer = generate_answer(question, documents, self.config, self.client, logger=self.logger)

        return {'answer': answer, 'documents': documents}


# =============================================================================
# Iterative RAG
# =============================================================================

class IterativeRAG:
    """
    Retrieve, judge the results, and refine the query when they look weak.

    A search whose best score exceeds score_threshold ends the loop early.
    Otherwise the LLM rewrites the query using the original question and the
    first documents found, and we search again (up to max_iterations).

    Args:
        retriever: A retriever with search(query, top_k)
        client: OpenAI client
        config: Configuration dictionary ('iterative' section is used for defaults)
        max_iterations: Maximum number of searches
        score_threshold: Similarity above which results are good enough
        logger: Optional logger
    """

    def __init__(self, retriever, client, config=None, max_iterations=None,
                 score_threshold=None, logger=None):
        self.retriever = retriever
        self.client = client
        self.config = config or {}
        settings = self.config.get('iterative', {})
        self.max_iterations = max_iterations or settings.get('max_iterations', 2)
        self.score_threshold = score_threshold if score_threshold is not None else settings.get('score_threshold', 0.88)
        self.refine_model = settings.get('refine_model', 'gpt-4o-mini')
        self.logger = logger

    def refine_query(self, original_query, retrieved_docs):
        """
        Ask the LLM for a more specific query.

        Args:
            original_query: The user's original question
            retrieved_docs: Documents from the last search (first two are shown)

        Returns:
            str: The refined query (the original one if the LLM returned nothing)
        """
        doc_lines = "\n".join(f"- {doc}" for doc in retrieved_docs[:2])
        prompt = f"""Original query: {original_query}

Initial search returned these documents:
{doc_lines}

The documents might provide clues. Generate a refined,
more specific query to find more details.

Refined query:"""

        refined = chat(self.client, prompt, self.refine_model, temperature=0.3, max_tokens=100)
        return refined or original_query

    def query(self, question):
        """
        Run the iterative retrieval loop and answer the question.

        Returns:
            dict: {'answer', 'iterations', 'final_query', 'documents'}
        """
        current_query = question
        all_docs = []
        iterations = 0

        for iteration in range(self.max_iterations):
            iterations = iteration + 1
            log(f"[Iteration {iterations}] Searching for: \"{current_query}\"", self.logger)

            results = self.retriever.search(current_query, top_k=3)
            docs = [r.document for r in results]
            all_docs.extend(docs)

            if results and results[0].score > self.score_threshold:
                log("  -> Found high confidence match, stopping.", self.logger)
                break

            if iteration < self.max_iterations - 1:
                log("  -> Results insufficient, refining query...", self.logger)
                current_query = self.refine_query(question, docs).replace('"', '').strip()
                log(f"  -> Refined to: '{current_query}'", self.logger)

        # Keep the first occurrence of every document
        unique_docs = list(dict.fromkeys(all_docs))

        answer = chat(
            self.client,
            build_user_prompt(question, format_context(unique_docs)),
            get_model(self.config),
        )

        return {
            'answer': answer,
            'iterations': iterations,
            'final_query': current_query,
            'documents': unique_docs,
        }


# =============================================================================
# Agentic RAG
# =============================================================================

ANALYSIS_PROMPT = """Analyze this query and determine the best retrieval strategy:
Query: {question}

Respond in JSON:
{{
    "query_type": "factual | conceptual | multi_hop | temporal",
    "key_entities": ["str"],
    "time_range": "optional year like 2025",
    "search_strategy": "keyword | semantic",
    "metadata_filters": {{"key": "value"}},
    "reasoning": "brief explanation"
}}"""


class AgenticRAG:
    """
    Let the LLM decide how to search before retrieving.

    The LLM returns a JSON analysis of the question (entities, time range,
    metadata filters). We search with the entities and then apply the
    filters as simple text matches on the retrieved documents.

    Args:
        retriever: A retriever with search(query, top_k)
        client: OpenAI client
        config: Configuration dictionary
        logger: Optional logger
    """

    def __init__(self, retriever, client, config=None, logger=None):
        self.retriever = retriever
        self.client = client
        self.config = config or {}
        self.logger = logger

    def analyze_query(self, question):
        """
        Ask the LLM for a retrieval plan.

        Returns:
            dict: The parsed analysis ({} if the model returned nothing)

        Raises:
            json.JSONDecodeError: If the model reply isn't valid JSON
        """
        reply = chat(
            self.client,
            ANALYSIS_PROMPT.format(question=question),
            get_model(self.config),
            json_mode=True,
        )
        return json.loads(reply or "{}")

    def apply_filters(self, documents, analysis):
        """Keep only documents matching the time range and metadata filter values."""
        time_range = analysis.get('time_range')
        if time_range:
            log(f"  -> Applying temporal filter: {time_range}", self.logger)
            documents = [d for d in documents if str(time_range) in d]

        for key, value in (analysis.get('metadata_filters') or {}).items():
            log(f"  -> Applying metadata filter: {key} = {value}", self.logger)
            documents = [d for d in documents if str(value).lower() in d.lower()]

        return documents

    def query(self, question):
        """
        Analyse, retrieve, filter and answer.

        Returns:
            dict: {'answer', 'analysis', 'documents'}; the answer is
                  "No information found." when filtering leaves nothing
        """
        analysis = self.analyze_query(question)
        log(f"  -> Analysis: {analysis.get('reasoning', '')}", self.logger)

        entities = analysis.get('key_entities') or []
        search_query = " ".join(entities) if entities else question
        log(f"  -> Search query: \"{search_query}\"", self.logger)

        results = self.retriever.search(search_query, top_k=10)
        documents = self.apply_filters([r.document for r in results], analysis)

        if not documents:
            log("  -> No matching documents found after filtering.", self.logger)
            return {'answer': NO_INFORMATION, 'analysis': analysis, 'documents': []}

        answer = chat(
            self.client,
            build_user_prompt(question, format_context(documents[:3])),
            get_model(self.config),
        )

        return {'answer': answer, 'analysis': analysis, 'documents': documents[:3]}


# =============================================================================
# Needle in a haystack
# =============================================================================

def needle_in_haystack_search(chunks, query, client, config, keywords=None, logger=None):
    """
    Find one specific fact in a long document.

    Chunks are filtered by keyword before anything is sent to the LLM, so
    only the few chunks likely to contain the "needle" are used as context.

    Args:
        chunks: List of chunk strings (or structure_aware chunk dicts)
        query: The question
        client: OpenAI client
        config: Configuration dictionary
        keywords: Words to look for (defaults to query words longer than 3 characters)
        logger: Optional logger

    Returns:
        str: The answer, or a fixed message when no chunk matches
    """
    if keywords is None:
        keywords = [word for word in query.lower().split() if len(word) > 3]
    keywords = [k.lower() for k in keywords]

    texts = chunk_contents(chunks)
    relevant = [c for c in texts if any(k in c.lower() for k in keywords)][:3]

    log(f"Keyword filter kept {len(relevant)} of {len(chunks)} chunks", logger)

    if not relevant:
        return NEEDLE_NOT_FOUND

    return generate_answer(query, relevant, config, client, logger=logger)


# =============================================================================
# Hierarchical (map-reduce) summary
# =============================================================================

MAP_SYSTEM_PROMPT = "Summarize this section concisely."
REDUCE_SYSTEM_PROMPT = "Create a {summary_type} summary from these section summaries."


def hierarchical_summary(chunks, client, config, summary_type=None, logger=None):
    """
    Summarise a document too long for one prompt.

    Map: every chunk is summarised on its own with a cheap model.
    Reduce: the chunk summaries are combined into one summary by a stronger model.

    Args:
        chunks: List of chunk strings (or structure_aware chunk dicts)
        client: OpenAI client
        config: Configuration dictionary ('summary' section)
        summary_type: e.g. "comprehensive" or "executive" (default: summary.summary_type)
        logger: Optional logger

    Returns:
        dict: {'summary': str, 'chunk_summaries': list of str}

    Raises:
        ValueError: If there are no chunks
    """
    texts = [text for text in chunk_contents(chunks) if text.strip()]
    if not texts:
        raise ValueError("Nothing to summarize: no chunks given")

    settings = config.get('summary', {})
    summary_type = summary_type or settings.get('summary_type', 'comprehensive')

    log(f"Phase 1: Summarizing {len(texts)} chunks...", logger)
    chunk_summaries = []
    for i, text in enumerate(texts, 1):
        summary = chat(
            client,
            text,
            settings.get('map_model', 'gpt-4o-mini'),
            system=MAP_SYSTEM_PROMPT,
            max_tokens=settings.get('map_max_tokens', 150),
        )
        log(f"  - Chunk {i} summarized.", logger)
        chunk_summaries.append(summary)

    log("Phase 2: Combining summaries...", logger)
    final = chat(
        client,
        "\n\n".join(chunk_summaries),
        settings.get('reduce_model', 'gpt-4o'),
        system=REDUCE_SYSTEM_PROMPT.format(summary_type=summary_type),
        max_tokens=settings.get('reduce_max_tokens', 500),
    )

    return {'summary': final, 'chunk_summaries': chunk_summaries}
