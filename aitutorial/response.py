# =============================================================================
# Response Generation Module
# =============================================================================
# This module turns retrieved documents into a grounded answer.
# It uses strict prompting so the LLM answers only from the provided context
# and says so when the context doesn't contain the answer.

from aitutorial.llm import chat, create_llm_client, get_model
from aitutorial.run_tracker import log


# =============================================================================
# System Prompt - keeps the model grounded in the retrieved context
# =============================================================================
SYSTEM_PROMPT = """You are a helpful assistant that answers questions using only the provided context.
If the context does not contain the answer, say that you don't know.
Do not use outside knowledge. Keep the answer concise."""


def format_context(documents):
    """
    Join retrieved documents into one context string.

    Args:
        documents: List of document strings (or result dicts with 'document')

    Returns:
        str: The documents separated by blank lines
    """
    if not documents:
        return "No relevant context was found."

    texts = [d['document'] if isinstance(d, dict) else d for d in documents]
    return "\n\n".join(texts)


def build_user_prompt(question, context):
    """
    Build the user message with context and question.

    Args:
        question: The user's question
        context: Formatted context from retrieved documents

    Returns:
        str: The complete user message
    """
    return f"Context:\n{context}\n\nQuestion: {question}"


def generate_answer(question, documents, config, client=None, system_prompt=None,
                    logger=None):
    """
    Generate an LLM answer grounded in the retrieved documents.

    Args:
        question: The user's question
        documents: Retrieved documents (strings or result dicts)
        config: Configuration dictionary with llm settings
        client: Optional OpenAI client (created from secrets if not given)
        system_prompt: Optional replacement for the default system prompt
        logger: Optional logger for tracking progress

    Returns:
        str: The LLM's answer
    """
    settings = config.get('llm', {})
    model = get_model(config)
    temperature = settings.get('temperature', 0)
    max_tokens = settings.get('max_tokens', 800)

    log(f"Generating answer using {model} (temp={temperature}) from {len(documents)} documents...", logger)

    client = client or create_llm_client(config)
    user_prompt = build_user_prompt(question, format_context(documents))

    try:
        answer = chat(
            client,
            user_prompt,
            model,
            temperature=temperature,
            system=system_prompt or SYSTEM_PROMPT,
            max_tokens=max_tokens,
        )
    except Exception as e:
        log(f"Error generating answer: {e}", logger, level='error')
        raise

    log("Answer generated successfully", logger)

    return answer
