# =============================================================================
# LLM Client Module
# =============================================================================
# Thin helpers around the OpenAI chat completions API that every
# demonstration shares: client creation, model selection and a single
# chat() call that returns the reply text.

from openai import OpenAI

from aitutorial.config import get_openai_api_key


def create_llm_client(config=None):
    """
    Create an OpenAI client for LLM calls.

    Args:
        config: Configuration dictionary (not used, but kept for consistency)

    Returns:
        OpenAI: An initialized OpenAI client

    Raises:
        ValueError: If no API key is configured
    """
    return OpenAI(api_key=get_openai_api_key())


def get_model(config):
    """Chat model from config['llm']['model'] (gpt-4o-mini by default)."""
    return config.get('llm', {}).get('model', 'gpt-4o-mini')


def chat(client, prompt, model, temperature=None, system=None, max_tokens=None,
         json_mode=False):
    """
    Send one user message (plus optional system message) and return the reply.

    Args:
        client: An OpenAI client (or anything with chat.completions.create)
        prompt: The user message
        model: Model name
        temperature: Optional sampling temperature
        system: Optional system message
        max_tokens: Optional limit on the reply length
        json_mode: Ask the API for a JSON object reply

    Returns:
        str: The stripped reply text ("" if the model returned nothing)
    """
    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    kwargs = {}
    if temperature is not None:
        kwargs['temperature'] = temperature
    if max_tokens is not None:
        kwargs['max_completion_tokens'] = max_tokens
    if json_mode:
        kwargs['response_format'] = {"type": "json_object"}

    response = client.chat.completions.create(model=model, messages=messages, **kwargs)

    content = response.choices[0].message.content
    return (content or "").strip()
