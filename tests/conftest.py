"""
Pytest configuration and fixtures.

Nothing here talks to the network: the OpenAI client is replaced by a fake
that replays scripted replies, and embeddings come from a deterministic
bag-of-words function.
"""

import json
import re
import zlib
from types import SimpleNamespace

import fitz
import pytest

from aitutorial.config import load_config


EMBEDDING_DIM = 256


def bag_of_words_embed(texts):
    """Hash every word into a fixed-size count vector (plus a constant bias so no vector is zero)."""
    vectors = []
    for text in texts:
        vector = [0.0] * (EMBEDDING_DIM + 1)
        vector[EMBEDDING_DIM] = 0.1
        for word in re.findall(r'\w+', text.lower()):
            vector[zlib.crc32(word.encode('utf-8')) % EMBEDDING_DIM] += 1.0
        vectors.append(vector)
    return vectors


def make_pdf(path, pages):
    """Write a PDF with one page per list of text lines (an empty list gives a blank, scanned-looking page)."""
    document = fitz.open()
    for lines in pages:
        page = document.new_page()
        for i, line in enumerate(lines):
            page.insert_text((72, 72 + 16 * i), line, fontsize=11)
    document.save(str(path))
    document.close()
    return path


def make_tool_call(name, arguments, call_id='call_1'):
    """A tool call object shaped like the ones in an OpenAI chat completion."""
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return SimpleNamespace(
        id=call_id,
        type='function',
        function=SimpleNamespace(name=name, arguments=arguments),
    )


class FakeOpenAI:
    """
    Stand-in for openai.OpenAI.

    replies: strings (message content), lists of tool calls, or callables
             taking the request kwargs and returning either of those.
             They are used in order; the last one repeats once exhausted.
    usages:  optional usage objects attached to successive chat responses
             (None once exhausted).
    """

    def __init__(self, replies=None):
        self.replies = list(replies or [''])
        self.usages = []
        self.calls = []
        self.embedding_calls = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create_chat))
        self.embeddings = SimpleNamespace(create=self._create_embeddings)

    def _next_reply(self, kwargs):
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if callable(reply):
            reply = reply(kwargs)
        return reply

    def _create_chat(self, **kwargs):
        self.calls.append(kwargs)
        reply = self._next_reply(kwargs)

        if isinstance(reply, list):
            message = SimpleNamespace(content=None, tool_calls=reply)
        else:
            message = SimpleNamespace(content=reply, tool_calls=None)

        usage = self.usages.pop(0) if self.usages else None
        return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage)

    def _create_embeddings(self, input, model):
        self.embedding_calls.append({'input': input, 'model': model})
        texts = [input] if isinstance(input, str) else list(input)
        vectors = bag_of_words_embed(texts)
        # Returned out of order on purpose: callers must sort by index
        data = [SimpleNamespace(embedding=v, index=i) for i, v in enumerate(vectors)]
        return SimpleNamespace(data=list(reversed(data)))

    def prompts(self):
        """The user message of every chat request, in order."""
        return [call['messages'][-1]['content'] for call in self.calls]


@pytest.fixture
def fake_client():
    return FakeOpenAI()


@pytest.fixture
def embed_fn():
    return bag_of_words_embed


@pytest.fixture
def config():
    """The base configuration with no user file or overrides."""
    return load_config()


@pytest.fixture
def documents():
    return [
        "BM25 ranks documents by keyword frequency with inverse document frequency weighting.",
        "Semantic search compares dense embedding vectors with cosine similarity.",
        "Reciprocal rank fusion merges keyword and semantic rankings into one list.",
        "A cross-encoder reranker reads the query and document together.",
        "Chunking splits long documents into smaller passages before indexing.",
    ]
