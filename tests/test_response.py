"""Tests for the chat helper and grounded answer generation."""

import pytest

from aitutorial.llm import chat, get_model
from aitutorial.response import SYSTEM_PROMPT, build_user_prompt, format_context, generate_answer


def test_chat_builds_request(fake_client):
    fake_client.replies = ["  hi there \n"]

    reply = chat(fake_client, "hello", "gpt-x", temperature=0.2, system="be brief",
                 max_tokens=50, json_mode=True)

    assert reply == "hi there"
    request = fake_client.calls[0]
    assert request['model'] == "gpt-x"
    assert request['messages'] == [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "hello"},
    ]
    assert request['temperature'] == 0.2
    assert request['max_completion_tokens'] == 50
    assert request['response_format'] == {"type": "json_object"}


def test_chat_empty_reply(fake_client):
    fake_client.replies = [None]
    assert chat(fake_client, "hello", "gpt-x") == ""
    assert 'temperature' not in fake_client.calls[0]


def test_get_model(config):
    config['llm']['model'] = 'gpt-demo'
    assert get_model(config) == 'gpt-demo'
    assert get_model({}) == 'gpt-4o-mini'


def test_format_context():
    assert format_context(["a", {'document': "b"}]) == "a\n\nb"
    assert format_context([]) == "No relevant context was found."


def test_build_user_prompt():
    assert build_user_prompt("Why?", "ctx") == "Context:\nctx\n\nQuestion: Why?"


def test_generate_answer_grounds_in_context(config, fake_client):
    fake_client.replies = ["RRF sums reciprocal ranks."]

    answer = generate_answer("What is RRF?", ["RRF merges rankings."], config, fake_client)

    assert answer == "RRF sums reciprocal ranks."
    request = fake_client.calls[0]
    assert request['messages'][0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert "RRF merges rankings." in request['messages'][1]['content']
    assert request['temperature'] == config['llm']['temperature']
    assert request['max_completion_tokens'] == config['llm']['max_tokens']


def test_generate_answer_propagates_errors(config):
    class BrokenClient:
        class chat:
            class completions:
                @staticmethod
                def create(**kwargs):
                    raise RuntimeError("service unavailable")

    with pytest.raises(RuntimeError, match="service unavailable"):
        generate_answer("q", ["d"], config, BrokenClient())
