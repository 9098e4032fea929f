"""Tests for the tool-calling agent loop."""

import json

import pytest

from conftest import make_tool_call

from aitutorial.agents import (
    WEATHER_TOOL,
    Tool,
    execute_tool_call,
    get_weather,
    openai_tool_spec,
    run_tool_agent,
)


def test_get_weather_returns_json():
    data = json.loads(get_weather("Oslo", units="fahrenheit"))

    assert data['city'] == "Oslo"
    assert data['units'] == "fahrenheit"
    assert data['condition'] == "Sunny"
    assert 'timestamp' in data


def test_get_weather_rejects_unknown_units():
    with pytest.raises(ValueError):
        get_weather("Oslo", units="rankine")


def test_openai_tool_spec():
    spec = openai_tool_spec(WEATHER_TOOL)

    assert spec['type'] == 'function'
    assert spec['function']['name'] == 'get_weather'
    assert spec['function']['parameters']['required'] == ['city']


class TestExecuteToolCall:

    def test_runs_the_handler(self):
        result = execute_tool_call(make_tool_call('get_weather', {'city': 'Lima'}), {'get_weather': WEATHER_TOOL})
        assert json.loads(result)['city'] == 'Lima'

    def test_unknown_tool(self):
        result = execute_tool_call(make_tool_call('launch_rocket', {}), {})
        assert json.loads(result) == {'error': "Unknown tool: launch_rocket"}

    def test_bad_arguments_are_reported(self):
        result = execute_tool_call(make_tool_call('get_weather', '{broken'), {'get_weather': WEATHER_TOOL})
        assert 'error' in json.loads(result)

    def test_handler_errors_are_reported(self):
        call = make_tool_call('get_weather', {'city': 'Lima', 'units': 'rankine'})
        result = execute_tool_call(call, {'get_weather': WEATHER_TOOL})
        assert "Unknown units" in json.loads(result)['error']


class TestRunToolAgent:

    def test_answers_directly_without_tools(self, fake_client):
        fake_client.replies = ["Hello!"]

        result = run_tool_agent(fake_client, "hi", [WEATHER_TOOL], "gpt-x")

        assert result == {'answer': "Hello!", 'tool_calls': [], 'steps': 1}
        assert fake_client.calls[0]['tools'][0]['function']['name'] == 'get_weather'

    def test_tool_round_trip(self, fake_client):
        fake_client.replies = [
            [make_tool_call('get_weather', {'city': 'Paris'}, call_id='call_7')],
            "It is sunny in Paris.",
        ]

        result = run_tool_agent(fake_client, "Weather in Paris?", [WEATHER_TOOL], "gpt-x",
                                system="be helpful")

        assert result['answer'] == "It is sunny in Paris."
        assert result['steps'] == 2
        assert result['tool_calls'][0]['name'] == 'get_weather'

        messages = fake_client.calls[1]['messages']
        assert [m['role'] for m in messages] == ['system', 'user', 'assistant', 'tool']
        assert messages[2]['tool_calls'][0]['id'] == 'call_7'
        assert messages[3]['tool_call_id'] == 'call_7'
        assert json.loads(messages[3]['content'])['city'] == 'Paris'

    def test_custom_tool(self, fake_client):
        adder = Tool(
            name='add',
            description='Add two numbers',
            parameters={'type': 'object', 'properties': {'a': {'type': 'number'}, 'b': {'type': 'number'}}},
            handler=lambda a, b: str(a + b),
        )
        fake_client.replies = [[make_tool_call('add', {'a': 2, 'b': 3})], "5"]

        result = run_tool_agent(fake_client, "2+3?", [adder], "gpt-x")

        assert result['tool_calls'][0]['result'] == "5"

    def test_step_limit(self, fake_client):
        fake_client.replies = [[make_tool_call('get_weather', {'city': 'Rome'})]]

        with pytest.raises(RuntimeError, match="did not finish within 3 steps"):
            run_tool_agent(fake_client, "loop forever", [WEATHER_TOOL], "gpt-x", max_steps=3)

        assert len(fake_client.calls) == 3
