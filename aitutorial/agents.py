# =============================================================================
# Agents Module
# =============================================================================
# This module shows the basic agent loop with OpenAI tool calling:
#   1. The user asks a question
#   2. The model decides whether it needs a tool
#   3. We run the tool and send the result back
#   4. Repeat until the model answers without asking for a tool
#
# Tools are plain Python functions described with a JSON schema.

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from aitutorial.run_tracker import log


@dataclass
class Tool:
    """A function the model may call."""
    name: str
    description: str
    parameters: dict
    handler: Callable[..., str]


def openai_tool_spec(tool):
    """The tool in the format expected by the chat completions 'tools' argument."""
    return {
        'type': 'function',
        'function': {
            'name': tool.name,
            'description': tool.description,
            'parameters': tool.parameters,
        },
    }


# =============================================================================
# Demo tool
# =============================================================================

TEMPERATURE_UNITS = ('celsius', 'fahrenheit', 'kelvin')


def get_weather(city, units="celsius"):
    """
    Mock weather lookup. Always sunny, the point is the tool-calling loop.

    Args:
        city: City name
        units: celsius, fahrenheit or kelvin

    Returns:
        str: JSON with city, temperature, condition, humidity, units, timestamp

    Raises:
        ValueError: If the units are unknown
    """
    if units not in TEMPERATURE_UNITS:
        raise ValueError(f"Unknown units: {units}. Choose from {', '.join(TEMPERATURE_UNITS)}")

    return json.dumps({
        'city': city,
        'temperature': 72,
        'condition': 'Sunny',
        'humidity': 45,
        'units': units,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })


WEATHER_TOOL = Tool(
    name='get_weather',
    description='Get current weather for a city. Use this when user asks about weather.',
    parameters={
        'type': 'object',
        'properties': {
            'city': {'type': 'string', 'description': "City name, e.g. 'San Francisco'"},
            'units': {
                'type': 'string',
                'enum': list(TEMPERATURE_UNITS),
                'description': "Temperature units, defaults to 'celsius'",
            },
        },
        'required': ['city'],
    },
    handler=get_weather,
)


# =============================================================================
# Agent loop
# =============================================================================

def execute_tool_call(tool_call, tools_by_name, logger=None):
    """
    Run one tool call requested by the model.

    Unknown tools, bad arguments and tool errors are reported back to the
    model as a JSON error payload instead of stopping the agent.

    Returns:
        str: The tool result (or error payload) as text
    """
    name = tool_call.function.name
    tool = tools_by_name.get(name)
    if tool is None:
        log(f"  -> Model asked for unknown tool '{name}'", logger, level='warning')
        return json.dumps({'error': f"Unknown tool: {name}"})

    try:
        arguments = json.loads(tool_call.function.arguments or '{}')
        log(f"  -> Tool called: {name}({arguments})", logger)
        return tool.handler(**arguments)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        log(f"  -> Tool {name} failed: {e}", logger, level='warning')
        return json.dumps({'error': str(e)})


def run_tool_agent(client, query, tools, model, max_steps=5, system=None, logger=None):
    """
    Let the model call tools until it produces a final answer.

    Args:
        client: OpenAI client
        query: The user's question
        tools: List of Tool objects
        model: Model name
        max_steps: Maximum number of model calls
        system: Optional system message
        logger: Optional logger

    Returns:
        dict: {'answer', 'tool_calls': [{'name', 'arguments', 'result'}], 'steps'}

    Raises:
        RuntimeError: If the model still wants tools after max_steps calls
    """
    tools_by_name = {tool.name: tool for tool in tools}
    tool_specs = [openai_tool_spec(tool) for tool in tools]

    messages = []
    if system:
        messages.append({'role': 'system', 'content': system})
    messages.append({'role': 'user', 'content': query})

    calls_made = []

    for step in range(1, max_steps + 1):
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            tools=tool_specs,
        )
        message = response.choices[0].message

        if not message.tool_calls:
            return {
                'answer': (message.content or '').strip(),
                'tool_calls': calls_made,
                'steps': step,
            }

        log(f"Step {step}: model requested {len(message.tool_calls)} tool call(s)", logger)

        messages.append({
            'role': 'assistant',
            'content': message.content,
            'tool_calls': [
                {
                    'id': tc.id,
                    'type': 'function',
                    'function': {'name': tc.function.name, 'arguments': tc.function.arguments},
                }
                for tc in message.tool_calls
            ],
        })

        for tool_call in message.tool_calls:
            result = execute_tool_call(tool_call, tools_by_name, logger)
            calls_made.append({
                'name': tool_call.function.name,
                'arguments': tool_call.function.arguments,
                'result': result,
            })
            messages.append({'role': 'tool', 'tool_call_id': tool_call.id, 'content': result})

    raise RuntimeError(f"Agent did not finish within {max_steps} steps")
