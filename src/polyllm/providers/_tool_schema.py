# src/polyllm/providers/_tool_schema.py

"""Internal module for converting Tool declarations to provider-specific schemas.

This is infrastructure, not behavior. Pure data transformation.
"""

from collections.abc import Sequence

from polyllm.tools.tool import Tool


def tools_to_openai_schema(tools: Sequence[Tool]) -> list[dict]:
    """Convert Tool declarations to OpenAI function calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters(),
            },
        }
        for tool in tools
    ]


def tools_to_anthropic_schema(tools: Sequence[Tool]) -> list[dict]:
    """Convert Tool declarations to Anthropic tool use format."""
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "input_schema": tool.parameters(),
        }
        for tool in tools
    ]
