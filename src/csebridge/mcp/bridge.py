"""
Bridge between the CSE tool server and LangChain.

Wraps every tool the server advertises as a LangChain StructuredTool, so
an agent can trade on CSE data without knowing about the stdio protocol.
"""

from __future__ import annotations

import json
from typing import Any, Literal, Optional

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field, create_model

from .client import ExchangeToolClient

JSON_TYPES: dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
}


def _field_type(info: dict) -> Any:
    if info.get("enum"):
        return Literal[tuple(info["enum"])]
    return JSON_TYPES.get(info.get("type"), Any)


def args_model(schema: dict) -> type[BaseModel]:
    """Build the pydantic arguments model LangChain validates tool input with."""
    input_schema = schema.get("inputSchema", {})
    required = set(input_schema.get("required", []))

    fields: dict[str, Any] = {}
    for pname, pinfo in input_schema.get("properties", {}).items():
        ptype = _field_type(pinfo)
        description = pinfo.get("description", "")
        if pname in required:
            fields[pname] = (ptype, Field(..., description=description))
        else:
            fields[pname] = (Optional[ptype], Field(None, description=description))

    model_name = "".join(part.title() for part in schema["name"].split("_")) + "Args"
    return create_model(model_name, **fields)


def describe_tool(schema: dict) -> str:
    """Render a tool schema as prompt instructions."""
    name = schema.get("name", "unknown")
    description = schema.get("description", "")
    parameters = schema.get("inputSchema", {})
    properties = parameters.get("properties", {})
    required = set(parameters.get("required", []))

    lines = [f"## Tool: {name}", description, ""]
    if properties:
        lines.append("Parameters:")
        for pname, pinfo in properties.items():
            ptype = pinfo.get("type", "any")
            flag = "required" if pname in required else "optional"
            lines.append(f"  - {pname} ({ptype}, {flag}): {pinfo.get('description', '')}")

    return "\n".join(lines)


def to_langchain_tool(client: ExchangeToolClient, schema: dict) -> StructuredTool:
    """Create a StructuredTool that forwards to one server tool."""
    tool_name = schema["name"]

    def _call_cse(**kwargs: Any) -> str:
        arguments = {k: v for k, v in kwargs.items() if v is not None}
        try:
            result = client.call(tool_name, arguments)
            return json.dumps(result, indent=2)
        except Exception as e:
            return f"Error calling {tool_name}: {e}"

    return StructuredTool.from_function(
        func=_call_cse,
        name=tool_name,
        description=schema.get("description") or f"CSE tool: {tool_name}",
        args_schema=args_model(schema),
    )


def to_langchain_tools(client: ExchangeToolClient) -> list[StructuredTool]:
    """One StructuredTool per tool discovered by a started client."""
    return [to_langchain_tool(client, schema) for schema in client.list_tools()]


def prompt_instructions(client: ExchangeToolClient) -> str:
    """Instructions block covering every discovered tool, for a system prompt."""
    return "\n\n".join(describe_tool(schema) for schema in client.list_tools())
