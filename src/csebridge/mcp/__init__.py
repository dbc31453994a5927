"""
Tool server infrastructure.

Provides:
- StdioToolServer / ToolHandler — JSON-RPC tool server over stdio
- StdioTransport — client-side transport (subprocess + stdio pipes)
- ExchangeToolClient — launches the CSE server and calls its tools
- Bridge utilities — server tools -> LangChain StructuredTool wrappers
"""

from .server import StdioToolServer, ToolHandler
from .transport import StdioTransport
from .client import ExchangeToolClient
from .bridge import prompt_instructions, to_langchain_tool, to_langchain_tools

__all__ = [
    "StdioToolServer",
    "ToolHandler",
    "StdioTransport",
    "ExchangeToolClient",
    "prompt_instructions",
    "to_langchain_tool",
    "to_langchain_tools",
]
