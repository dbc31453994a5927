"""
Agent-side client for the CSE tool server.

Usage:
    with ExchangeToolClient() as client:
        tools = client.list_tools()
        book = client.call("get_order_book", {"symbol": "JKH.N0000"})
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

from .. import __version__
from ..errors import ToolCallError
from .transport import PROTOCOL_VERSION, StdioTransport

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = [sys.executable, "-m", "csebridge.mcp.servers.cse"]


class ExchangeToolClient:
    """
    Launches the tool server as a subprocess and calls its tools.

    ``call()`` returns the decoded JSON payload of a tool result and raises
    ToolCallError when the server flags the result as an error.
    """

    def __init__(self, command: list[str] | None = None, env: dict[str, str] | None = None):
        self.command = command or list(DEFAULT_COMMAND)
        self.env = env
        self._transport: StdioTransport | None = None
        self._tools: list[dict] = []

    def start(self) -> list[dict]:
        """Start the server, run the initialize handshake and discover its tools."""
        transport = StdioTransport(self.command, self.env)
        transport.start()
        self._transport = transport

        try:
            handshake = transport.request("initialize", {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": "csebridge", "version": __version__},
            })
            if handshake.is_error:
                raise RuntimeError(f"Initialize failed: {handshake.error}")
            transport.notify("notifications/initialized")

            response = transport.request("tools/list")
            if response.is_error:
                raise RuntimeError(f"Failed to discover tools: {response.error}")
        except Exception:
            self.stop()
            raise

        self._tools = (response.result or {}).get("tools", [])
        logger.info(f"Started tool server: tools={[t['name'] for t in self._tools]}")
        return self._tools

    def stop(self) -> None:
        if self._transport:
            self._transport.stop()
            self._transport = None

    def is_running(self) -> bool:
        return self._transport is not None and self._transport.is_alive()

    def list_tools(self) -> list[dict]:
        return self._tools

    def call(self, tool_name: str, arguments: dict[str, Any] | None = None) -> Any:
        if not self.is_running():
            raise RuntimeError("Tool server is not running.")

        response = self._transport.request(
            "tools/call", {"name": tool_name, "arguments": arguments or {}},
        )
        if response.is_error:
            raise RuntimeError(f"Tool call failed ({tool_name}): {response.error}")

        result = response.result or {}
        text = "".join(part.get("text", "") for part in result.get("content", []))
        payload = json.loads(text) if text else None

        if result.get("isError"):
            message = payload.get("error") if isinstance(payload, dict) else text
            raise ToolCallError(f"{tool_name}: {message}")
        return payload

    def __enter__(self) -> ExchangeToolClient:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
