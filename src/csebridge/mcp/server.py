"""
Stdio tool server framework.

A server is a set of ToolHandler instances behind a JSON-RPC loop on
stdin/stdout:

    server = StdioToolServer("cse-mcp-server")
    server.register(GetSectorsTool(gateway))
    server.run()

Methods: ``initialize``, ``tools/list``, ``tools/call``. Tool failures are
returned inside the call result (``isError: true``) rather than as
JSON-RPC errors, so one bad call never takes the server down.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable, TextIO

from .. import __version__
from ..errors import MissingArgumentError, UnknownToolError
from .transport import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    JsonRpcRequest,
    JsonRpcResponse,
)

logger = logging.getLogger(__name__)

Hook = Callable[[], Awaitable[Any]]


def _encode(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_text(result: Any) -> str:
    return json.dumps(result, indent=2, default=_encode)


def text_result(result: Any, is_error: bool = False) -> dict[str, Any]:
    envelope: dict[str, Any] = {"content": [{"type": "text", "text": to_text(result)}]}
    if is_error:
        envelope["isError"] = True
    return envelope


class ToolHandler:
    """
    One callable tool.

    Subclasses set ``name``, ``description``, ``parameters`` (JSON schema
    properties) and ``required``, and implement ``handle``. Required
    arguments are checked by the server before ``handle`` runs.
    """
    name: str = ""
    description: str = ""
    parameters: dict[str, dict] = {}
    required: tuple[str, ...] = ()

    def schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": self.parameters,
                "required": list(self.required),
            },
        }

    async def handle(self, params: dict[str, Any]) -> Any:
        raise NotImplementedError


class StdioToolServer:
    """Line-delimited JSON-RPC tool server."""

    def __init__(self, name: str = "tool-server", version: str = __version__):
        self.name = name
        self.version = version
        self._handlers: dict[str, ToolHandler] = {}
        self._startup: list[Hook] = []
        self._shutdown: list[Hook] = []

    def register(self, handler: ToolHandler) -> None:
        self._handlers[handler.name] = handler

    def on_startup(self, hook: Hook) -> None:
        """Run ``hook`` as a background task once serving has started."""
        self._startup.append(hook)

    def on_shutdown(self, hook: Hook) -> None:
        self._shutdown.append(hook)

    def list_tools(self) -> list[dict[str, Any]]:
        return [handler.schema() for handler in self._handlers.values()]

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Invoke a tool and wrap its result.

        This is the single recovery boundary: every exception raised while
        dispatching becomes an ``isError`` envelope with the message.
        """
        try:
            handler = self._handlers.get(name)
            if handler is None:
                raise UnknownToolError(name)

            arguments = arguments or {}
            for argument in handler.required:
                if arguments.get(argument) in (None, ""):
                    raise MissingArgumentError(argument)

            result = await handler.handle(arguments)
        except Exception as e:
            logger.error(f"Tool call {name} failed: {e}")
            return text_result({"error": str(e) or type(e).__name__}, is_error=True)

        return text_result(result)

    async def handle_request(self, request: JsonRpcRequest) -> JsonRpcResponse | None:
        method = request.method

        if method == "initialize":
            result: Any = {
                "protocolVersion": PROTOCOL_VERSION,
                "serverInfo": {"name": self.name, "version": self.version},
                "capabilities": {"tools": {}},
            }
        elif method == "tools/list":
            result = {"tools": self.list_tools()}
        elif method == "tools/call":
            params = request.params
            result = await self.call_tool(params.get("name"), params.get("arguments"))
        elif request.is_notification:
            return None
        else:
            return JsonRpcResponse.failure(request.id, METHOD_NOT_FOUND, f"Method not found: {method}")

        if request.is_notification:
            return None
        return JsonRpcResponse(id=request.id, result=result)

    async def handle_line(self, line: str) -> str | None:
        """Process one raw input line; returns the response line, if any."""
        try:
            request = JsonRpcRequest.from_json(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Unparseable request: {e}")
            return JsonRpcResponse.failure(None, PARSE_ERROR, f"Parse error: {e}").to_json()
        except ValueError as e:
            logger.warning(f"Invalid request: {e}")
            return JsonRpcResponse.failure(None, INVALID_REQUEST, f"Invalid request: {e}").to_json()

        try:
            response = await self.handle_request(request)
        except Exception as e:
            logger.exception(f"Internal error handling {request.method}")
            response = JsonRpcResponse.failure(request.id, INTERNAL_ERROR, str(e))

        return response.to_json() if response else None

    async def serve(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        """Serve requests until stdin is closed."""
        stdin = stdin or sys.stdin
        stdout = stdout or sys.stdout
        loop = asyncio.get_running_loop()

        logger.info(f"{self.name} running on stdio: tools={list(self._handlers)}")
        background = [asyncio.create_task(hook()) for hook in self._startup]

        try:
            while True:
                line = await loop.run_in_executor(None, stdin.readline)
                if not line:
                    break
                if not line.strip():
                    continue

                reply = await self.handle_line(line)
                if reply is not None:
                    stdout.write(reply + "\n")
                    stdout.flush()
        finally:
            for task in background:
                task.cancel()
            await asyncio.gather(*background, return_exceptions=True)
            for hook in self._shutdown:
                await hook()
            logger.info(f"{self.name} stopped")

    def run(self) -> None:
        asyncio.run(self.serve())
