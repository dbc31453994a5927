"""
JSON-RPC 2.0 messages and the client-side stdio transport.

One line = one message, in both directions. The server writes only
protocol messages to stdout; logs go to stderr.
"""

from __future__ import annotations

import itertools
import json
import logging
import subprocess
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603


@dataclass
class JsonRpcRequest:
    """JSON-RPC 2.0 request. ``id=None`` makes it a notification."""
    method: str
    params: dict[str, Any]
    id: int | str | None = None

    @property
    def is_notification(self) -> bool:
        return self.id is None

    def to_json(self) -> str:
        message = {"jsonrpc": "2.0", "method": self.method, "params": self.params}
        if self.id is not None:
            message["id"] = self.id
        return json.dumps(message)

    @classmethod
    def from_json(cls, data: str) -> JsonRpcRequest:
        parsed = json.loads(data)
        if not isinstance(parsed, dict) or not isinstance(parsed.get("method"), str):
            raise ValueError("Not a JSON-RPC request")
        params = parsed.get("params") or {}
        if not isinstance(params, dict):
            raise ValueError("Request params must be an object")
        return cls(method=parsed["method"], params=params, id=parsed.get("id"))


@dataclass
class JsonRpcResponse:
    """JSON-RPC 2.0 response."""
    id: int | str | None
    result: Any = None
    error: dict | None = None

    @classmethod
    def failure(cls, id: int | str | None, code: int, message: str) -> JsonRpcResponse:
        return cls(id=id, error={"code": code, "message": message})

    @classmethod
    def from_json(cls, data: str) -> JsonRpcResponse:
        parsed = json.loads(data)
        return cls(
            id=parsed.get("id"),
            result=parsed.get("result"),
            error=parsed.get("error"),
        )

    def to_json(self) -> str:
        message: dict[str, Any] = {"jsonrpc": "2.0", "id": self.id}
        if self.error is not None:
            message["error"] = self.error
        else:
            message["result"] = self.result
        return json.dumps(message)

    @property
    def is_error(self) -> bool:
        return self.error is not None


class StdioTransport:
    """
    JSON-RPC over the stdin/stdout pipes of a tool server subprocess.

    Requests are answered strictly in order, one line each, so a send is
    a write followed by a blocking readline.
    """

    def __init__(self, command: list[str], env: dict[str, str] | None = None):
        self.command = command
        self.env = env
        self._process: subprocess.Popen | None = None
        self._ids = itertools.count(1)

    def start(self) -> None:
        logger.info(f"Starting stdio transport: {' '.join(self.command)}")
        self._process = subprocess.Popen(
            self.command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            bufsize=1,
            env=self.env,
        )

    def stop(self) -> None:
        """Close stdin so the server exits, then make sure it is gone."""
        if self._process is None:
            return
        self._process.stdin.close()
        try:
            self._process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait()
        self._process = None
        logger.info("Stdio transport stopped")

    def is_alive(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def _write(self, message: JsonRpcRequest) -> None:
        if not self.is_alive():
            raise RuntimeError("Transport not running. Call start() first.")
        self._process.stdin.write(message.to_json() + "\n")
        self._process.stdin.flush()

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        self._write(JsonRpcRequest(method=method, params=params or {}))

    def request(self, method: str, params: dict[str, Any] | None = None) -> JsonRpcResponse:
        self._write(JsonRpcRequest(method=method, params=params or {}, id=next(self._ids)))

        line = self._process.stdout.readline()
        if not line:
            raise RuntimeError(f"Tool server process died (exit code {self._process.poll()})")
        return JsonRpcResponse.from_json(line)
