"""
Error types raised across the bridge.

Upstream failures are normally absorbed by the gateway's fallbacks; the
types here are the hard failures that reach the dispatch boundary.
"""

from __future__ import annotations


class CSEBridgeError(Exception):
    """Base class for all bridge errors."""


class SymbolNotFoundError(CSEBridgeError, LookupError):
    """Ticker is not listed, even after a directory refresh."""

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Symbol {symbol} not found on CSE")


class MarketScanError(CSEBridgeError):
    """The full market listing could not be fetched."""


class MissingArgumentError(CSEBridgeError, ValueError):
    """A tool was called without one of its required arguments."""

    def __init__(self, argument: str):
        self.argument = argument
        super().__init__(f"{argument} is required")


class UnknownToolError(CSEBridgeError, LookupError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class ToolCallError(CSEBridgeError):
    """A tool call returned an error envelope (client side)."""
