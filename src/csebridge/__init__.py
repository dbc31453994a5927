"""
cse-bridge — Colombo Stock Exchange market data as agent tools.

Usage:
    from csebridge import CSEGateway

    gateway = CSEGateway()
    book = await gateway.get_order_book("JKH.N0000")

    # Or serve every operation as a tool over stdio:
    #   python -m csebridge.mcp.servers.cse
"""

__version__ = "0.1.0"

from .cache import ResponseCache
from .config import Settings
from .directory import SymbolDirectory
from .errors import (
    CSEBridgeError,
    MarketScanError,
    MissingArgumentError,
    SymbolNotFoundError,
    ToolCallError,
    UnknownToolError,
)
from .gateway import CSEGateway
from .normalize import fix_cdn_url, to_number

__all__ = [
    # Core
    "CSEGateway",
    "ResponseCache",
    "SymbolDirectory",
    "Settings",
    # Normalization
    "fix_cdn_url",
    "to_number",
    # Errors
    "CSEBridgeError",
    "MarketScanError",
    "MissingArgumentError",
    "SymbolNotFoundError",
    "ToolCallError",
    "UnknownToolError",
]
