"""
Symbol directory — maps tickers (JKH.N0000) to CSE internal stock ids.

The order book and chart endpoints only accept the internal id. The only
source of ids is the full market listing, so the directory is filled as a
side effect of every listing fetch. It is warmed once at startup and
refreshed lazily when a ticker is missing.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from .errors import SymbolNotFoundError

logger = logging.getLogger(__name__)

Refresher = Callable[[], Awaitable[Any]]


class SymbolDirectory:
    """
    Ticker -> internal id lookup with lazy refresh.

    ``refresher`` must fetch the full listing and call ``record()`` for
    every stock it sees. Concurrent misses may each trigger a refresh;
    refreshes are idempotent so this is tolerated.
    """

    def __init__(self, refresher: Refresher):
        self._refresher = refresher
        self._ids: dict[str, str] = {}
        self._warmed = False

    def record(self, symbol: str, internal_id: str) -> None:
        self._ids[symbol] = internal_id

    def get(self, symbol: str) -> str | None:
        return self._ids.get(symbol)

    def symbols(self) -> list[str]:
        return list(self._ids)

    @property
    def warmed(self) -> bool:
        return self._warmed

    async def refresh_all(self) -> int:
        """Fetch the full listing. Returns the number of known symbols."""
        await self._refresher()
        return len(self._ids)

    async def resolve(self, symbol: str) -> str:
        """
        Return the internal id for ``symbol``.

        On a miss the listing is refreshed exactly once; a second miss
        raises SymbolNotFoundError. Listing failures propagate.
        """
        internal_id = self._ids.get(symbol)
        if internal_id:
            return internal_id

        logger.info(f"Symbol {symbol} not in directory, refreshing listing")
        await self.refresh_all()

        internal_id = self._ids.get(symbol)
        if not internal_id:
            raise SymbolNotFoundError(symbol)
        return internal_id

    async def warm_up(self) -> bool:
        """Populate the directory once. Failure is logged and left to lazy refresh."""
        if self._warmed:
            return True
        try:
            count = await self.refresh_all()
        except Exception as e:
            logger.warning(f"Symbol directory warm-up failed, will lazy-load: {e}")
            return False
        self._warmed = True
        logger.info(f"Symbol directory initialized with {count} symbols")
        return True

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._ids
