"""
HTTP client for the CSE website API.

Every endpoint is a POST to ``{api_base}{endpoint}``; parameterized calls
send a form-encoded body. Responses are JSON, although the server does
not always label them as such.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import aiohttp

from .config import Settings

logger = logging.getLogger(__name__)


class CSEHttpClient:
    """
    Thin async wrapper around one aiohttp session.

    The session is created lazily inside the running event loop and
    closed with ``close()`` (or ``async with``).
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()
        self._session: aiohttp.ClientSession | None = None

    @property
    def headers(self) -> dict[str, str]:
        origin = "https://www.cse.lk"
        return {
            "User-Agent": self.settings.user_agent,
            "Origin": origin,
            "Referer": f"{origin}/",
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json, text/plain, */*",
        }

    def url_for(self, endpoint: str) -> str:
        return f"{self.settings.api_base.rstrip('/')}/{endpoint.lstrip('/')}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.settings.timeout),
            )
        return self._session

    async def post(self, endpoint: str, data: Mapping[str, str] | None = None) -> Any:
        """POST to an endpoint and return the decoded JSON body."""
        session = self._get_session()
        url = self.url_for(endpoint)
        logger.debug(f"POST {url} {dict(data) if data else ''}")

        async with session.post(url, data=dict(data) if data else None) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> CSEHttpClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
