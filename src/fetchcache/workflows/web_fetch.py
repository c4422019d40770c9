from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import aiohttp

from .cache_config import DEFAULT_FETCH_TIMEOUT, DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)


class FetchTransportError(Exception):
    """Network, DNS, TLS or timeout failure while fetching a URI."""

    def __init__(self, uri: str, reason: str) -> None:
        super().__init__(f"{uri}: {reason}")
        self.uri = uri
        self.reason = reason


@dataclass
class FetchConfig:
    """Configuration parameters for outbound page fetches."""

    timeout: float = DEFAULT_FETCH_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = "en-US,en;q=0.9"
    max_redirects: int = 10
    connection_limit: int = 100


@dataclass
class FetchResponse:
    """What the origin answered for a single fetch."""

    status: int
    status_message: str
    content_type: Optional[str]
    body: bytes = field(default=b"", repr=False)


class PageFetcher:
    """Async page fetcher backed by one shared aiohttp session."""

    def __init__(self, config: Optional[FetchConfig] = None) -> None:
        self.config = config or FetchConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=self.config.connection_limit)
            headers = {
                "User-Agent": self.config.user_agent,
                "Accept-Language": self.config.accept_language,
            }
            self._session = aiohttp.ClientSession(connector=connector, headers=headers)
        return self._session

    async def __call__(self, uri: str, timeout: Optional[float] = None) -> FetchResponse:
        session = self._ensure_session()
        total = self.config.timeout if timeout is None else timeout
        try:
            async with session.get(
                uri,
                timeout=aiohttp.ClientTimeout(total=total),
                allow_redirects=True,
                max_redirects=self.config.max_redirects,
            ) as resp:
                body = await resp.read()
                logger.debug("GET %s -> %s (%d bytes)", uri, resp.status, len(body))
                return FetchResponse(
                    status=resp.status,
                    status_message=resp.reason or "",
                    content_type=resp.headers.get("Content-Type"),
                    body=body,
                )
        except asyncio.TimeoutError as exc:
            raise FetchTransportError(uri, f"timed out after {total}s") from exc
        except aiohttp.ClientError as exc:
            raise FetchTransportError(uri, str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            # yarl/aiohttp reject some strings before any I/O happens
            raise FetchTransportError(uri, f"invalid uri: {exc}") from exc

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "PageFetcher":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


__all__ = ["FetchConfig", "FetchResponse", "FetchTransportError", "PageFetcher"]
