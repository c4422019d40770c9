"""Coalescing fetch cache: fetch each URI at most once and persist the page."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from ..core.keys import derive_key
from .cache_config import DEFAULT_FETCH_TIMEOUT
from .html_normalize import normalize_response
from .inflight import InFlightRegistry
from .store import ShardedStore, StoreIOError
from .web_fetch import FetchResponse, FetchTransportError

logger = logging.getLogger(__name__)

FetchFunc = Callable[[str, float], Awaitable[FetchResponse]]


class FetchCache:
    """Schedules background fetches and writes their results to the store.

    ``enqueue`` returns the key right away. A key is fetched only when it is
    neither in flight nor already stored; failures leave it absent so that
    a later ``enqueue`` tries again.
    """

    def __init__(
        self,
        store: ShardedStore,
        registry: InFlightRegistry,
        fetch: FetchFunc,
        *,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
    ) -> None:
        self.store = store
        self.registry = registry
        self._fetch = fetch
        self.timeout = timeout
        self._tasks: Set[asyncio.Task] = set()

    def enqueue(self, uri: str) -> str:
        key = derive_key(uri)
        # No await between the check and the insert.
        if not self.registry.try_acquire(key, uri):
            return key
        try:
            task = asyncio.get_running_loop().create_task(self._fetch_and_store(key, uri))
        except RuntimeError:
            self.registry.release(key)
            raise
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return key

    def pending_count(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every scheduled fetch has finished."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("fetch job crashed: %s", exc, exc_info=exc)

    async def _fetch_and_store(self, key: str, uri: str) -> None:
        try:
            await self._run(key, uri)
        finally:
            self.registry.release(key)

    async def _run(self, key: str, uri: str) -> None:
        try:
            if await self.store.aexists(key):
                logger.debug("cache hit for %s (%s)", uri, key)
                return
        except StoreIOError as exc:
            logger.error("store check failed for %s: %s", uri, exc)
            return

        try:
            response = await self._fetch(uri, self.timeout)
        except FetchTransportError as exc:
            logger.warning("fetch failed for %s: %s", uri, exc.reason)
            return

        payload = normalize_response(response)
        try:
            created = await self.store.awrite(key, payload)
        except StoreIOError as exc:
            logger.error("store write failed for %s: %s", uri, exc)
            return
        if created:
            logger.info("stored %s (%d bytes, status %s) as %s", uri, len(payload), response.status, key)


def build_fetch_cache(
    db_root,
    fetch: FetchFunc,
    *,
    timeout: float = DEFAULT_FETCH_TIMEOUT,
    registry: Optional[InFlightRegistry] = None,
) -> FetchCache:
    return FetchCache(
        ShardedStore(db_root),
        registry or InFlightRegistry(),
        fetch,
        timeout=timeout,
    )


__all__ = ["FetchCache", "FetchFunc", "build_fetch_cache"]
