from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Optional

from ..core.keys import normalize_key
from .inflight import InFlightRegistry
from .store import ShardedStore


class CacheState(str, enum.Enum):
    IN_FLIGHT = "in_flight"
    FOUND = "found"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class CacheStatus:
    state: CacheState
    body: Optional[bytes] = field(default=None, repr=False)


IN_FLIGHT = CacheStatus(CacheState.IN_FLIGHT)
NOT_FOUND = CacheStatus(CacheState.NOT_FOUND)


class StatusResolver:
    """Answers whether a key is in flight, cached, or unknown.

    Read-only: never schedules a fetch. Store read errors propagate as
    ``StoreIOError``.
    """

    def __init__(self, store: ShardedStore, registry: InFlightRegistry) -> None:
        self.store = store
        self.registry = registry

    def resolve(self, key: str) -> CacheStatus:
        key = normalize_key(key)
        if key is None:
            return NOT_FOUND
        if self.registry.is_in_flight(key):
            return IN_FLIGHT
        try:
            body = self.store.read(key)
        except KeyError:
            return NOT_FOUND
        return CacheStatus(CacheState.FOUND, body)

    async def aresolve(self, key: str) -> CacheStatus:
        normalized = normalize_key(key)
        if normalized is not None and self.registry.is_in_flight(normalized):
            return IN_FLIGHT
        return await asyncio.to_thread(self.resolve, key)


__all__ = ["CacheState", "CacheStatus", "IN_FLIGHT", "NOT_FOUND", "StatusResolver"]
