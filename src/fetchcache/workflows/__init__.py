"""High-level exports for the fetchcache workflows."""

from .cache_config import CacheSettings, load_settings
from .fetch_cache import FetchCache, build_fetch_cache
from .inflight import InFlightRegistry
from .status import CacheState, CacheStatus, StatusResolver
from .store import ShardedStore, StoreIOError
from .web_fetch import FetchConfig, FetchResponse, FetchTransportError, PageFetcher

__all__ = [
    "CacheSettings",
    "CacheState",
    "CacheStatus",
    "FetchCache",
    "FetchConfig",
    "FetchResponse",
    "FetchTransportError",
    "InFlightRegistry",
    "PageFetcher",
    "ShardedStore",
    "StatusResolver",
    "StoreIOError",
    "build_fetch_cache",
    "load_settings",
]
