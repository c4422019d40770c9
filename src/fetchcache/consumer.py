from __future__ import annotations

import asyncio
import secrets
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, TextIO, Tuple

from .core.keys import K_ID, K_URI
from .workflows.cache_config import CacheSettings
from .workflows.fetch_cache import FetchCache, FetchFunc
from .workflows.inflight import InFlightRegistry
from .workflows.status import CacheState, StatusResolver
from .workflows.store import ShardedStore
from .workflows.web_fetch import FetchConfig, PageFetcher


def parse_manifest_lines(lines: Iterable[str]) -> List[str]:
    uris: List[str] = []
    for raw_line in lines:
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("#"):
            continue
        if any(ch.isspace() for ch in line):
            raise ValueError(f"manifest lines must hold a single URI, got: {raw_line.rstrip()}")
        uris.append(line)
    return uris


def load_manifest(path_or_dash: str, *, stdin: Optional[TextIO] = None) -> List[str]:
    if path_or_dash == "-":
        stream = stdin or sys.stdin
        return parse_manifest_lines(stream.read().splitlines())
    path = Path(path_or_dash)
    if not path.exists():
        raise FileNotFoundError(f"no such manifest: {path}")
    return parse_manifest_lines(path.read_text(encoding="utf-8").splitlines())


def generate_run_id(now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
    suffix = secrets.token_hex(3)
    return f"{stamp}_{suffix}"


def _iso(ts: datetime) -> str:
    return ts.replace(microsecond=0).isoformat().replace("+00:00", "Z")


async def consume(uris: Sequence[str], cache: FetchCache, resolver: StatusResolver) -> List[Dict[str, Any]]:
    """Enqueue every URI, wait for the fetches, and report one item per key."""

    seen: Dict[str, str] = {}
    for uri in uris:
        key = cache.enqueue(uri)
        seen.setdefault(key, uri)
    await cache.drain()

    items: List[Dict[str, Any]] = []
    for key, uri in seen.items():
        status = await resolver.aresolve(key)
        item: Dict[str, Any] = {K_ID: key, K_URI: uri, "state": status.state.value}
        if status.body is not None:
            item["bytes"] = len(status.body)
        items.append(item)
    return items


def run_consumer(
    uris: Sequence[str],
    *,
    settings: CacheSettings,
    fetch: Optional[FetchFunc] = None,
    soft_fail: bool = False,
) -> Tuple[Dict[str, Any], int]:
    started_at = datetime.now(timezone.utc)
    store = ShardedStore(settings.db_root)
    registry = InFlightRegistry()
    resolver = StatusResolver(store, registry)

    async def _main() -> List[Dict[str, Any]]:
        if fetch is not None:
            cache = FetchCache(store, registry, fetch, timeout=settings.fetch_timeout)
            return await consume(uris, cache, resolver)
        config = FetchConfig(timeout=settings.fetch_timeout, user_agent=settings.user_agent)
        async with PageFetcher(config) as page_fetcher:
            cache = FetchCache(store, registry, page_fetcher, timeout=settings.fetch_timeout)
            return await consume(uris, cache, resolver)

    items = asyncio.run(_main())
    finished_at = datetime.now(timezone.utc)

    found = sum(1 for item in items if item["state"] == CacheState.FOUND.value)
    summary: Dict[str, Any] = {
        "run_id": generate_run_id(started_at),
        "db_root": str(store.root),
        "started_at": _iso(started_at),
        "finished_at": _iso(finished_at),
        "duration_ms": int((finished_at - started_at).total_seconds() * 1000),
        "counts": {
            "total": len(items),
            "found": found,
            "not_found": len(items) - found,
        },
        "items": items,
    }
    exit_code = 0
    if not soft_fail and summary["counts"]["not_found"] > 0:
        exit_code = 3
    return summary, exit_code
