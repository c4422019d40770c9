import asyncio
import logging
from pathlib import Path

import pytest
from bs4 import BeautifulSoup

from conftest import FakeFetch, transport_error
from fetchcache.core.keys import derive_key
from fetchcache.workflows.fetch_cache import FetchCache, build_fetch_cache
from fetchcache.workflows.inflight import InFlightRegistry
from fetchcache.workflows.status import CacheState, StatusResolver
from fetchcache.workflows.store import ShardedStore, StoreIOError
from fetchcache.workflows.web_fetch import FetchResponse


def _wire(root: Path, fetch: FakeFetch, timeout: float = 10.0):
    store = ShardedStore(root)
    registry = InFlightRegistry()
    return FetchCache(store, registry, fetch, timeout=timeout), StatusResolver(store, registry)


def test_unknown_key_is_not_found(tmp_path: Path) -> None:
    _cache, resolver = _wire(tmp_path, FakeFetch())
    assert resolver.resolve(derive_key("never enqueued")).state is CacheState.NOT_FOUND
    assert resolver.resolve("bogus").state is CacheState.NOT_FOUND


def test_enqueue_returns_key_and_marks_in_flight(tmp_path: Path) -> None:
    fetch = FakeFetch()
    cache, resolver = _wire(tmp_path, fetch, timeout=2.5)

    async def run():
        key = cache.enqueue("http://www.google.com")
        assert key == derive_key("http://www.google.com")
        assert resolver.resolve(key).state is CacheState.IN_FLIGHT
        await cache.drain()
        return key

    key = asyncio.run(run())
    status = resolver.resolve(key)
    assert status.state is CacheState.FOUND
    soup = BeautifulSoup(status.body, "html.parser")
    assert soup.title.get_text() == "http://www.google.com"
    assert fetch.timeouts == [2.5]
    assert len(cache.registry) == 0


def test_concurrent_enqueues_fetch_once(tmp_path: Path) -> None:
    async def run():
        gate = asyncio.Event()
        fetch = FakeFetch(gate=gate)
        cache, resolver = _wire(tmp_path, fetch)
        keys = {cache.enqueue("http://example.com/page") for _ in range(25)}
        await asyncio.sleep(0.01)
        assert resolver.resolve(next(iter(keys))).state is CacheState.IN_FLIGHT
        gate.set()
        await cache.drain()
        return fetch, cache, resolver, keys

    fetch, cache, resolver, keys = asyncio.run(run())
    assert len(keys) == 1
    assert fetch.calls == ["http://example.com/page"]


def test_enqueue_after_completion_does_not_refetch(tmp_path: Path) -> None:
    fetch = FakeFetch()
    cache, resolver = _wire(tmp_path, fetch)

    async def run():
        key = cache.enqueue("http://example.com")
        await cache.drain()
        first = resolver.resolve(key).body
        cache.enqueue("http://example.com")
        await cache.drain()
        return key, first

    key, first = asyncio.run(run())
    assert fetch.calls == ["http://example.com"]
    assert resolver.resolve(key).body == first
    assert resolver.resolve(key).body == first


def test_restart_reuses_persisted_entry(tmp_path: Path) -> None:
    first_fetch = FakeFetch()
    cache, _ = _wire(tmp_path, first_fetch)

    async def run(c):
        c.enqueue("http://example.com")
        await c.drain()

    asyncio.run(run(cache))

    second_fetch = FakeFetch()
    restarted, resolver = _wire(tmp_path, second_fetch)
    asyncio.run(run(restarted))
    assert second_fetch.calls == []
    assert resolver.resolve(derive_key("http://example.com")).state is CacheState.FOUND


def test_non_html_is_replaced_with_marker(tmp_path: Path) -> None:
    uri = "http://ip.jsontest.com"
    fetch = FakeFetch({uri: FetchResponse(200, "OK", "application/json", b'{"ip": "1.2.3.4"}')})
    cache, resolver = _wire(tmp_path, fetch)

    async def run():
        key = cache.enqueue(uri)
        await cache.drain()
        return key

    key = asyncio.run(run())
    assert resolver.resolve(key).body == b"<html><body>Not HTML!</body></html>"


def test_fetch_error_leaves_key_absent_until_reenqueued(tmp_path: Path, caplog) -> None:
    uri = "http://www.google.notATLD"
    fetch = FakeFetch({uri: transport_error(uri)})
    cache, resolver = _wire(tmp_path, fetch)

    async def run():
        key = cache.enqueue(uri)
        await cache.drain()
        return key

    with caplog.at_level(logging.WARNING, logger="fetchcache.workflows.fetch_cache"):
        key = asyncio.run(run())
    assert resolver.resolve(key).state is CacheState.NOT_FOUND
    assert resolver.resolve(key).state is CacheState.NOT_FOUND
    assert "fetch failed" in caplog.text

    fetch.responses.pop(uri)
    asyncio.run(run())
    assert fetch.calls == [uri, uri]
    assert resolver.resolve(key).state is CacheState.FOUND


def test_write_failure_releases_marker(tmp_path: Path, monkeypatch) -> None:
    fetch = FakeFetch()
    cache, resolver = _wire(tmp_path, fetch)

    def broken_write(key, data):
        raise StoreIOError("disk full")

    monkeypatch.setattr(cache.store, "write", broken_write)

    async def run():
        key = cache.enqueue("http://example.com")
        await cache.drain()
        return key

    key = asyncio.run(run())
    assert not cache.registry.is_in_flight(key)
    assert resolver.resolve(key).state is CacheState.NOT_FOUND


def test_unexpected_error_is_logged_and_marker_released(tmp_path: Path, caplog) -> None:
    uri = "http://example.com/boom"
    fetch = FakeFetch({uri: RuntimeError("boom")})
    cache, resolver = _wire(tmp_path, fetch)

    async def run():
        key = cache.enqueue(uri)
        await cache.drain()
        return key

    with caplog.at_level(logging.ERROR, logger="fetchcache.workflows.fetch_cache"):
        key = asyncio.run(run())
    assert "fetch job crashed" in caplog.text
    assert resolver.resolve(key).state is CacheState.NOT_FOUND
    assert cache.pending_count() == 0


def test_many_distinct_uris_all_resolve(tmp_path: Path) -> None:
    uris = [f"http://comcast.net/bogus{i}" for i in range(100)]
    fetch = FakeFetch({u: transport_error(u) for u in uris[::3]})
    cache = build_fetch_cache(tmp_path, fetch)
    resolver = StatusResolver(cache.store, cache.registry)

    async def run():
        keys = [cache.enqueue(u) for u in uris]
        await cache.drain()
        return keys

    keys = asyncio.run(run())
    states = [resolver.resolve(k).state for k in keys]
    assert CacheState.IN_FLIGHT not in states
    assert states.count(CacheState.NOT_FOUND) == len(uris[::3])
    assert len(fetch.calls) == 100
    assert len(cache.registry) == 0


def test_enqueue_outside_event_loop_releases_marker(tmp_path: Path) -> None:
    cache, _ = _wire(tmp_path, FakeFetch())
    with pytest.raises(RuntimeError):
        cache.enqueue("http://example.com")
    assert len(cache.registry) == 0
