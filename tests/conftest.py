import asyncio
from typing import Dict, List, Optional, Union

import pytest

from fetchcache.workflows.cache_config import CacheSettings
from fetchcache.workflows.web_fetch import FetchResponse, FetchTransportError

HTML = "text/html; charset=utf-8"


class FakeFetch:
    """Stands in for PageFetcher; records every call."""

    def __init__(self, responses: Optional[Dict[str, Union[FetchResponse, Exception]]] = None, *, gate=None):
        self.responses = responses or {}
        self.calls: List[str] = []
        self.timeouts: List[float] = []
        self.gate = gate

    async def __call__(self, uri: str, timeout: float) -> FetchResponse:
        self.calls.append(uri)
        self.timeouts.append(timeout)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        outcome = self.responses.get(uri)
        if outcome is None:
            return FetchResponse(200, "OK", HTML, f"<html><title>{uri}</title></html>".encode("utf-8"))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def transport_error(uri: str) -> FetchTransportError:
    return FetchTransportError(uri, "Cannot connect to host")


@pytest.fixture
def settings(tmp_path):
    return CacheSettings(db_root=tmp_path / "db", fetch_timeout=2.5)
