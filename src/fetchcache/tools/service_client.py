"""Small blocking client for a running fetchcache server."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Tuple

import requests

from ..core.keys import K_ID, K_URI

logger = logging.getLogger(__name__)

NOT_READY = 503


class ServiceClient:
    def __init__(
        self,
        base_url: str = "http://127.0.0.1:3000",
        *,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def enqueue(self, uri: str) -> str:
        resp = self.session.get(f"{self.base_url}/enqueue", params={K_URI: uri}, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()[K_ID]

    def status(self, key: str) -> Tuple[int, bytes]:
        resp = self.session.get(f"{self.base_url}/status", params={K_ID: key}, timeout=self.timeout)
        return resp.status_code, resp.content

    def close(self) -> None:
        self.session.close()


def poll_until_ready(
    client: ServiceClient,
    key: str,
    *,
    interval: float = 0.5,
    max_wait: float = 60.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Tuple[int, bytes]:
    """Repeat ``status`` while the server answers 503."""

    waited = 0.0
    while True:
        code, body = client.status(key)
        if code != NOT_READY:
            return code, body
        if waited >= max_wait:
            raise TimeoutError(f"{key} still in flight after {max_wait}s")
        logger.debug("%s not ready; retrying in %.1fs", key, interval)
        sleep(interval)
        waited += interval


__all__ = ["NOT_READY", "ServiceClient", "poll_until_ready"]
