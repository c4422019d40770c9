"""Registry of cache keys whose fetch is currently running."""

from __future__ import annotations

import threading
from typing import Dict


class InFlightRegistry:
    """Map of key -> debug value (usually the source URI).

    An entry exists exactly while a fetch for that key is running. None of
    the methods await, so the check-and-insert in :meth:`try_acquire` cannot
    interleave with another task; the lock covers callers on other threads.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}
        self._lock = threading.Lock()

    def try_acquire(self, key: str, debug_value: str = "") -> bool:
        with self._lock:
            if key in self._entries:
                return False
            self._entries[key] = debug_value
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def is_in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["InFlightRegistry"]
