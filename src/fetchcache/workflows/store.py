"""Key-addressed, write-once page store laid out as a sharded directory tree.

Entries live at ``<root>/<key[0:2]>/<key[2:4]>/<key[4:]>``. Two levels of
256 directories keep every directory small even with tens of millions of
entries, and a lookup is a single path descent.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from ..core.keys import is_valid_key

logger = logging.getLogger(__name__)

SHARD_WIDTH = 2
SHARD_DEPTH = 2


class StoreIOError(OSError):
    """Disk failure while reading or writing a store entry."""


class ShardedStore:
    """Filesystem store for cached pages."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        if not is_valid_key(key):
            raise ValueError(f"invalid cache key: {key!r}")
        parts = []
        offset = 0
        for _ in range(SHARD_DEPTH):
            parts.append(key[offset:offset + SHARD_WIDTH])
            offset += SHARD_WIDTH
        parts.append(key[offset:])
        return self.root.joinpath(*parts)

    def exists(self, key: str) -> bool:
        try:
            return self.path_for(key).is_file()
        except OSError as exc:
            raise StoreIOError(f"exists check failed for {key}: {exc}") from exc

    def read(self, key: str) -> bytes:
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise KeyError(key) from None
        except OSError as exc:
            raise StoreIOError(f"read failed for {key}: {exc}") from exc

    def write(self, key: str, data: bytes) -> bool:
        """Persist ``data`` under ``key`` unless an entry already exists.

        Returns True when the entry was created. The payload lands in a
        temporary file first and is moved into place, so readers never see a
        partial entry.
        """

        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if path.exists():
                logger.debug("store entry %s already present; leaving it", key)
                return False
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
                raise
        except OSError as exc:
            raise StoreIOError(f"write failed for {key}: {exc}") from exc
        return True

    def count(self) -> int:
        if not self.root.is_dir():
            return 0
        total = 0
        for path in self.root.glob("/".join(["*"] * (SHARD_DEPTH + 1))):
            if path.is_file() and not path.name.startswith(".tmp-"):
                total += 1
        return total

    async def aexists(self, key: str) -> bool:
        return await asyncio.to_thread(self.exists, key)

    async def aread(self, key: str) -> bytes:
        return await asyncio.to_thread(self.read, key)

    async def awrite(self, key: str, data: bytes) -> bool:
        return await asyncio.to_thread(self.write, key, data)


__all__ = ["SHARD_DEPTH", "SHARD_WIDTH", "ShardedStore", "StoreIOError"]
