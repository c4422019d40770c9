"""Cache keys and shared field names used across fetchcache modules."""

from __future__ import annotations

import hashlib
import re
from typing import Optional

# Query/JSON field names
K_ID = "id"
K_URI = "uri"

KEY_LENGTH = 64
_KEY_RE = re.compile(r"^[0-9a-f]{64}$")


def derive_key(uri: str) -> str:
    """Return the cache key for ``uri``.

    Lowercase hex keeps the on-disk layout safe on case-insensitive
    filesystems. The URI is hashed verbatim; no syntax checks are done here.
    """

    raw = (uri or "").encode("utf-8", "surrogatepass")
    return hashlib.sha256(raw).hexdigest()


def is_valid_key(value: object) -> bool:
    return isinstance(value, str) and bool(_KEY_RE.match(value))


def normalize_key(value: object) -> Optional[str]:
    """Lowercase a client-supplied id; None when it is not a key at all."""

    if not isinstance(value, str):
        return None
    lowered = value.strip().lower()
    return lowered if is_valid_key(lowered) else None
