"""Core schema helpers for fetchcache."""

from .keys import *  # noqa: F401,F403 re-export stable keys

__all__ = [name for name in globals() if name.startswith("K_")] + [
    "KEY_LENGTH",
    "derive_key",
    "is_valid_key",
    "normalize_key",
]
