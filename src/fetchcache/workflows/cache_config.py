"""fetchcache defaults (paths, timeouts, listener address, env names).

Centralizes static defaults so the rest of the package has no embedded
magic values. ``load_settings`` layers environment overrides on top.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .env_utils import env_float, env_int, env_str

logger = logging.getLogger(__name__)

# Env var names
ENV_DB_ROOT = "FETCHCACHE_DB_ROOT"
ENV_FETCH_TIMEOUT = "FETCHCACHE_FETCH_TIMEOUT"
ENV_HOST = "FETCHCACHE_HOST"
ENV_PORT = "FETCHCACHE_PORT"
ENV_USER_AGENT = "FETCHCACHE_USER_AGENT"
ENV_LOG_LEVEL = "FETCHCACHE_LOG_LEVEL"

# Defaults
DEFAULT_DB_ROOT = Path("db")
DEFAULT_FETCH_TIMEOUT = 10.0
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


@dataclass(frozen=True)
class CacheSettings:
    db_root: Path = DEFAULT_DB_ROOT
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    user_agent: str = DEFAULT_USER_AGENT
    log_level: str = DEFAULT_LOG_LEVEL


def load_settings(*, dotenv_path: Optional[Path] = None) -> CacheSettings:
    """Build settings from the environment (and a ``.env`` file if present)."""

    load_dotenv(dotenv_path=dotenv_path, override=False)
    timeout = env_float(ENV_FETCH_TIMEOUT, DEFAULT_FETCH_TIMEOUT)
    if timeout <= 0:
        logger.warning("%s must be positive; using %s", ENV_FETCH_TIMEOUT, DEFAULT_FETCH_TIMEOUT)
        timeout = DEFAULT_FETCH_TIMEOUT
    return CacheSettings(
        db_root=Path(env_str(ENV_DB_ROOT, str(DEFAULT_DB_ROOT))),
        fetch_timeout=timeout,
        host=env_str(ENV_HOST, DEFAULT_HOST),
        port=env_int(ENV_PORT, DEFAULT_PORT),
        user_agent=env_str(ENV_USER_AGENT, DEFAULT_USER_AGENT),
        log_level=env_str(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL).upper(),
    )
