from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .cache_config import CacheSettings, load_settings
from .store import ShardedStore, StoreIOError


def _check_writable(path: Path) -> bool:
    try:
        candidate = path
        while not candidate.exists():
            if candidate.parent == candidate:
                return False
            candidate = candidate.parent
        return candidate.is_dir() and os.access(candidate, os.W_OK)
    except OSError:
        return False


def build_doctor_report(settings: Optional[CacheSettings] = None) -> Dict[str, Any]:
    settings = settings or load_settings()
    report: Dict[str, Any] = {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": True,
        "checks": [],
    }

    def add_check(
        name: str,
        status: bool,
        *,
        detail: Optional[str] = None,
        remedy: Optional[str] = None,
        level: str = "warn",
    ) -> None:
        entry = {
            "name": name,
            "status": "ok" if status else "missing",
            "level": level,
            "detail": detail,
        }
        if remedy:
            entry["remedy"] = remedy
        report["checks"].append(entry)
        if not status and level == "warn":
            report["ok"] = False

    root = Path(settings.db_root)
    add_check(
        "FETCHCACHE_DB_ROOT",
        _check_writable(root),
        detail=str(root),
        remedy="Create the store directory or set FETCHCACHE_DB_ROOT to a writable location.",
    )

    try:
        entries = ShardedStore(root).count()
        add_check("store_entries", True, detail=f"{entries} cached page(s)", level="info")
    except (OSError, StoreIOError) as exc:
        add_check("store_entries", False, detail=f"unable to scan store: {exc}")

    add_check(
        "FETCHCACHE_FETCH_TIMEOUT",
        settings.fetch_timeout > 0,
        detail=f"{settings.fetch_timeout}s",
        remedy="Set FETCHCACHE_FETCH_TIMEOUT to a positive number of seconds.",
    )

    dotenv_present = Path(".env").exists()
    add_check(
        ".env",
        dotenv_present,
        detail="loaded" if dotenv_present else "not present (environment only)",
        level="info",
    )
    return report


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("fetchcache doctor")
    lines.append(f"Generated: {report.get('generated_at')}")
    lines.append("")
    for check in report.get("checks", []):
        name = check.get("name", "check")
        status = check.get("status", "unknown")
        level = check.get("level", "info")
        lines.append(f"- [{level}] {name}: {status}")
        detail = check.get("detail")
        if detail:
            lines.append(f"  detail: {detail}")
        remedy = check.get("remedy")
        if remedy and status != "ok":
            lines.append(f"  remedy: {remedy}")
    return "\n".join(lines).rstrip() + "\n"


__all__ = ["build_doctor_report", "format_doctor_report"]
