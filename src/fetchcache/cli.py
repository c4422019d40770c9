from __future__ import annotations

import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer

from .consumer import load_manifest, run_consumer
from .core.keys import derive_key, normalize_key
from .workflows.cache_config import CacheSettings, load_settings
from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.inflight import InFlightRegistry
from .workflows.status import CacheState, StatusResolver
from .workflows.store import ShardedStore, StoreIOError

app = typer.Typer(add_completion=False, no_args_is_help=True, help="Fetch-once page cache.")

DB_ROOT_OPTION = typer.Option(None, "--db-root", help="Store root directory (env FETCHCACHE_DB_ROOT).")
TIMEOUT_OPTION = typer.Option(None, "--timeout", help="Fetch timeout in seconds (env FETCHCACHE_FETCH_TIMEOUT).")


def _settings(db_root: Optional[Path] = None, timeout: Optional[float] = None, **extra) -> CacheSettings:
    settings = load_settings()
    overrides = {k: v for k, v in extra.items() if v is not None}
    if db_root is not None:
        overrides["db_root"] = db_root
    if timeout is not None:
        if timeout <= 0:
            raise typer.BadParameter("--timeout must be positive")
        overrides["fetch_timeout"] = timeout
    return replace(settings, **overrides) if overrides else settings


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (env FETCHCACHE_LOG_LEVEL)."),
) -> None:
    _configure_logging(log_level or load_settings().log_level)


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Listen address (env FETCHCACHE_HOST)."),
    port: Optional[int] = typer.Option(None, "--port", help="Listen port (env FETCHCACHE_PORT)."),
    db_root: Optional[Path] = DB_ROOT_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
) -> None:
    """Run the HTTP service (/enqueue, /status)."""
    from .server import run_server

    run_server(_settings(db_root, timeout, host=host, port=port))


@app.command("key")
def key_cmd(uri: str = typer.Argument(..., help="URI to hash.")) -> None:
    """Print the cache key for a URI without fetching it."""
    typer.echo(derive_key(uri))


@app.command("enqueue")
def enqueue(
    uri: str = typer.Argument(..., help="URI to fetch into the cache."),
    db_root: Optional[Path] = DB_ROOT_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    json_out: bool = typer.Option(False, "--json", help="Print summary JSON to stdout."),
    soft_fail: bool = typer.Option(False, "--soft-fail", help="Exit 0 even if the fetch fails."),
) -> None:
    """Fetch one URI into the store (in-process) and print its id."""
    _run_batch([uri], db_root, timeout, json_out, soft_fail)


@app.command("get-manifest")
def get_manifest(
    path_or_dash: str = typer.Argument(..., help="Path to manifest or '-' for stdin."),
    db_root: Optional[Path] = DB_ROOT_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    json_out: bool = typer.Option(False, "--json", help="Print summary JSON to stdout."),
    soft_fail: bool = typer.Option(False, "--soft-fail", help="Exit 0 even if some fetches fail."),
) -> None:
    """Fetch every URI listed in a manifest into the store."""
    try:
        uris = load_manifest(path_or_dash)
    except (OSError, ValueError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)
    _run_batch(uris, db_root, timeout, json_out, soft_fail)


def _run_batch(uris, db_root, timeout, json_out: bool, soft_fail: bool) -> None:
    settings = _settings(db_root, timeout)
    try:
        summary, exit_code = run_consumer(uris, settings=settings, soft_fail=soft_fail)
    except Exception as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=3)
    if json_out:
        sys.stdout.write(json.dumps(summary, ensure_ascii=False) + "\n")
    else:
        for item in summary["items"]:
            typer.echo(f"{item['id']}  {item['state']}  {item['uri']}")
    raise typer.Exit(code=exit_code)


@app.command("status")
def status(
    key: str = typer.Argument(..., help="Cache id returned by enqueue."),
    db_root: Optional[Path] = DB_ROOT_OPTION,
) -> None:
    """Print a cached page from the local store."""
    if normalize_key(key) is None:
        typer.echo("No such id.", err=True)
        raise typer.Exit(code=2)
    store = ShardedStore(_settings(db_root).db_root)
    try:
        result = StatusResolver(store, InFlightRegistry()).resolve(key)
    except StoreIOError as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=3)
    if result.state is not CacheState.FOUND:
        typer.echo("No such id.", err=True)
        raise typer.Exit(code=2)
    sys.stdout.write(result.body.decode("utf-8", errors="replace"))


@app.command("poll")
def poll(
    uri: str = typer.Argument(..., help="URI to enqueue on a running server."),
    server: str = typer.Option("http://127.0.0.1:3000", "--server", help="Base URL of the fetchcache server."),
    interval: float = typer.Option(0.5, "--interval", help="Seconds between status polls."),
    max_wait: float = typer.Option(60.0, "--max-wait", help="Give up after this many seconds."),
) -> None:
    """Enqueue a URI on a running server and wait for its page."""
    import requests

    from .tools.service_client import ServiceClient, poll_until_ready

    client = ServiceClient(server)
    try:
        key = client.enqueue(uri)
        code, body = poll_until_ready(client, key, interval=interval, max_wait=max_wait)
    except (requests.RequestException, TimeoutError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=3)
    finally:
        client.close()
    if code != 200:
        typer.echo(f"{key}: HTTP {code}", err=True)
        raise typer.Exit(code=2)
    sys.stdout.write(body.decode("utf-8", errors="replace"))


@app.command("doctor")
def doctor_cmd(db_root: Optional[Path] = DB_ROOT_OPTION) -> None:
    """Print environment and store diagnostics."""
    report = build_doctor_report(_settings(db_root))
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)
