"""HTTP front end: ``/enqueue`` schedules a fetch, ``/status`` polls for it."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .core.keys import K_ID
from .workflows.cache_config import CacheSettings, load_settings
from .workflows.fetch_cache import FetchCache, FetchFunc
from .workflows.inflight import InFlightRegistry
from .workflows.status import CacheState, StatusResolver
from .workflows.store import ShardedStore, StoreIOError
from .workflows.web_fetch import FetchConfig, PageFetcher

logger = logging.getLogger(__name__)

USAGE = (
    "get /enqueue?uri=encodedUri => {id: aString}\n"
    "get /status?id=anIdString => content at encodedUri, OR 503 status\n"
)


def create_app(settings: Optional[CacheSettings] = None, *, fetch: Optional[FetchFunc] = None) -> FastAPI:
    """Wire store, registry, fetcher and resolver into a FastAPI app.

    ``fetch`` replaces the aiohttp-backed fetcher (tests pass a fake).
    """

    settings = settings or load_settings()
    page_fetcher: Optional[PageFetcher] = None
    if fetch is None:
        page_fetcher = PageFetcher(
            FetchConfig(timeout=settings.fetch_timeout, user_agent=settings.user_agent)
        )
        fetch = page_fetcher

    store = ShardedStore(settings.db_root)
    registry = InFlightRegistry()
    cache = FetchCache(store, registry, fetch, timeout=settings.fetch_timeout)
    resolver = StatusResolver(store, registry)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("serving cache rooted at %s", store.root)
        yield
        await cache.drain()
        if page_fetcher is not None:
            await page_fetcher.close()

    app = FastAPI(title="fetchcache", version=__version__, lifespan=lifespan)
    app.state.cache = cache
    app.state.resolver = resolver

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        response = await call_next(request)
        logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def bad_request(_request: Request, exc: StarletteHTTPException) -> Response:
        if exc.status_code in (404, 405):
            return PlainTextResponse("Bad request.", status_code=400)
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.get("/")
    def usage() -> Response:
        return PlainTextResponse(USAGE)

    @app.get("/enqueue")
    async def enqueue(uri: Optional[str] = None) -> Response:
        if uri is None:
            return PlainTextResponse("Bad request.", status_code=400)
        key = cache.enqueue(uri)
        return JSONResponse({K_ID: key})

    @app.get("/status")
    async def status(id: Optional[str] = None) -> Response:
        try:
            result = await resolver.aresolve(id or "")
        except StoreIOError as exc:
            logger.error("status read failed for %s: %s", id, exc)
            return PlainTextResponse("Store error.", status_code=500)
        if result.state is CacheState.IN_FLIGHT:
            return PlainTextResponse("Not ready.", status_code=503)
        if result.state is CacheState.FOUND:
            return Response(content=result.body, media_type="text/html; charset=utf-8")
        return PlainTextResponse("No such id.", status_code=404)

    return app


def run_server(settings: Optional[CacheSettings] = None) -> None:
    import uvicorn

    settings = settings or load_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


__all__ = ["USAGE", "create_app", "run_server"]
