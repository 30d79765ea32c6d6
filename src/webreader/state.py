"""Process-wide application state, built once at startup and injected into tools."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import httpx
import structlog

from webreader.cache import CacheStore, utc_now
from webreader.fetcher import FetchEngine, build_http_client
from webreader.janitor import CacheJanitor
from webreader.renderer import Renderer, build_renderer

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from webreader.config import Settings

log = structlog.get_logger()


@dataclass
class AppState:
    settings: Settings
    http_client: httpx.AsyncClient
    cache: CacheStore
    janitor: CacheJanitor
    renderer: Renderer
    engine: FetchEngine
    started_at: datetime = field(default_factory=utc_now)


@asynccontextmanager
async def open_state(settings: Settings) -> AsyncIterator[AppState]:
    """Wire the cache, renderer and fetch engine; tear them down on exit.

    Creating the cache directory happens here, so an unwritable cache path
    fails startup rather than the first request.
    """
    cache = CacheStore(
        settings.cache.dir,
        settings.cache.namespace,
        timedelta(seconds=settings.cache.ttl_seconds),
    )
    cache.ensure_directory()
    janitor = CacheJanitor(cache.directory, cache.ttl, settings.cache.sweep_probability)
    renderer = build_renderer(settings.renderer)

    async with build_http_client(settings.fetcher) as client:
        engine = FetchEngine(client, cache, janitor, renderer, settings.renderer)
        log.info(
            "state_ready",
            cache_dir=str(cache.directory),
            ttl_seconds=settings.cache.ttl_seconds,
            renderer_mode=settings.renderer.mode,
        )
        try:
            yield AppState(
                settings=settings,
                http_client=client,
                cache=cache,
                janitor=janitor,
                renderer=renderer,
                engine=engine,
            )
        finally:
            await renderer.close()
