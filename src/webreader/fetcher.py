"""Fetch engine: cache lookup, live fetch (plain HTTP or rendered), cache fill.

Every tool goes through ``FetchEngine.fetch``. The engine never retries and
never turns a non-2xx status into an error: the response is handed back for
the caller to judge, and only 2xx payloads are cached. Network failures
(``httpx.HTTPError``) and renderer failures (``RenderError``) propagate
unchanged.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

import httpx
import structlog

from webreader.cache import cache_key, utc_now
from webreader.models.cache import CacheResponse, ResponseMeta
from webreader.renderer import RenderRequest

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from webreader.cache import CacheStore
    from webreader.config import FetcherSettings, RendererSettings
    from webreader.janitor import CacheJanitor
    from webreader.renderer import Renderer

log = structlog.get_logger()

# Derived by the transport, or would corrupt framing if overridden.
BLOCKED_HEADERS = frozenset({"host", "content-length", "connection"})


def build_http_client(settings: FetcherSettings) -> httpx.AsyncClient:
    """Create the shared httpx client. httpx keeps no response cache, so every request is live."""
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(settings.request_timeout_seconds),
        headers={"User-Agent": settings.user_agent},
    )


def build_request_headers(
    user_agent: str | None, headers: Mapping[str, str] | None
) -> dict[str, str]:
    """User-Agent (if given) plus caller headers, minus ``BLOCKED_HEADERS``."""
    result: dict[str, str] = {}
    if user_agent:
        result["User-Agent"] = user_agent
    for name, value in (headers or {}).items():
        if name.lower() in BLOCKED_HEADERS:
            log.debug("header_dropped", header=name)
            continue
        result[name] = value
    return result


class FetchEngine:
    def __init__(
        self,
        client: httpx.AsyncClient,
        store: CacheStore,
        janitor: CacheJanitor,
        renderer: Renderer,
        renderer_settings: RendererSettings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._store = store
        self._janitor = janitor
        self._renderer = renderer
        self._render_timeout = renderer_settings.timeout_seconds
        self._clock = clock

    async def fetch(
        self,
        url: str,
        *,
        render_js: bool = False,
        ignore_cache: bool = False,
        method: str = "GET",
        user_agent: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> CacheResponse:
        key = cache_key(url, render_js)

        if not ignore_cache:
            cached = await self._from_cache(key)
            if cached is not None:
                return cached

        request_headers = build_request_headers(user_agent, headers)
        if render_js:
            rendered = await self._renderer.render(
                RenderRequest(url=url, method=method, headers=request_headers),
                timeout=self._render_timeout,
            )
            payload, meta = rendered.payload, rendered.meta
        else:
            response = await self._client.request(method, url, headers=request_headers)
            payload = response.content
            meta = ResponseMeta(
                url=str(response.url),
                status_code=response.status_code,
                content_type=response.headers.get("content-type", "text/html"),
            )

        log.info(
            "page_fetched",
            url=url,
            render_js=render_js,
            status=meta.status_code,
            size=len(payload),
        )

        if meta.ok:
            try:
                await self._store.put(key, url, payload, meta.content_type)
            except OSError:
                log.warning("cache_write_error", key=key, url=url, exc_info=True)

        return CacheResponse(
            payload=payload,
            meta=meta,
            cache_hit=False,
            cache_age=None,
            cache_ttl=self._store.ttl,
        )

    async def _from_cache(self, key: str) -> CacheResponse | None:
        entry = await self._store.get(key)
        if entry is None:
            return None

        age = self._clock() - entry.timestamp
        log.debug("cache_hit", key=key, url=entry.url, age_seconds=age.total_seconds())

        if self._janitor.should_sweep():
            await self._janitor.sweep()

        return CacheResponse(
            payload=entry.payload,
            meta=ResponseMeta(url=entry.url, status_code=200, content_type=entry.content_type),
            cache_hit=True,
            cache_age=age,
            cache_ttl=self._store.ttl - age,
        )

    async def clear_cache(self) -> None:
        """Remove every cached entry. Raises ``OSError`` if the cache dir can't be recreated."""
        await self._store.clear()
