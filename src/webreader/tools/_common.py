"""Helpers shared by the tool handlers."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from webreader.errors import ErrorCode, WebReaderError
from webreader.models.tools import FetchStatistics

if TYPE_CHECKING:
    from datetime import timedelta

    from webreader.models.cache import CacheResponse
    from webreader.models.tools import RequestOptions
    from webreader.state import AppState

M = TypeVar("M", bound=BaseModel)


def _seconds(delta: timedelta | None) -> float | None:
    return delta.total_seconds() if delta is not None else None


def parse_input(model: type[M], arguments: dict[str, Any] | None) -> M:
    """Validate raw tool arguments, mapping pydantic errors to INVALID_INPUT."""
    try:
        return model.model_validate(arguments or {})
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
            for err in exc.errors()
        )
        raise WebReaderError(code=ErrorCode.INVALID_INPUT, message=details) from exc


@dataclass
class Timings:
    """Wall-clock checkpoints for the statistics block of a tool result."""

    started: float
    fetched: float = 0.0
    parse_started: float = 0.0
    parsed: float = 0.0

    @classmethod
    def start(cls) -> Timings:
        return cls(started=time.perf_counter())

    def statistics(
        self, response: CacheResponse, search_time: float | None = None
    ) -> FetchStatistics:
        return FetchStatistics(
            total_time=time.perf_counter() - self.started,
            network_time=self.fetched - self.started,
            parsing_time=self.parsed - self.parse_started,
            cache_hit=response.cache_hit,
            cache_age=_seconds(response.cache_age),
            cache_ttl=_seconds(response.cache_ttl),
            search_time=search_time,
        )


async def fetch_ok(
    state: AppState, url: str, options: RequestOptions, render_js: bool
) -> CacheResponse:
    """Fetch through the engine and insist on a 2xx response."""
    try:
        response = await state.engine.fetch(
            url,
            render_js=render_js,
            ignore_cache=options.ignore_cache,
            method=options.http_method,
            user_agent=options.user_agent,
            headers=options.custom_headers,
        )
    except httpx.HTTPError as exc:
        raise WebReaderError(
            code=ErrorCode.FETCH_FAILED,
            message=f"Failed to fetch {url}: {exc}",
            suggestion="Check the URL and network connectivity, then retry.",
            recoverable=True,
        ) from exc

    status = response.meta.status_code
    if not response.meta.ok:
        raise WebReaderError(
            code=ErrorCode.HTTP_ERROR,
            message=f"HTTP {status}: Failed to fetch page",
            recoverable=status == 429 or status >= 500,
        )
    return response
