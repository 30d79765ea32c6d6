"""Unit-specific fixtures (on-disk cache under tmp_path, fake clock, fake renderer)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import httpx
import pytest

from webreader.cache import CacheStore
from webreader.config import RendererSettings, Settings
from webreader.fetcher import FetchEngine
from webreader.janitor import CacheJanitor
from webreader.models.cache import ResponseMeta
from webreader.renderer import RenderedPage, RenderRequest
from webreader.state import AppState

if TYPE_CHECKING:
    from pathlib import Path

TTL = timedelta(seconds=3600)


class FakeClock:
    """Settable replacement for ``utc_now``."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class StubRandom:
    """Stands in for ``random.Random`` with a fixed draw."""

    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


class FakeRenderer:
    """Records render requests and replays a canned page (or raises)."""

    def __init__(self, html: str = "<html><body>rendered</body></html>", status: int = 200):
        self.html = html
        self.status = status
        self.error: Exception | None = None
        self.calls: list[tuple[RenderRequest, float]] = []
        self.closed = False

    async def render(self, request: RenderRequest, timeout: float) -> RenderedPage:
        self.calls.append((request, timeout))
        if self.error is not None:
            raise self.error
        return RenderedPage(
            payload=self.html.encode("utf-8"),
            meta=ResponseMeta(url=request.url, status_code=self.status, content_type="text/html"),
        )

    async def close(self) -> None:
        self.closed = True


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(tmp_path: Path, clock: FakeClock) -> CacheStore:
    s = CacheStore(tmp_path / "cache", "com.webreader.test", TTL, clock=clock)
    s.ensure_directory()
    return s


@pytest.fixture()
def janitor(store: CacheStore) -> CacheJanitor:
    # Never sweeps unless a test swaps the rng.
    return CacheJanitor(store.directory, store.ttl, sweep_probability=0.1, rng=StubRandom(0.99))


@pytest.fixture()
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture()
async def engine(
    store: CacheStore, janitor: CacheJanitor, renderer: FakeRenderer, clock: FakeClock
):
    async with httpx.AsyncClient(follow_redirects=True) as client:
        yield FetchEngine(
            client,
            store,
            janitor,
            renderer,
            RendererSettings(timeout_seconds=12),
            clock=clock,
        )


@pytest.fixture()
def app_state(
    engine: FetchEngine, store: CacheStore, janitor: CacheJanitor, renderer: FakeRenderer
) -> AppState:
    return AppState(
        settings=Settings(),
        http_client=engine._client,
        cache=store,
        janitor=janitor,
        renderer=renderer,
        engine=engine,
    )
