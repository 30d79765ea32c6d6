"""Script rendering for pages that need JavaScript before extraction.

Two interchangeable renderers satisfy the same contract
(``render(request, timeout) -> RenderedPage``):

* ``PlaywrightRenderer`` drives headless Chromium through Playwright. The
  browser is only touched from one worker task (``SerialQueue``), so
  concurrent renders queue up behind each other while the rest of the server
  stays concurrent. The page counts as rendered once its serialized DOM stops
  changing for ``settle_threshold`` consecutive samples.
* ``ProcessRenderer`` shells out to a Chromium/Chrome binary in ``--dump-dom``
  mode for hosts where Playwright's browsers are not installed. It honors the
  User-Agent but not custom headers or non-GET methods.

``build_renderer`` picks one from ``RendererSettings.mode``; ``auto`` tries
Playwright first and permanently falls back to the process renderer the first
time Playwright reports it is unavailable.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import shutil
import signal
import sys
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

import structlog
from playwright.async_api import Browser, Page, Playwright, Response, Route, async_playwright
from playwright.async_api import Error as PlaywrightError

from webreader.config import RendererSettings
from webreader.errors import (
    NavigationFailed,
    ProcessExitError,
    RenderError,
    RendererUnavailable,
    RenderTimeout,
)
from webreader.models.cache import ResponseMeta

log = structlog.get_logger()

T = TypeVar("T")

CHROME_PATH_ENV = "WEBREADER_CHROME_PATH"
CANDIDATE_BINARIES = (
    "chromium",
    "chromium-browser",
    "google-chrome",
    "google-chrome-stable",
    "chrome",
)
DUMP_DOM_CONTENT_TYPE = "text/html; charset=UTF-8"
REAP_TIMEOUT_SECONDS = 3.0

_OUTER_HTML_JS = "document.documentElement.outerHTML"


@dataclass(frozen=True)
class RenderRequest:
    url: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def user_agent(self) -> str | None:
        for name, value in self.headers.items():
            if name.lower() == "user-agent":
                return value or None
        return None

    @property
    def extra_headers(self) -> dict[str, str]:
        return {k: v for k, v in self.headers.items() if k.lower() != "user-agent"}


@dataclass(frozen=True)
class RenderedPage:
    payload: bytes
    meta: ResponseMeta


class Renderer(Protocol):
    async def render(self, request: RenderRequest, timeout: float) -> RenderedPage: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Settle detection
# ---------------------------------------------------------------------------


def _digest(document: str) -> str:
    return hashlib.sha256(document.encode("utf-8")).hexdigest()


async def _settle(
    sample: Callable[[], Awaitable[str | None]], interval: float, threshold: int
) -> str:
    # A None sample (evaluation failed) is never a match; it restarts the count.
    document = await sample()
    baseline = _digest(document) if document is not None else None
    matches = 0
    while matches < threshold or document is None:
        await asyncio.sleep(interval)
        document = await sample()
        if document is None:
            baseline = None
            matches = 0
            continue
        current = _digest(document)
        if current == baseline:
            matches += 1
        else:
            baseline = current
            matches = 0
    return document


async def wait_for_settle(
    sample: Callable[[], Awaitable[str | None]],
    *,
    interval: float,
    threshold: int,
    timeout: float,
) -> str:
    """Poll ``sample`` until its output is unchanged ``threshold`` times in a row.

    ``sample`` returns None when the document could not be read; such samples
    reset the count instead of matching. Returns the last serialization.
    Raises ``RenderTimeout`` if the document is still changing (or unreadable)
    after ``timeout`` seconds; the polling is cancelled, not left running.
    """
    try:
        async with asyncio.timeout(timeout):
            return await _settle(sample, interval, threshold)
    except TimeoutError as exc:
        raise RenderTimeout(timeout) from exc


# ---------------------------------------------------------------------------
# Single-worker queue
# ---------------------------------------------------------------------------


class SerialQueue:
    """Runs submitted jobs one at a time on a single worker task.

    Cancelling a caller cancels its job, whether it is still queued or
    already running.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any]]] = (
            asyncio.Queue()
        )
        self._worker: asyncio.Task[None] | None = None

    async def submit(self, job: Callable[[], Awaitable[T]]) -> T:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((job, future))
        return await future

    async def _run(self) -> None:
        while True:
            job, future = await self._queue.get()
            try:
                if future.done():
                    continue
                task = asyncio.create_task(job())
                future.add_done_callback(lambda f, t=task: t.cancel() if f.cancelled() else None)
                try:
                    await asyncio.wait([task])
                except asyncio.CancelledError:
                    task.cancel()
                    raise
                if future.done():
                    continue
                if task.cancelled():
                    future.cancel()
                elif (exc := task.exception()) is not None:
                    future.set_exception(exc)
                else:
                    future.set_result(task.result())
            finally:
                self._queue.task_done()

    async def close(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        await asyncio.gather(self._worker, return_exceptions=True)
        self._worker = None


# ---------------------------------------------------------------------------
# Embedded engine (Playwright)
# ---------------------------------------------------------------------------


class PlaywrightRenderer:
    def __init__(self, settings: RendererSettings) -> None:
        self._settings = settings
        self._queue = SerialQueue()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    async def render(self, request: RenderRequest, timeout: float) -> RenderedPage:
        return await self._queue.submit(lambda: self._render(request, timeout))

    async def close(self) -> None:
        await self._queue.close()
        await self._shutdown()

    async def _ensure_browser(self) -> Browser:
        if self._browser is None:
            try:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(headless=True)
            except PlaywrightError as exc:
                await self._shutdown()
                raise RendererUnavailable(
                    f"Could not launch Chromium via Playwright: {exc}"
                ) from exc
            log.info("renderer_started", engine="playwright")
        return self._browser

    async def _shutdown(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def _render(self, request: RenderRequest, timeout: float) -> RenderedPage:
        browser = await self._ensure_browser()
        try:
            return await self._render_in_browser(browser, request, timeout)
        except PlaywrightError as exc:
            raise RenderError(f"Rendering {request.url} failed: {exc.message}") from exc

    async def _render_in_browser(
        self, browser: Browser, request: RenderRequest, timeout: float
    ) -> RenderedPage:
        context = await browser.new_context(
            user_agent=request.user_agent,
            extra_http_headers=request.extra_headers or None,
            viewport={
                "width": self._settings.viewport_width,
                "height": self._settings.viewport_height,
            },
        )
        try:
            page = await context.new_page()
            responses: list[Response] = []

            def on_response(response: Response) -> None:
                if response.request.is_navigation_request() and response.frame == page.main_frame:
                    responses.append(response)

            page.on("response", on_response)
            if request.method != "GET":
                await self._override_method(page, request.method)

            async def sample() -> str | None:
                try:
                    return await page.evaluate(_OUTER_HTML_JS)
                except PlaywrightError as exc:
                    # Document replaced mid-sample (client-side redirect); not a match.
                    log.debug("render_sample_failed", url=request.url, error=exc.message)
                    return None

            # Navigation and settling share one budget.
            loop = asyncio.get_running_loop()
            deadline = loop.time() + timeout
            try:
                async with asyncio.timeout_at(deadline):
                    await self._navigate(page, request.url)
            except TimeoutError as exc:
                raise RenderTimeout(timeout) from exc
            try:
                document = await wait_for_settle(
                    sample,
                    interval=self._settings.settle_interval_seconds,
                    threshold=self._settings.settle_threshold,
                    timeout=max(deadline - loop.time(), 0),
                )
            except RenderTimeout as exc:
                raise RenderTimeout(timeout) from exc
        finally:
            await context.close()

        if not responses:
            raise RenderError(f"No navigation response captured for {request.url}")
        response = responses[-1]
        meta = ResponseMeta(
            url=response.url,
            status_code=response.status,
            content_type=response.headers.get("content-type", "text/html"),
        )
        log.debug("render_settled", url=request.url, status=meta.status_code, size=len(document))
        return RenderedPage(payload=document.encode("utf-8"), meta=meta)

    @staticmethod
    async def _navigate(page: Page, url: str) -> None:
        # The surrounding asyncio timeout bounds navigation; timeout=0 disables Playwright's own.
        try:
            await page.goto(url, wait_until="load", timeout=0)
        except PlaywrightError as exc:
            raise NavigationFailed(url, exc.message) from exc

    @staticmethod
    async def _override_method(page: Page, method: str) -> None:
        pending = True

        async def handler(route: Route) -> None:
            nonlocal pending
            if pending and route.request.is_navigation_request():
                pending = False
                await route.continue_(method=method)
            else:
                await route.continue_()

        await page.route("**/*", handler)


# ---------------------------------------------------------------------------
# External process fallback
# ---------------------------------------------------------------------------


def find_browser_binary(env: Mapping[str, str] | None = None) -> str | None:
    """Locate a headless-capable Chromium/Chrome executable.

    ``WEBREADER_CHROME_PATH`` wins if it names an executable file; otherwise
    the first of ``CANDIDATE_BINARIES`` found on ``PATH``.
    """
    env = os.environ if env is None else env
    override = env.get(CHROME_PATH_ENV)
    if override and os.path.isfile(override) and os.access(override, os.X_OK):
        return override
    search_path = env.get("PATH", os.defpath)
    for name in CANDIDATE_BINARIES:
        found = shutil.which(name, path=search_path)
        if found:
            return found
    return None


class _ProcessGuard:
    """Kills a subprocess (and its process group) at most once, and never after it has exited.

    Chromium forks helpers that inherit stdout/stderr, so killing only the
    direct child would leave ``communicate()`` waiting on their pipes.
    """

    def __init__(self, proc: asyncio.subprocess.Process) -> None:
        self._proc = proc
        self.terminated = False
        self.killed = False

    def mark_exited(self) -> None:
        self.terminated = True

    def terminate(self) -> bool:
        # No await between the check and the set, so this can't interleave with mark_exited.
        if self.terminated:
            return False
        self.terminated = True
        try:
            if sys.platform == "win32":
                if self._proc.returncode is not None:
                    return False
                self._proc.kill()
            else:
                # The group outlives its leader while helpers still hold the pipes.
                os.killpg(self._proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            return False
        self.killed = True
        return True

    async def reap(self, timeout: float = REAP_TIMEOUT_SECONDS) -> None:
        try:
            await asyncio.wait_for(self._proc.wait(), timeout=timeout)
        except TimeoutError:
            log.warning("render_process_not_reaped", pid=self._proc.pid)

    async def kill_after(self, timeout: float) -> None:
        await asyncio.sleep(timeout)
        if self.terminate():
            log.warning("render_process_killed", pid=self._proc.pid, timeout=timeout)


class ProcessRenderer:
    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = env

    @staticmethod
    def build_command(binary: str, request: RenderRequest, timeout: float) -> list[str]:
        args = [
            binary,
            "--headless=new",
            "--disable-gpu",
            "--no-sandbox",
            "--disable-dev-shm-usage",
            "--hide-scrollbars",
            f"--virtual-time-budget={int(timeout * 1000)}",
            "--dump-dom",
        ]
        if request.user_agent:
            args.append(f"--user-agent={request.user_agent}")
        args.append(request.url)
        return args

    async def render(self, request: RenderRequest, timeout: float) -> RenderedPage:
        binary = find_browser_binary(self._env)
        if binary is None:
            raise RendererUnavailable(
                "No Chromium/Chrome binary found. Set WEBREADER_CHROME_PATH or install "
                "chromium/google-chrome."
            )
        if request.method != "GET" or request.extra_headers:
            log.debug(
                "render_process_request_simplified",
                url=request.url,
                method=request.method,
                dropped_headers=sorted(request.extra_headers),
            )

        try:
            proc = await asyncio.create_subprocess_exec(
                *self.build_command(binary, request, timeout),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=sys.platform != "win32",
            )
        except OSError as exc:
            raise RendererUnavailable(f"Could not start {binary}: {exc}") from exc

        guard = _ProcessGuard(proc)
        watchdog = asyncio.create_task(guard.kill_after(timeout))
        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            if guard.terminate():
                await guard.reap()
            raise
        finally:
            guard.mark_exited()
            watchdog.cancel()

        if guard.killed:
            raise RenderTimeout(timeout)
        if proc.returncode != 0:
            raise ProcessExitError(proc.returncode or -1, stderr.decode("utf-8", errors="replace"))

        meta = ResponseMeta(url=request.url, status_code=200, content_type=DUMP_DOM_CONTENT_TYPE)
        return RenderedPage(payload=stdout, meta=meta)

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


class FallbackRenderer:
    """Use ``primary`` until it reports ``RendererUnavailable``, then ``fallback`` for good."""

    def __init__(self, primary: Renderer, fallback: Renderer) -> None:
        self._primary = primary
        self._fallback = fallback
        self._degraded = False

    async def render(self, request: RenderRequest, timeout: float) -> RenderedPage:
        if not self._degraded:
            try:
                return await self._primary.render(request, timeout)
            except RendererUnavailable as exc:
                log.warning("renderer_fallback", reason=exc.message)
                self._degraded = True
        return await self._fallback.render(request, timeout)

    async def close(self) -> None:
        await self._primary.close()
        await self._fallback.close()


def build_renderer(settings: RendererSettings) -> Renderer:
    if settings.mode == "playwright":
        return PlaywrightRenderer(settings)
    if settings.mode == "process":
        return ProcessRenderer()
    return FallbackRenderer(PlaywrightRenderer(settings), ProcessRenderer())
