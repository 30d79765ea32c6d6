"""Error taxonomy shared by the engine, the tools and the server.

Cache misses and cache corruption are never raised: they degrade to a live
fetch inside ``CacheStore``. Network failures (``httpx.HTTPError``) leave the
engine untouched and are converted by the tool layer. Everything that reaches
the agent is a ``WebReaderError`` carrying a stable ``ErrorCode``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    FETCH_FAILED = "FETCH_FAILED"
    HTTP_ERROR = "HTTP_ERROR"
    DECODE_FAILED = "DECODE_FAILED"
    RENDERER_UNAVAILABLE = "RENDERER_UNAVAILABLE"
    RENDER_TIMEOUT = "RENDER_TIMEOUT"
    NAVIGATION_FAILED = "NAVIGATION_FAILED"
    RENDER_PROCESS_FAILED = "RENDER_PROCESS_FAILED"
    RENDER_FAILED = "RENDER_FAILED"
    CACHE_CLEAR_FAILED = "CACHE_CLEAR_FAILED"


class WebReaderError(Exception):
    """Structured error returned to the agent as a JSON envelope."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str = "",
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }


# ---------------------------------------------------------------------------
# Renderer failures
# ---------------------------------------------------------------------------


class RenderError(WebReaderError):
    """Generic rendering failure (engine crashed, no response captured, ...)."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.RENDER_FAILED) -> None:
        super().__init__(
            code,
            message,
            suggestion="Retry with render_js=false if the page does not need scripts.",
        )


class RendererUnavailable(RenderError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorCode.RENDERER_UNAVAILABLE)
        self.suggestion = (
            "Install Playwright browsers (playwright install chromium), install "
            "chromium/google-chrome, or set WEBREADER_CHROME_PATH."
        )


class RenderTimeout(RenderError):
    """The page never settled within the render budget."""

    def __init__(self, timeout: float) -> None:
        super().__init__(
            f"Page did not finish rendering within {timeout:g}s", ErrorCode.RENDER_TIMEOUT
        )
        self.timeout = timeout
        self.recoverable = True


class NavigationFailed(RenderError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Navigation to {url} failed: {reason}", ErrorCode.NAVIGATION_FAILED)
        self.url = url


class ProcessExitError(RenderError):
    def __init__(self, exit_code: int, stderr: str) -> None:
        super().__init__(
            f"Headless browser exited with code {exit_code}. Stderr: {stderr}",
            ErrorCode.RENDER_PROCESS_FAILED,
        )
        self.exit_code = exit_code
        self.stderr = stderr
