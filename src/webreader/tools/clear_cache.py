"""clear_cache: drop every cached page."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from webreader.errors import ErrorCode, WebReaderError
from webreader.models.tools import ClearCacheInput, ClearCacheOutput

if TYPE_CHECKING:
    from webreader.state import AppState

DESCRIPTION = (
    "Remove every cached page so later fetches go to the network. Prefer "
    "`ignore_cache: true` on a single fetch when only one page is stale."
)


async def handle(params: ClearCacheInput, state: AppState) -> dict[str, Any]:
    try:
        await state.engine.clear_cache()
    except OSError as exc:
        raise WebReaderError(
            code=ErrorCode.CACHE_CLEAR_FAILED,
            message=f"Could not recreate cache directory {state.cache.directory}: {exc}",
        ) from exc
    return ClearCacheOutput(cleared=True, cache_dir=str(state.cache.directory)).model_dump()
