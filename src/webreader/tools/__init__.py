"""Tool registry: name, description, input model and handler for each MCP tool."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from webreader.errors import ErrorCode, WebReaderError
from webreader.models.tools import ClearCacheInput, FetchPageInput, SearchPageInput, SearchWebInput
from webreader.tools import clear_cache, fetch_page, search_page, search_web
from webreader.tools._common import parse_input

if TYPE_CHECKING:
    from webreader.state import AppState


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_model: type[BaseModel]
    handler: Callable[[Any, AppState], Awaitable[dict[str, Any]]]

    def input_schema(self) -> dict[str, Any]:
        return self.input_model.model_json_schema()


TOOLS: dict[str, ToolDefinition] = {
    tool.name: tool
    for tool in (
        ToolDefinition("fetch_page", fetch_page.DESCRIPTION, FetchPageInput, fetch_page.handle),
        ToolDefinition("search_page", search_page.DESCRIPTION, SearchPageInput, search_page.handle),
        ToolDefinition("search_web", search_web.DESCRIPTION, SearchWebInput, search_web.handle),
        ToolDefinition("clear_cache", clear_cache.DESCRIPTION, ClearCacheInput, clear_cache.handle),
    )
}


async def dispatch(name: str, arguments: dict[str, Any] | None, state: AppState) -> dict[str, Any]:
    tool = TOOLS.get(name)
    if tool is None:
        raise WebReaderError(code=ErrorCode.INVALID_INPUT, message=f"Unknown tool {name!r}")
    params = parse_input(tool.input_model, arguments)
    return await tool.handler(params, state)
