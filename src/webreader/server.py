"""MCP server entry point (stdio transport).

Run with ``python -m webreader.server`` or the ``webreader`` console script.
Settings are validated before the transport starts, so a bad config exits
non-zero without speaking the protocol. stdout carries protocol messages;
logs go to stderr.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import mcp.types as types
import structlog
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.shared.exceptions import McpError

from webreader import __version__
from webreader.config import LoggingSettings, Settings
from webreader.errors import WebReaderError
from webreader.state import AppState, open_state
from webreader.tools import TOOLS, dispatch

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from pydantic import AnyUrl

log = structlog.get_logger()

STATUS_URI = "webreader://status"


def setup_logging(settings: LoggingSettings) -> None:
    """Configure structlog to write to stderr at the configured level."""
    level = logging.getLevelNamesMapping()[settings.level]
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if settings.format == "json":
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def _json_result(payload: dict[str, Any], is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=json.dumps(payload))],
        isError=is_error,
    )


def status_document(state: AppState) -> dict[str, Any]:
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
        "started_at": state.started_at.isoformat(),
        "cache_dir": str(state.cache.directory),
        "cache_ttl_seconds": state.cache.ttl.total_seconds(),
        "renderer_mode": state.settings.renderer.mode,
    }


def create_server(settings: Settings) -> Server[AppState, Any]:
    @asynccontextmanager
    async def lifespan(_server: Server[AppState, Any]) -> AsyncIterator[AppState]:
        async with open_state(settings) as state:
            yield state

    server: Server[AppState, Any] = Server("webreader", version=__version__, lifespan=lifespan)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [
            types.Tool(
                name=tool.name,
                description=tool.description,
                inputSchema=tool.input_schema(),
            )
            for tool in TOOLS.values()
        ]

    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: dict[str, Any]) -> types.CallToolResult:
        state = server.request_context.lifespan_context
        try:
            result = await dispatch(name, arguments, state)
        except WebReaderError as exc:
            log.info("tool_error", tool=name, code=exc.code.value, message=exc.message)
            return _json_result(exc.to_dict(), is_error=True)
        return _json_result(result)

    @server.list_resources()
    async def list_resources() -> list[types.Resource]:
        return [
            types.Resource(
                name="Server Status",
                uri=STATUS_URI,  # type: ignore[arg-type]
                description="Current server status, cache location and renderer mode",
                mimeType="application/json",
            )
        ]

    @server.read_resource()
    async def read_resource(uri: AnyUrl) -> list[ReadResourceContents]:
        if str(uri) != STATUS_URI:
            raise McpError(
                types.ErrorData(code=types.INVALID_PARAMS, message=f"Unknown resource URI: {uri}")
            )
        state = server.request_context.lifespan_context
        body = json.dumps(status_document(state))
        return [ReadResourceContents(content=body, mime_type="application/json")]

    return server


async def serve(settings: Settings) -> None:
    server = create_server(settings)
    log.info("server_starting", version=__version__, transport="stdio")
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
    log.info("server_stopped")


def main() -> None:
    settings = Settings()
    setup_logging(settings.logging)
    asyncio.run(serve(settings))


if __name__ == "__main__":
    main()
