"""Wire-level integration tests for tool listing, the status resource and error envelopes."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from conftest import Exchange


def test_invalid_input_serializes_to_structured_tool_error(exchange: Exchange) -> None:
    """WebReaderError should be returned as structured JSON in tool result text."""
    responses = exchange(
        [
            {
                "jsonrpc": "2.0",
                "id": 2,
                "method": "tools/call",
                "params": {
                    "name": "search_page",
                    "arguments": {"url": "https://example.com", "query": ""},
                },
            }
        ]
    )

    result = responses[2]["result"]
    assert result["isError"] is True

    text_payload = result["content"][0]["text"]
    assert "Error executing tool" not in text_payload

    parsed = json.loads(text_payload)
    assert parsed["error"]["code"] == "INVALID_INPUT"
    assert parsed["error"]["recoverable"] is False
    assert "query must not be empty" in parsed["error"]["message"]


def test_unsupported_scheme_is_invalid_input(exchange: Exchange) -> None:
    responses = exchange(
        [
            {
                "jsonrpc": "2.0",
                "id": 2,
                "method": "tools/call",
                "params": {"name": "fetch_page", "arguments": {"url": "file:///etc/passwd"}},
            }
        ]
    )

    parsed = json.loads(responses[2]["result"]["content"][0]["text"])
    assert parsed["error"]["code"] == "INVALID_INPUT"
    assert "http or https" in parsed["error"]["message"]


def test_tools_listed(exchange: Exchange) -> None:
    responses = exchange([{"jsonrpc": "2.0", "id": 2, "method": "tools/list"}])

    tools = {tool["name"]: tool for tool in responses[2]["result"]["tools"]}
    assert set(tools) == {"fetch_page", "search_page", "search_web", "clear_cache"}
    assert "url" in tools["fetch_page"]["inputSchema"]["properties"]


def test_status_resource(exchange: Exchange, subprocess_env: dict[str, str]) -> None:
    responses = exchange(
        [
            {
                "jsonrpc": "2.0",
                "id": 2,
                "method": "resources/read",
                "params": {"uri": "webreader://status"},
            }
        ]
    )

    contents = responses[2]["result"]["contents"][0]
    status = json.loads(contents["text"])
    assert status["status"] == "healthy"
    assert status["renderer_mode"] == "process"
    assert status["cache_dir"].startswith(subprocess_env["WEBREADER__CACHE__DIR"])


def test_clear_cache_over_the_wire(exchange: Exchange) -> None:
    responses = exchange(
        [
            {
                "jsonrpc": "2.0",
                "id": 2,
                "method": "tools/call",
                "params": {"name": "clear_cache", "arguments": {}},
            }
        ]
    )

    result = responses[2]["result"]
    assert result["isError"] is False
    assert json.loads(result["content"][0]["text"])["cleared"] is True
