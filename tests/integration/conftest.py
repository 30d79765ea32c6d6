"""Integration test helpers: drive ``python -m webreader.server`` over stdio."""

from __future__ import annotations

import json
import subprocess
import sys
from collections.abc import Callable
from typing import Any

import pytest

INITIALIZE = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "initialize",
    "params": {
        "protocolVersion": "2025-11-25",
        "capabilities": {},
        "clientInfo": {"name": "pytest", "version": "0"},
    },
}
INITIALIZED = {"jsonrpc": "2.0", "method": "notifications/initialized"}

Exchange = Callable[[list[dict[str, Any]]], dict[int, dict[str, Any]]]


def start_server(env: dict[str, str]) -> subprocess.Popen[str]:
    return subprocess.Popen(
        [sys.executable, "-m", "webreader.server"],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env=env,
    )


@pytest.fixture()
def exchange(subprocess_env: dict[str, str]) -> Exchange:
    """Send an initialize handshake plus ``requests``, close stdin, collect replies by id."""

    def run(requests: list[dict[str, Any]]) -> dict[int, dict[str, Any]]:
        proc = start_server(subprocess_env)
        assert proc.stdin is not None
        assert proc.stdout is not None
        assert proc.stderr is not None

        for message in [INITIALIZE, INITIALIZED, *requests]:
            proc.stdin.write(json.dumps(message) + "\n")
        proc.stdin.close()

        stdout_lines = [line for line in proc.stdout.read().splitlines() if line.strip()]
        proc.stderr.read()  # Drain for clean process shutdown on all platforms
        proc.wait(timeout=10)

        responses = [json.loads(line) for line in stdout_lines]
        return {response["id"]: response for response in responses if "id" in response}

    return run
