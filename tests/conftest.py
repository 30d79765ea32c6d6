"""Shared fixtures for unit and integration tests."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Environment for running the server as a subprocess against a throwaway cache."""
    env = os.environ.copy()
    env["WEBREADER__CACHE__DIR"] = str(tmp_path / "cache")
    env["WEBREADER__LOGGING__LEVEL"] = "WARNING"
    env["WEBREADER__RENDERER__MODE"] = "process"
    return env
