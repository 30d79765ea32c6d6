"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (WEBREADER__CACHE__TTL_SECONDS=600)
  2. webreader.yaml         (searched in cwd, then the platform config dir)
  3. Hardcoded defaults

The config file is optional: all fields have sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from webreader import __version__

_DEFAULT_CACHE_DIR = platformdirs.user_cache_dir("webreader")
_DEFAULT_CONFIG_DIR = platformdirs.user_config_dir("webreader")


def _find_config_file() -> str | None:
    """Return the path of the first webreader.yaml found, or None."""
    candidates = [
        Path("webreader.yaml"),
        Path(_DEFAULT_CONFIG_DIR) / "webreader.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dir: str = _DEFAULT_CACHE_DIR
    namespace: str = "com.webreader.mcp"
    ttl_seconds: int = Field(default=3600, gt=0)
    # Chance that a cache hit triggers an expired-entry sweep.
    sweep_probability: float = Field(default=0.1, ge=0.0, le=1.0)


class FetcherSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    request_timeout_seconds: float = Field(default=30.0, gt=0)
    user_agent: str = f"webreader/{__version__}"


class RendererSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mode: Literal["auto", "playwright", "process"] = "auto"
    timeout_seconds: float = Field(default=45.0, gt=0)
    settle_interval_seconds: float = Field(default=0.5, gt=0)
    settle_threshold: int = Field(default=3, ge=1)
    viewport_width: int = 1920
    viewport_height: int = 1080


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: WEBREADER__RENDERER__MODE=process
        env_prefix="WEBREADER__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    cache: CacheSettings = CacheSettings()
    fetcher: FetcherSettings = FetcherSettings()
    renderer: RendererSettings = RendererSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
