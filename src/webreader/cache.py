"""Flat-file page cache with a fixed time-to-live.

Each entry is two files in ``<root>/<namespace>/``:

    <key>        raw payload bytes
    <key>.meta   JSON: {"url", "timestamp", "contentType"}

Both files are written with write-to-temp-then-rename, so a reader never sees
a half-written file. The pair is not transactional: concurrent writers to the
same key race and the last completed write wins.

Read failures never leave this module. A missing file, an unreadable file,
unparsable metadata and an expired timestamp all come back from ``get`` as
``None`` (a miss) and the caller falls through to a live fetch. Write
failures (``OSError``) do propagate; the fetch engine decides what to do
with them.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

import structlog
from pydantic import ValidationError

from webreader.models.cache import CacheEntry, CacheMetadata

log = structlog.get_logger()

META_SUFFIX = ".meta"
DEFAULT_CONTENT_TYPE = "text/html"


def utc_now() -> datetime:
    return datetime.now(UTC)


def cache_key(url: str, render_js: bool) -> str:
    """Hex digest identifying a request by its absolute URL and render flag.

    The render flag is part of the identity: a rendered and an un-rendered
    fetch of the same URL are different documents.
    """
    identity = f"{url}-hasRenderedJS-{'true' if render_js else 'false'}"
    return hashlib.sha256(identity.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheMiss:
    """Why a lookup produced no entry. ``error`` is set for corruption/IO faults."""

    reason: str
    error: Exception | None = None


def _atomic_write(path: Path, data: bytes) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class CacheStore:
    """TTL-bounded on-disk cache keyed by ``cache_key``."""

    def __init__(
        self,
        root: str | Path,
        namespace: str,
        ttl: timedelta,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.directory = Path(root).expanduser() / namespace
        self.ttl = ttl
        self._clock = clock

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def payload_path(self, key: str) -> Path:
        return self.directory / key

    def metadata_path(self, key: str) -> Path:
        return self.directory / f"{key}{META_SUFFIX}"

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def get(self, key: str) -> CacheEntry | None:
        """Return a fresh entry, or ``None`` on miss, staleness or corruption."""
        result = await asyncio.to_thread(self._load, key)
        if isinstance(result, CacheMiss):
            if result.error is None:
                log.debug("cache_miss", key=key, reason=result.reason)
            else:
                log.warning(
                    "cache_read_error", key=key, reason=result.reason, error=str(result.error)
                )
            return None
        return result

    def _load(self, key: str) -> CacheEntry | CacheMiss:
        try:
            raw_metadata = self.metadata_path(key).read_bytes()
            payload = self.payload_path(key).read_bytes()
        except FileNotFoundError:
            return CacheMiss("absent")
        except OSError as exc:
            return CacheMiss("unreadable", exc)

        try:
            metadata = CacheMetadata.model_validate_json(raw_metadata)
        except ValidationError as exc:
            return CacheMiss("corrupt_metadata", exc)

        if self._clock() - metadata.timestamp >= self.ttl:
            return CacheMiss("stale")

        return CacheEntry(
            url=metadata.url,
            payload=payload,
            content_type=metadata.content_type,
            timestamp=metadata.timestamp,
        )

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def put(self, key: str, url: str, payload: bytes, content_type: str | None) -> None:
        """Persist payload then metadata. Raises ``OSError`` on disk failure."""
        metadata = CacheMetadata(
            url=url,
            timestamp=self._clock(),
            content_type=content_type or DEFAULT_CONTENT_TYPE,
        )
        await asyncio.to_thread(self._write, key, payload, metadata)
        log.debug("cache_write", key=key, url=url, size=len(payload))

    def _write(self, key: str, payload: bytes, metadata: CacheMetadata) -> None:
        self.ensure_directory()
        _atomic_write(self.payload_path(key), payload)
        _atomic_write(
            self.metadata_path(key),
            metadata.model_dump_json(by_alias=True).encode("utf-8"),
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def clear(self) -> None:
        """Drop every entry. Raises ``OSError`` only if the directory can't be recreated."""
        await asyncio.to_thread(self._reset)
        log.info("cache_cleared", directory=str(self.directory))

    def _reset(self) -> None:
        shutil.rmtree(self.directory, ignore_errors=True)
        self.ensure_directory()
