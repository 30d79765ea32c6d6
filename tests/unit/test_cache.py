"""Unit tests for the flat-file CacheStore."""

from __future__ import annotations

import hashlib
import json
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from webreader.cache import CacheMiss, CacheStore, cache_key

if TYPE_CHECKING:
    from pathlib import Path

    from conftest import FakeClock

URL = "https://example.com/docs"


class TestCacheKey:
    def test_deterministic(self) -> None:
        assert cache_key(URL, False) == cache_key(URL, False)

    def test_render_flag_is_part_of_identity(self) -> None:
        assert cache_key(URL, True) != cache_key(URL, False)

    def test_different_urls_differ(self) -> None:
        assert cache_key(URL, False) != cache_key(URL + "?page=2", False)

    def test_digest_of_url_and_flag(self) -> None:
        expected = hashlib.sha256(f"{URL}-hasRenderedJS-true".encode()).hexdigest()
        assert cache_key(URL, True) == expected


class TestGetPut:
    async def test_put_then_get(self, store: CacheStore, clock: FakeClock) -> None:
        key = cache_key(URL, False)
        await store.put(key, URL, b"<html>hi</html>", "text/html; charset=utf-8")

        entry = await store.get(key)
        assert entry is not None
        assert entry.url == URL
        assert entry.payload == b"<html>hi</html>"
        assert entry.content_type == "text/html; charset=utf-8"
        assert entry.timestamp == clock.now

    async def test_on_disk_layout(self, store: CacheStore) -> None:
        key = cache_key(URL, False)
        await store.put(key, URL, b"body", "text/plain")

        assert store.payload_path(key).read_bytes() == b"body"
        meta = json.loads(store.metadata_path(key).read_text())
        assert set(meta) == {"url", "timestamp", "contentType"}
        assert meta["contentType"] == "text/plain"

    async def test_missing_content_type_defaults_to_html(self, store: CacheStore) -> None:
        key = cache_key(URL, False)
        await store.put(key, URL, b"body", None)
        entry = await store.get(key)
        assert entry is not None
        assert entry.content_type == "text/html"

    async def test_get_absent_returns_none(self, store: CacheStore) -> None:
        assert await store.get(cache_key(URL, False)) is None

    async def test_overwrite_last_write_wins(self, store: CacheStore) -> None:
        key = cache_key(URL, False)
        await store.put(key, URL, b"first", "text/html")
        await store.put(key, URL, b"second", "text/html")
        entry = await store.get(key)
        assert entry is not None
        assert entry.payload == b"second"

    async def test_no_temp_files_left_behind(self, store: CacheStore) -> None:
        key = cache_key(URL, False)
        await store.put(key, URL, b"body", "text/html")
        names = sorted(p.name for p in store.directory.iterdir())
        assert names == sorted([key, f"{key}.meta"])

    async def test_put_creates_missing_directory(self, tmp_path: Path) -> None:
        store = CacheStore(tmp_path / "a" / "b", "ns", timedelta(hours=1))
        key = cache_key(URL, False)
        await store.put(key, URL, b"body", "text/html")
        assert store.payload_path(key).exists()

    async def test_put_failure_propagates(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = CacheStore(blocker, "ns", timedelta(hours=1))
        with pytest.raises(OSError):
            await store.put(cache_key(URL, False), URL, b"body", "text/html")


class TestFreshness:
    async def test_just_inside_ttl_is_hit(self, store: CacheStore, clock: FakeClock) -> None:
        key = cache_key(URL, False)
        await store.put(key, URL, b"body", "text/html")
        clock.advance(store.ttl.total_seconds() - 1)
        assert await store.get(key) is not None

    async def test_exactly_ttl_is_stale(self, store: CacheStore, clock: FakeClock) -> None:
        key = cache_key(URL, False)
        await store.put(key, URL, b"body", "text/html")
        clock.advance(store.ttl.total_seconds())
        assert await store.get(key) is None

    async def test_stale_miss_reason(self, store: CacheStore, clock: FakeClock) -> None:
        key = cache_key(URL, False)
        await store.put(key, URL, b"body", "text/html")
        clock.advance(store.ttl.total_seconds() + 5)
        assert store._load(key) == CacheMiss("stale")


class TestCorruption:
    async def test_missing_metadata_is_miss(self, store: CacheStore) -> None:
        key = cache_key(URL, False)
        await store.put(key, URL, b"body", "text/html")
        store.metadata_path(key).unlink()
        assert await store.get(key) is None

    async def test_missing_payload_is_miss(self, store: CacheStore) -> None:
        key = cache_key(URL, False)
        await store.put(key, URL, b"body", "text/html")
        store.payload_path(key).unlink()
        assert await store.get(key) is None

    async def test_garbage_metadata_is_miss(self, store: CacheStore) -> None:
        key = cache_key(URL, False)
        await store.put(key, URL, b"body", "text/html")
        store.metadata_path(key).write_bytes(b"{not json")

        assert await store.get(key) is None
        miss = store._load(key)
        assert isinstance(miss, CacheMiss)
        assert miss.reason == "corrupt_metadata"
        assert miss.error is not None

    async def test_metadata_missing_field_is_miss(self, store: CacheStore) -> None:
        key = cache_key(URL, False)
        await store.put(key, URL, b"body", "text/html")
        store.metadata_path(key).write_text(json.dumps({"url": URL}))
        assert await store.get(key) is None

    async def test_naive_timestamp_read_as_utc(self, store: CacheStore, clock: FakeClock) -> None:
        key = cache_key(URL, False)
        await store.put(key, URL, b"body", "text/html")
        naive = clock.now.replace(tzinfo=None).isoformat()
        store.metadata_path(key).write_text(
            json.dumps({"url": URL, "timestamp": naive, "contentType": "text/html"})
        )
        entry = await store.get(key)
        assert entry is not None
        assert entry.timestamp == clock.now


class TestClear:
    async def test_clear_drops_everything(self, store: CacheStore) -> None:
        keys = [cache_key(URL, False), cache_key(URL, True)]
        for key in keys:
            await store.put(key, URL, b"body", "text/html")

        await store.clear()

        assert store.directory.is_dir()
        assert list(store.directory.iterdir()) == []
        for key in keys:
            assert await store.get(key) is None

    async def test_clear_on_missing_directory(self, tmp_path: Path) -> None:
        store = CacheStore(tmp_path / "never-created", "ns", timedelta(hours=1))
        await store.clear()
        assert store.directory.is_dir()

    async def test_clear_raises_when_directory_cannot_be_recreated(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = CacheStore(blocker, "ns", timedelta(hours=1))
        with pytest.raises(OSError):
            await store.clear()
