"""Opportunistic eviction of expired cache files.

There is no background timer. After a cache hit the fetch engine flips a
weighted coin (``should_sweep``) and, on heads, runs ``sweep``. This keeps
eviction deterministic under test (inject ``rng``) but gives only a soft
bound on disk usage: nothing is evicted between hits, and an entry that is
never hit again waits for some other key's hit to trigger a sweep.
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

import structlog

log = structlog.get_logger()


class CacheJanitor:
    def __init__(
        self,
        directory: Path,
        ttl: timedelta,
        sweep_probability: float = 0.1,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.directory = directory
        self.ttl = ttl
        self.sweep_probability = sweep_probability
        self._rng = rng or random.Random()
        self._clock = clock

    def should_sweep(self) -> bool:
        return self._rng.random() < self.sweep_probability

    async def sweep(self) -> int:
        """Delete files whose modification time is older than the TTL.

        Best-effort: a file that can't be removed is logged and skipped.
        Returns the number of files removed.
        """
        removed = await asyncio.to_thread(self._sweep)
        log.info("cache_sweep_complete", removed=removed, directory=str(self.directory))
        return removed

    def _sweep(self) -> int:
        try:
            paths = list(self.directory.iterdir())
        except FileNotFoundError:
            return 0
        except OSError as exc:
            log.warning("cache_sweep_error", directory=str(self.directory), error=str(exc))
            return 0

        now = self._clock()
        removed = 0
        for path in paths:
            outcome = self._evict(path, now)
            if isinstance(outcome, OSError):
                # Eviction is advisory; leave the file for the next sweep.
                log.warning("cache_evict_error", path=str(path), error=str(outcome))
            elif outcome:
                removed += 1
        return removed

    def _evict(self, path: Path, now: float) -> bool | OSError:
        """Remove ``path`` if expired. True if removed, False if kept, the error otherwise."""
        try:
            if not path.is_file():
                return False
            age = now - path.stat().st_mtime
            if age <= self.ttl.total_seconds():
                return False
            path.unlink(missing_ok=True)
        except OSError as exc:
            return exc
        return True
