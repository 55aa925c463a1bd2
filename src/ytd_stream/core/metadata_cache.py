"""Process-wide, time-bounded metadata cache.

One :class:`MetadataCache` is constructed at application start and
injected wherever metadata is needed.  Staleness is checked lazily on
read; stale entries are ignored and overwritten, never swept.

Concurrent misses for the same key are not deduplicated: each caller
runs its own fetch and the last writer's entry wins.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Awaitable, Callable

from ytd_stream.core.models import CacheEntry, VideoMetadata

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS: float = 600.0


class MetadataCache:
    """Map of canonical identifier → :class:`CacheEntry`.

    Parameters
    ----------
    ttl:
        Maximum entry age in seconds.
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        *,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> VideoMetadata | None:
        """Return fresh cached data for *key*, or ``None``."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= self._ttl:
            return None
        return entry.data

    def put(self, key: str, data: VideoMetadata) -> None:
        entry = CacheEntry(data=data, fetched_at=self._clock())
        with self._lock:
            self._entries[key] = entry

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[VideoMetadata]],
    ) -> VideoMetadata:
        """Return cached data for *key*, fetching and storing on a miss.

        A failing *fetch* propagates unchanged and leaves the cache
        untouched.
        """
        cached = self.get(key)
        if cached is not None:
            logger.debug("Metadata cache hit for %s", key)
            return cached

        logger.debug("Metadata cache miss for %s", key)
        data = await fetch()
        self.put(key, data)
        return data

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
