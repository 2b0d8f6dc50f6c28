"""
In-memory cache store with O(1) LRU eviction.
"""
import asyncio
import logging
import time
from typing import Dict, Optional

from ..lru import RecencyList
from ..types import CacheEntry, CacheStore

logger = logging.getLogger(__name__)


class MemoryCacheStore(CacheStore):
    """
    Bounded in-memory store.

    Holds at most ``max_entries`` entries. Reads touch the entry; inserting
    beyond capacity evicts the least recently touched one. Expired entries
    are dropped lazily on read and, when ``cleanup_interval_seconds`` is
    set, by a background sweep.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        cleanup_interval_seconds: Optional[float] = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._cache: Dict[str, CacheEntry] = {}
        self._recency = RecencyList()
        self._cleanup_interval = cleanup_interval_seconds
        self._cleanup_task: Optional[asyncio.Task] = None
        self._closed = False
        self.evictions = 0

    def _start_cleanup(self) -> None:
        """Start the background cleanup task."""
        if self._cleanup_interval and self._cleanup_task is None and not self._closed:
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        """Background cleanup loop."""
        while not self._closed:
            await asyncio.sleep(self._cleanup_interval)
            self.cleanup_expired()

    def cleanup_expired(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = time.time()
        expired_keys = [key for key, entry in self._cache.items() if entry.is_expired(now)]
        for key in expired_keys:
            self._remove(key)
        return len(expired_keys)

    def _remove(self, key: str) -> bool:
        self._recency.remove(key)
        return self._cache.pop(key, None) is not None

    async def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._cache.get(key)
        if entry is None:
            return None

        now = time.time()
        if entry.is_expired(now):
            self._remove(key)
            return None

        entry.access_time = now
        self._recency.touch(key)
        return entry

    async def set(self, key: str, entry: CacheEntry) -> None:
        self._cache[key] = entry
        self._recency.touch(key)

        while len(self._cache) > self._max_entries:
            oldest = self._recency.pop_oldest()
            if oldest is None:
                break
            del self._cache[oldest]
            self.evictions += 1
            logger.debug(f"MemoryCacheStore.set: Evicted least recently used {oldest}")

        self._start_cleanup()

    async def delete(self, key: str) -> bool:
        return self._remove(key)

    async def clear(self) -> None:
        self._cache.clear()
        self._recency.clear()

    async def keys(self) -> list[str]:
        return list(self._cache)

    async def entries(self) -> list[tuple[str, CacheEntry]]:
        self.cleanup_expired()
        return list(self._cache.items())

    async def size(self) -> int:
        return len(self._cache)

    async def close(self) -> None:
        """Close the store and release resources."""
        self._closed = True
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        await self.clear()
