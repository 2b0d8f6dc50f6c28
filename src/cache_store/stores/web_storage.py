"""
LocalStorage-style persistent cache store with a byte budget.

Records live in a string key/value storage under ``prefix + key``. The
store enforces ``max_bytes`` over the serialized records it owns.
"""
import json
import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union

from ..records import dumps_record, loads_record
from ..types import CacheEntry, CacheStore

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "http_cache_"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024


class StorageQuotaError(Exception):
    """The underlying storage refused a write for lack of space."""


class KeyValueStorage(ABC):
    """Synchronous string key/value storage."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store a value; raises StorageQuotaError when out of space."""
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        ...


class DictStorage(KeyValueStorage):
    """In-process storage with an optional quota in bytes."""

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self._data: Dict[str, str] = {}
        self._quota = quota_bytes

    def _used_bytes(self, exclude: Optional[str] = None) -> int:
        return sum(
            len(k.encode()) + len(v.encode()) for k, v in self._data.items() if k != exclude
        )

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self._quota is not None:
            needed = len(key.encode()) + len(value.encode())
            if self._used_bytes(exclude=key) + needed > self._quota:
                raise StorageQuotaError(f"Quota of {self._quota} bytes exceeded")
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStorage(DictStorage):
    """DictStorage persisted to a JSON file after every change."""

    def __init__(self, path: Union[str, Path], quota_bytes: Optional[int] = None) -> None:
        super().__init__(quota_bytes)
        self._path = Path(path)
        if self._path.exists():
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                self._data = {str(k): str(v) for k, v in data.items()}

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(self._data, f)
        os.replace(tmp_path, self._path)

    def set_item(self, key: str, value: str) -> None:
        super().set_item(key, value)
        self._flush()

    def remove_item(self, key: str) -> None:
        if key in self._data:
            super().remove_item(key)
            self._flush()


class WebStorageCacheStore(CacheStore):
    """
    Persistent store bounded by the byte size of its serialized records.

    On overflow it first sweeps expired records, then evicts the single
    oldest remaining record. A quota error from the storage triggers one
    retry after an eviction pass; if that fails too the write is dropped.

    Example:
        store = WebStorageCacheStore(JsonFileStorage("cache.json"))
        await store.set("GET|/users", CacheEntry.create({"id": 1}, ttl_seconds=60))
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        prefix: str = DEFAULT_PREFIX,
        max_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        self._storage = storage if storage is not None else DictStorage()
        self._prefix = prefix
        self._max_bytes = max_bytes
        self.evictions = 0
        self.cleanup_expired()

    def _full_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _own_keys(self) -> list[str]:
        return [k for k in self._storage.keys() if k.startswith(self._prefix)]

    def current_size(self, exclude: Optional[str] = None) -> int:
        """Bytes used by this store's records."""
        size = 0
        for full_key in self._own_keys():
            if full_key == exclude:
                continue
            data = self._storage.get_item(full_key)
            if data:
                size += len(data.encode())
        return size

    def cleanup_expired(self) -> int:
        """Remove expired and unreadable records. Returns the number removed."""
        now = time.time()
        removed = 0
        for full_key in self._own_keys():
            data = self._storage.get_item(full_key)
            if data is None:
                continue
            try:
                expired = loads_record(data).is_expired(now)
            except ValueError:
                expired = True
            if expired:
                self._storage.remove_item(full_key)
                removed += 1
        return removed

    def evict_oldest(self, exclude: Optional[str] = None) -> Optional[str]:
        """Remove the record with the earliest creation time."""
        oldest_key: Optional[str] = None
        oldest_time = float("inf")
        for full_key in self._own_keys():
            if full_key == exclude:
                continue
            data = self._storage.get_item(full_key)
            if data is None:
                continue
            try:
                created_at = loads_record(data).created_at
            except ValueError:
                created_at = float("-inf")
            if created_at < oldest_time:
                oldest_time = created_at
                oldest_key = full_key

        if oldest_key is not None:
            self._storage.remove_item(oldest_key)
            self.evictions += 1
            logger.debug(f"WebStorageCacheStore.evict_oldest: Evicted {oldest_key}")
        return oldest_key

    async def get(self, key: str) -> Optional[CacheEntry]:
        full_key = self._full_key(key)
        data = self._storage.get_item(full_key)
        if data is None:
            return None

        try:
            entry = loads_record(data)
        except ValueError:
            logger.warning(f"WebStorageCacheStore.get: Dropping unreadable record {full_key}")
            self._storage.remove_item(full_key)
            return None

        if entry.is_expired():
            self._storage.remove_item(full_key)
            return None

        return entry

    async def set(self, key: str, entry: CacheEntry) -> None:
        full_key = self._full_key(key)
        serialized = dumps_record(entry)
        needed = len(serialized.encode())

        if self.current_size(exclude=full_key) + needed > self._max_bytes:
            self.cleanup_expired()
            if self.current_size(exclude=full_key) + needed > self._max_bytes:
                self.evict_oldest(exclude=full_key)

        try:
            self._storage.set_item(full_key, serialized)
        except StorageQuotaError:
            self.cleanup_expired()
            self.evict_oldest(exclude=full_key)
            try:
                self._storage.set_item(full_key, serialized)
            except StorageQuotaError:
                logger.warning(
                    f"WebStorageCacheStore.set: Quota exceeded, dropping write for {full_key}"
                )

    async def delete(self, key: str) -> bool:
        full_key = self._full_key(key)
        existed = self._storage.get_item(full_key) is not None
        self._storage.remove_item(full_key)
        return existed

    async def clear(self) -> None:
        for full_key in self._own_keys():
            self._storage.remove_item(full_key)

    async def keys(self) -> list[str]:
        prefix_length = len(self._prefix)
        return [k[prefix_length:] for k in self._own_keys()]

    async def entries(self) -> list[tuple[str, CacheEntry]]:
        now = time.time()
        prefix_length = len(self._prefix)
        live = []
        for full_key in self._own_keys():
            data = self._storage.get_item(full_key)
            if data is None:
                continue
            try:
                entry = loads_record(data)
            except ValueError:
                self._storage.remove_item(full_key)
                continue
            if entry.is_expired(now):
                self._storage.remove_item(full_key)
                continue
            live.append((full_key[prefix_length:], entry))
        return live

    async def size(self) -> int:
        return len(self._own_keys())
