"""
Cache store backends.
"""
from typing import Any

from ..types import CacheStore
from .memory import MemoryCacheStore
from .sqlite import SQLiteCacheStore
from .web_storage import (
    DictStorage,
    JsonFileStorage,
    KeyValueStorage,
    StorageQuotaError,
    WebStorageCacheStore,
)


def create_cache_store(kind: str = "memory", **options: Any) -> CacheStore:
    """
    Create a store by kind.

    Args:
        kind: memory, local (alias web_storage) or indexeddb (alias sqlite)
        **options: Passed to the store constructor. For ``local`` a ``path``
            option selects a JsonFileStorage at that path.
    """
    kind = kind.lower()
    if kind == "memory":
        return MemoryCacheStore(**options)
    if kind in ("local", "web_storage"):
        path = options.pop("path", None)
        if path is not None and "storage" not in options:
            options["storage"] = JsonFileStorage(path)
        return WebStorageCacheStore(**options)
    if kind in ("indexeddb", "sqlite"):
        return SQLiteCacheStore(**options)
    raise ValueError(f"Unknown cache storage: {kind}")


__all__ = [
    "MemoryCacheStore",
    "WebStorageCacheStore",
    "SQLiteCacheStore",
    "KeyValueStorage",
    "DictStorage",
    "JsonFileStorage",
    "StorageQuotaError",
    "create_cache_store",
]
