"""
Type definitions for cache_store
"""
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


DEFAULT_STORE_TTL_SECONDS = 300.0
"""TTL used when nothing more specific applies (5 minutes)"""


@dataclass
class CacheEntry:
    """A cached value with its expiry and invalidation metadata"""

    value: Any
    """The cached value (JSON-compatible)"""

    expiry: float
    """Absolute expiry (seconds since epoch)"""

    created_at: float = field(default_factory=time.time)
    """Creation timestamp (seconds since epoch)"""

    access_time: float = field(default_factory=time.time)
    """Last read timestamp (seconds since epoch)"""

    tags: list[str] = field(default_factory=list)
    """Tags for group invalidation"""

    dependencies: list[str] = field(default_factory=list)
    """Dependency identifiers for group invalidation"""

    def is_expired(self, now: Optional[float] = None) -> bool:
        """An entry is expired once ``now`` is strictly past its expiry."""
        return (now if now is not None else time.time()) > self.expiry

    @classmethod
    def create(
        cls,
        value: Any,
        ttl_seconds: float = DEFAULT_STORE_TTL_SECONDS,
        tags: Optional[list[str]] = None,
        dependencies: Optional[list[str]] = None,
        now: Optional[float] = None,
    ) -> "CacheEntry":
        """Build an entry expiring ``ttl_seconds`` from now."""
        now = now if now is not None else time.time()
        return cls(
            value=value,
            expiry=now + ttl_seconds,
            created_at=now,
            access_time=now,
            tags=list(tags or []),
            dependencies=list(dependencies or []),
        )


class CacheStore(ABC):
    """
    Storage backend for cache entries.

    Every backend enforces lazy expiry: ``get`` never returns an entry once
    ``now > expiry``; it deletes the entry and reports a miss instead.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        """Get a live entry, deleting it if expired."""
        ...

    @abstractmethod
    async def set(self, key: str, entry: CacheEntry) -> None:
        """Store an entry, evicting as needed to stay within budget."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete an entry. Returns True if it existed."""
        ...

    async def has(self, key: str) -> bool:
        """Check for a live entry."""
        return await self.get(key) is not None

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry owned by this store."""
        ...

    @abstractmethod
    async def keys(self) -> list[str]:
        """Keys of stored entries."""
        ...

    @abstractmethod
    async def entries(self) -> list[tuple[str, CacheEntry]]:
        """Live entries, without touching recency."""
        ...

    @abstractmethod
    async def size(self) -> int:
        """Number of stored entries."""
        ...

    async def close(self) -> None:
        """Release resources."""
        return None


@dataclass
class CacheControlDirectives:
    """Parsed Cache-Control directives"""

    no_store: bool = False
    no_cache: bool = False
    max_age: Optional[int] = None
    s_maxage: Optional[int] = None
    private: bool = False
    public: bool = False
    must_revalidate: bool = False
    immutable: bool = False


@dataclass
class CacheConfig:
    """Cache engine configuration"""

    enabled: bool = True
    """Master switch. Default: True"""

    default_ttl_seconds: Optional[float] = 300.0
    """Global default TTL; None defers to the store default. Default: 300"""

    methods: list[str] = field(default_factory=lambda: ["GET"])
    """Cacheable request methods. Default: GET"""

    success_status_upper_bound: int = 300
    """Statuses in [200, bound) are cacheable. Default: 300"""

    respect_cache_control: bool = True
    """Honour no-store / no-cache and max-age on responses. Default: True"""


@dataclass
class CacheStats:
    """Cache statistics"""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    errors: int = 0
    hit_rate: float = 0.0
    size: int = 0
    recent_keys: list[str] = field(default_factory=list)
    hot_keys: list[tuple[str, int]] = field(default_factory=list)
