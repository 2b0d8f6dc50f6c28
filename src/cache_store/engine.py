"""
Cache engine: cacheability, TTL resolution, eviction and invalidation on
top of a pluggable store and strategy.
"""
import logging
from collections import Counter, deque
from typing import Any, Optional

from request_fingerprint import FingerprintGenerator

from .parser import (
    is_cacheable_method,
    is_no_store,
    is_success_status,
    response_ttl_seconds,
)
from .stores.memory import MemoryCacheStore
from .strategies import CacheStrategy, LruStrategy
from .types import (
    DEFAULT_STORE_TTL_SECONDS,
    CacheConfig,
    CacheEntry,
    CacheStats,
    CacheStore,
)

logger = logging.getLogger(__name__)

MAX_RECENT_KEYS = 10
MAX_HOT_KEYS = 10


class CacheEngine:
    """
    Request/response cache.

    Only requests with a cacheable method and responses with a success
    status are stored, unless the response forbids it. TTL precedence:
    per-request override, response headers, strategy suggestion, engine
    default, store default.

    Store faults never propagate: they are logged, counted in
    ``stats.errors`` and treated as a miss.

    Example:
        engine = CacheEngine(strategy=LruStrategy(max_size=100))
        await engine.set(descriptor, response, tags=["users"])
        entry = await engine.get(descriptor)
        await engine.invalidate_by_tag("users")
    """

    def __init__(
        self,
        store: Optional[CacheStore] = None,
        strategy: Optional[CacheStrategy] = None,
        config: Optional[CacheConfig] = None,
        fingerprint: Optional[FingerprintGenerator] = None,
    ) -> None:
        self._store = store if store is not None else MemoryCacheStore()
        self._strategy = strategy if strategy is not None else LruStrategy()
        self._config = config or CacheConfig()
        self._fingerprint = fingerprint or FingerprintGenerator()

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._evictions = 0
        self._errors = 0
        self._recent_keys: deque[str] = deque(maxlen=MAX_RECENT_KEYS)
        self._access_log: Counter[str] = Counter()

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def strategy(self) -> CacheStrategy:
        return self._strategy

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def _is_enabled(self, enabled: Optional[bool]) -> bool:
        """A per-request switch wins over the configured one."""
        return enabled if enabled is not None else self._config.enabled

    def key_for(self, descriptor: Any) -> str:
        """Cache key (fingerprint) of a request."""
        return self._fingerprint.generate(descriptor)

    def _record_error(self, operation: str, key: Optional[str], error: Exception) -> None:
        self._errors += 1
        logger.warning(
            f"CacheEngine.{operation}: Cache fault for {key}, continuing without cache: "
            f"{type(error).__name__}: {error}"
        )

    def _remember_key(self, key: str) -> None:
        if key in self._recent_keys:
            self._recent_keys.remove(key)
        self._recent_keys.appendleft(key)

    async def get(
        self,
        descriptor: Any,
        key: Optional[str] = None,
        enabled: Optional[bool] = None,
    ) -> Optional[CacheEntry]:
        """
        Look up a live entry for a request.

        Returns:
            The entry, or None on a miss, for uncacheable methods, or on a
            store fault
        """
        if not self._is_enabled(enabled):
            return None
        if not is_cacheable_method(descriptor.method, self._config.methods):
            return None

        key = key or self.key_for(descriptor)
        try:
            entry = await self._store.get(key)
        except Exception as error:
            self._record_error("get", key, error)
            entry = None

        hit = entry is not None
        try:
            self._strategy.record_access(key, hit, descriptor)
            if not hit:
                # Expired or evicted by the store itself
                self._strategy.forget(key)
        except Exception as error:
            self._record_error("get", key, error)

        if hit:
            self._hits += 1
            self._access_log[key] += 1
            logger.debug(f"CacheEngine.get: Hit for {key}")
        else:
            self._misses += 1
        self._remember_key(key)
        return entry

    def is_cacheable(
        self,
        descriptor: Any,
        response: Any,
        enabled: Optional[bool] = None,
    ) -> tuple[bool, Optional[str]]:
        """
        Check whether a response may be stored.

        Returns:
            (cacheable, reason when not cacheable)
        """
        if not self._is_enabled(enabled):
            return False, "disabled"
        if not is_cacheable_method(descriptor.method, self._config.methods):
            return False, "method"
        if not is_success_status(response.status, self._config.success_status_upper_bound):
            return False, "status"
        if self._config.respect_cache_control and is_no_store(response.headers):
            return False, "no-store"
        if not self._strategy.should_cache(descriptor, response):
            return False, "strategy"
        return True, None

    def resolve_ttl(
        self,
        descriptor: Any,
        response: Any,
        ttl_seconds: Optional[float] = None,
    ) -> float:
        """Resolve the TTL for a response, highest precedence first."""
        if ttl_seconds is not None:
            return float(ttl_seconds)

        if self._config.respect_cache_control:
            header_ttl = response_ttl_seconds(response.headers)
            if header_ttl is not None:
                return header_ttl

        suggested = self._strategy.get_ttl(descriptor, response)
        if suggested is not None:
            return float(suggested)

        if self._config.default_ttl_seconds is not None:
            return float(self._config.default_ttl_seconds)

        return DEFAULT_STORE_TTL_SECONDS

    async def set(
        self,
        descriptor: Any,
        response: Any,
        ttl_seconds: Optional[float] = None,
        tags: Optional[list[str]] = None,
        dependencies: Optional[list[str]] = None,
        key: Optional[str] = None,
        enabled: Optional[bool] = None,
    ) -> bool:
        """
        Store a response for a request if it is cacheable.

        The stored value is ``response.to_dict()`` when available, otherwise
        the response itself.

        Returns:
            Whether the entry was stored
        """
        cacheable, reason = self.is_cacheable(descriptor, response, enabled)
        if not cacheable:
            logger.debug(f"CacheEngine.set: Bypassing cache ({reason})")
            return False

        ttl = self.resolve_ttl(descriptor, response, ttl_seconds)
        if ttl <= 0:
            logger.debug("CacheEngine.set: Bypassing cache (non-positive ttl)")
            return False

        key = key or self.key_for(descriptor)
        value = response.to_dict() if hasattr(response, "to_dict") else response
        entry = CacheEntry.create(value, ttl_seconds=ttl, tags=tags, dependencies=dependencies)

        try:
            await self._store.set(key, entry)
        except Exception as error:
            self._record_error("set", key, error)
            return False

        self._sets += 1
        try:
            await self._evict(self._strategy.record_set(key))
        except Exception as error:
            self._record_error("set", key, error)
        return True

    async def _evict(self, victims: list[str]) -> None:
        """Delete strategy victims from the store, dropping stale keys first."""
        if not victims:
            return
        live = {k for k, _ in await self._store.entries()}
        stale = [k for k in self._strategy.tracked_keys() if k not in live]
        if stale:
            for k in stale:
                self._strategy.forget(k)
            logger.debug(f"CacheEngine._evict: Dropped {len(stale)} keys no longer in the store")
            victims = self._strategy.victims()

        for victim in victims:
            await self._store.delete(victim)
            self._strategy.forget(victim)
            self._evictions += 1
            logger.debug(f"CacheEngine.set: Strategy {self._strategy.name} evicted {victim}")

    async def delete(self, descriptor: Any, key: Optional[str] = None) -> bool:
        """Remove the entry for a request."""
        key = key or self.key_for(descriptor)
        try:
            removed = await self._store.delete(key)
        except Exception as error:
            self._record_error("delete", key, error)
            return False
        self._strategy.forget(key)
        return removed

    async def clear(self) -> None:
        self._strategy.clear()
        try:
            await self._store.clear()
        except Exception as error:
            self._record_error("clear", None, error)

    async def invalidate_by_tag(self, tag: str) -> int:
        """Remove every entry carrying ``tag``. Returns the number removed."""
        return await self._invalidate_where("invalidate_by_tag", lambda e: tag in e.tags)

    async def invalidate_by_dependency(self, dependency: str) -> int:
        """Remove every entry depending on ``dependency``. Returns the number removed."""
        return await self._invalidate_where(
            "invalidate_by_dependency", lambda e: dependency in e.dependencies
        )

    async def _invalidate_where(self, operation: str, predicate) -> int:
        removed = 0
        try:
            for key, entry in await self._store.entries():
                if predicate(entry):
                    if await self._store.delete(key):
                        removed += 1
                    self._strategy.forget(key)
        except Exception as error:
            self._record_error(operation, None, error)
        if removed:
            logger.debug(f"CacheEngine.{operation}: Removed {removed} entries")
        return removed

    def get_hot_keys(self, limit: int = MAX_HOT_KEYS) -> list[tuple[str, int]]:
        """Most frequently hit keys with their hit counts."""
        return self._access_log.most_common(limit)

    async def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        try:
            size = await self._store.size()
        except Exception as error:
            self._record_error("get_stats", None, error)
            size = 0
        total = self._hits + self._misses
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            sets=self._sets,
            evictions=self._evictions,
            errors=self._errors,
            hit_rate=self._hits / total if total > 0 else 0.0,
            size=size,
            recent_keys=list(self._recent_keys),
            hot_keys=self.get_hot_keys(),
        )

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._evictions = 0
        self._errors = 0
        self._recent_keys.clear()
        self._access_log.clear()

    async def close(self) -> None:
        try:
            await self._store.close()
        except Exception as error:
            self._record_error("close", None, error)


def create_cache_engine(
    store: Optional[CacheStore] = None,
    strategy: Optional[CacheStrategy] = None,
    config: Optional[CacheConfig] = None,
    fingerprint: Optional[FingerprintGenerator] = None,
) -> CacheEngine:
    """Create a cache engine."""
    return CacheEngine(store, strategy, config, fingerprint)

