"""
Tests for CacheEngine.

Coverage includes:
- Cacheability decisions and bypass reasons
- TTL precedence
- Strategy-driven eviction
- Tag and dependency invalidation
- Fail-open behavior on store faults
- Statistics
"""
import asyncio
import time

import pytest

from cache_store import (
    CacheConfig,
    CacheEngine,
    DEFAULT_STORE_TTL_SECONDS,
    LfuStrategy,
    LruStrategy,
    MemoryCacheStore,
    TtlStrategy,
    create_cache_engine,
)
from fetch_executor import RequestDescriptor, ResponseDescriptor


class DeleteFailingStore(MemoryCacheStore):
    """Memory store whose deletes fail while ``fail_deletes`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_deletes = True

    async def delete(self, key: str) -> bool:
        if self.fail_deletes:
            raise RuntimeError("delete unavailable")
        return await super().delete(key)


def get(url: str) -> RequestDescriptor:
    return RequestDescriptor(url=url)


def ok(data=None, headers=None, status: int = 200) -> ResponseDescriptor:
    return ResponseDescriptor(status=status, headers=headers or {}, data=data)


class TestCacheability:
    """Tests for is_cacheable and set bypasses."""

    def test_reasons(self, cache_engine: CacheEngine) -> None:
        assert cache_engine.is_cacheable(get("/a"), ok()) == (True, None)
        assert cache_engine.is_cacheable(
            RequestDescriptor(url="/a", method="POST"), ok()
        ) == (False, "method")
        assert cache_engine.is_cacheable(get("/a"), ok(status=500)) == (False, "status")
        assert cache_engine.is_cacheable(
            get("/a"), ok(headers={"Cache-Control": "no-store"})
        ) == (False, "no-store")

    def test_configured_methods(self) -> None:
        engine = CacheEngine(config=CacheConfig(methods=["GET", "HEAD"]))
        head = RequestDescriptor(url="/a", method="HEAD")

        assert engine.is_cacheable(head, ok()) == (True, None)
        assert engine.is_cacheable(RequestDescriptor(url="/a", method="POST"), ok()) == (
            False,
            "method",
        )

    def test_configured_status_bound(self) -> None:
        engine = CacheEngine(
            strategy=LfuStrategy(), config=CacheConfig(success_status_upper_bound=400)
        )

        assert engine.is_cacheable(get("/a"), ok(status=304)) == (True, None)
        assert engine.is_cacheable(get("/a"), ok(status=404)) == (False, "status")

    def test_disabled_engine(self) -> None:
        engine = CacheEngine(config=CacheConfig(enabled=False))

        assert engine.is_cacheable(get("/a"), ok()) == (False, "disabled")
        assert engine.is_cacheable(get("/a"), ok(), enabled=True) == (True, None)

    @pytest.mark.asyncio
    async def test_no_store_bypasses(self, cache_engine: CacheEngine) -> None:
        stored = await cache_engine.set(get("/a"), ok(headers={"Cache-Control": "no-store"}))

        assert stored is False
        assert await cache_engine.get(get("/a")) is None

    @pytest.mark.asyncio
    async def test_pragma_no_cache_bypasses(self, cache_engine: CacheEngine) -> None:
        assert await cache_engine.set(get("/a"), ok(headers={"Pragma": "no-cache"})) is False

    @pytest.mark.asyncio
    async def test_cache_control_can_be_ignored(self) -> None:
        engine = CacheEngine(config=CacheConfig(respect_cache_control=False))

        assert await engine.set(get("/a"), ok(headers={"Cache-Control": "no-store"})) is True
        await engine.close()

    @pytest.mark.asyncio
    async def test_zero_ttl_bypasses(self, cache_engine: CacheEngine) -> None:
        assert await cache_engine.set(get("/a"), ok(), ttl_seconds=0) is False


class TestGetSet:
    """Tests for get and set."""

    @pytest.mark.asyncio
    async def test_round_trip(self, cache_engine: CacheEngine) -> None:
        response = ok({"id": 1}, headers={"Content-Type": "application/json"})

        assert await cache_engine.set(get("/users/1"), response) is True
        entry = await cache_engine.get(get("/users/1"))

        assert entry is not None
        assert ResponseDescriptor.from_dict(entry.value) == response

    @pytest.mark.asyncio
    async def test_disabled_get_is_a_miss(self) -> None:
        engine = CacheEngine(config=CacheConfig(enabled=False))
        await engine.set(get("/a"), ok("x"), enabled=True)

        assert await engine.get(get("/a")) is None
        assert await engine.get(get("/a"), enabled=True) is not None

    @pytest.mark.asyncio
    async def test_uncacheable_method_get_is_a_miss(self, cache_engine: CacheEngine) -> None:
        assert await cache_engine.get(RequestDescriptor(url="/a", method="POST")) is None
        assert (await cache_engine.get_stats()).misses == 0

    @pytest.mark.asyncio
    async def test_explicit_key(self, cache_engine: CacheEngine) -> None:
        await cache_engine.set(get("/a"), ok("x"), key="custom")

        assert await cache_engine.get(get("/other"), key="custom") is not None
        assert await cache_engine.get(get("/a")) is None

    @pytest.mark.asyncio
    async def test_strategy_eviction(self) -> None:
        """LRU max 2: set k1, set k2, hit k1, set k3; k2 is gone."""
        engine = CacheEngine(strategy=LruStrategy(max_size=2))
        await engine.set(get("/k1"), ok(1))
        await engine.set(get("/k2"), ok(2))
        assert await engine.get(get("/k1")) is not None
        await engine.set(get("/k3"), ok(3))

        assert await engine.get(get("/k2")) is None
        assert await engine.get(get("/k1")) is not None
        assert await engine.get(get("/k3")) is not None
        assert (await engine.get_stats()).evictions == 1
        await engine.close()

    @pytest.mark.asyncio
    async def test_head_round_trip(self) -> None:
        engine = CacheEngine(config=CacheConfig(methods=["GET", "HEAD"]))
        head = RequestDescriptor(url="/a", method="HEAD")

        assert await engine.set(head, ok()) is True
        assert await engine.get(head) is not None
        await engine.close()

    @pytest.mark.asyncio
    async def test_expired_key_read_back_frees_capacity(self) -> None:
        engine = CacheEngine(strategy=LruStrategy(max_size=2))
        await engine.set(get("/a"), ok(1), ttl_seconds=100)
        await engine.set(get("/b"), ok(2), ttl_seconds=0.01)
        await asyncio.sleep(0.05)

        assert await engine.get(get("/b")) is None
        await engine.set(get("/c"), ok(3), ttl_seconds=100)

        assert await engine.get(get("/a")) is not None
        assert await engine.get(get("/c")) is not None
        assert (await engine.get_stats()).evictions == 0
        await engine.close()

    @pytest.mark.asyncio
    async def test_expired_key_never_read_frees_capacity(self) -> None:
        engine = CacheEngine(strategy=LruStrategy(max_size=2))
        await engine.set(get("/a"), ok(1), ttl_seconds=100)
        await engine.set(get("/b"), ok(2), ttl_seconds=0.01)
        await asyncio.sleep(0.05)

        await engine.set(get("/c"), ok(3), ttl_seconds=100)

        assert await engine.get(get("/a")) is not None
        assert await engine.get(get("/c")) is not None
        assert engine.strategy.tracked_keys() == [
            engine.key_for(get("/a")),
            engine.key_for(get("/c")),
        ]
        await engine.close()

    @pytest.mark.asyncio
    async def test_failed_eviction_keeps_victim_tracked(self) -> None:
        store = DeleteFailingStore()
        engine = CacheEngine(store=store, strategy=LruStrategy(max_size=1))
        await engine.set(get("/a"), ok(1))
        await engine.set(get("/b"), ok(2))

        key_a = engine.key_for(get("/a"))
        assert key_a in engine.strategy.tracked_keys()
        assert (await engine.get_stats()).errors == 1

        store.fail_deletes = False
        await engine.set(get("/c"), ok(3))

        assert await store.keys() == [engine.key_for(get("/c"))]
        assert engine.strategy.tracked_keys() == [engine.key_for(get("/c"))]
        await engine.close()

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, cache_engine: CacheEngine) -> None:
        await cache_engine.set(get("/a"), ok(1))
        await cache_engine.set(get("/b"), ok(2))

        assert await cache_engine.delete(get("/a")) is True
        assert await cache_engine.get(get("/a")) is None

        await cache_engine.clear()
        assert await cache_engine.get(get("/b")) is None


class TestTtlResolution:
    """Tests for resolve_ttl precedence."""

    def test_override_wins(self, cache_engine: CacheEngine) -> None:
        response = ok(headers={"Cache-Control": "max-age=60"})

        assert cache_engine.resolve_ttl(get("/a"), response, ttl_seconds=5) == 5.0

    def test_headers_before_default(self, cache_engine: CacheEngine) -> None:
        response = ok(headers={"Cache-Control": "max-age=60"})

        assert cache_engine.resolve_ttl(get("/a"), response) == 60.0

    def test_strategy_before_default(self) -> None:
        engine = CacheEngine(strategy=TtlStrategy(default_ttl_seconds=42))

        assert engine.resolve_ttl(get("/a"), ok()) == 42.0

    def test_engine_default(self) -> None:
        engine = CacheEngine(config=CacheConfig(default_ttl_seconds=120))

        assert engine.resolve_ttl(get("/a"), ok()) == 120.0

    def test_store_default(self) -> None:
        engine = CacheEngine(config=CacheConfig(default_ttl_seconds=None))

        assert engine.resolve_ttl(get("/a"), ok()) == DEFAULT_STORE_TTL_SECONDS

    @pytest.mark.asyncio
    async def test_stored_expiry_uses_resolved_ttl(self, cache_engine: CacheEngine) -> None:
        before = time.time()
        await cache_engine.set(get("/a"), ok(), ttl_seconds=30)

        entry = await cache_engine.get(get("/a"))

        assert before + 30 <= entry.expiry <= time.time() + 30


class TestInvalidation:
    """Tests for tag and dependency invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate_by_tag(self, cache_engine: CacheEngine) -> None:
        await cache_engine.set(get("/users/1"), ok(1), tags=["users"])
        await cache_engine.set(get("/users/2"), ok(2), tags=["users", "admins"])
        await cache_engine.set(get("/posts/1"), ok(3), tags=["posts"])

        assert await cache_engine.invalidate_by_tag("users") == 2
        assert await cache_engine.get(get("/users/1")) is None
        assert await cache_engine.get(get("/users/2")) is None
        assert await cache_engine.get(get("/posts/1")) is not None

    @pytest.mark.asyncio
    async def test_invalidate_by_dependency(self, cache_engine: CacheEngine) -> None:
        await cache_engine.set(get("/a"), ok(1), dependencies=["user:1"])
        await cache_engine.set(get("/b"), ok(2), dependencies=["user:2"])

        assert await cache_engine.invalidate_by_dependency("user:1") == 1
        assert await cache_engine.invalidate_by_dependency("user:1") == 0
        assert await cache_engine.get(get("/b")) is not None


class TestFailOpen:
    """Store faults never reach the caller."""

    @pytest.mark.asyncio
    async def test_get_and_set_swallow_store_errors(self, failing_store) -> None:
        engine = CacheEngine(store=failing_store)

        assert await engine.get(get("/a")) is None
        assert await engine.set(get("/a"), ok()) is False
        assert await engine.delete(get("/a")) is False

        stats = await engine.get_stats()
        assert stats.errors == 3
        assert stats.misses == 1

    @pytest.mark.asyncio
    async def test_faults_are_logged(self, failing_store, caplog: pytest.LogCaptureFixture) -> None:
        engine = CacheEngine(store=failing_store)

        with caplog.at_level("WARNING", logger="cache_store.engine"):
            await engine.get(get("/a"))

        assert "Cache fault" in caplog.text


class TestStats:
    """Tests for statistics."""

    @pytest.mark.asyncio
    async def test_hits_misses_and_hot_keys(self, cache_engine: CacheEngine) -> None:
        await cache_engine.set(get("/a"), ok(1))
        await cache_engine.get(get("/a"))
        await cache_engine.get(get("/a"))
        await cache_engine.get(get("/b"))

        stats = await cache_engine.get_stats()
        key = cache_engine.key_for(get("/a"))

        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.sets == 1
        assert stats.size == 1
        assert stats.hit_rate == pytest.approx(2 / 3)
        assert stats.hot_keys == [(key, 2)]
        assert stats.recent_keys[0] == cache_engine.key_for(get("/b"))

    @pytest.mark.asyncio
    async def test_reset_stats(self, cache_engine: CacheEngine) -> None:
        await cache_engine.get(get("/a"))
        cache_engine.reset_stats()

        stats = await cache_engine.get_stats()
        assert stats.misses == 0
        assert stats.recent_keys == []

    @pytest.mark.asyncio
    async def test_factory(self) -> None:
        engine = create_cache_engine(store=MemoryCacheStore(max_entries=3))

        assert isinstance(engine.store, MemoryCacheStore)
        assert engine.enabled is True
        await engine.close()
