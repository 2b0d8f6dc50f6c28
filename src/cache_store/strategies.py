"""
Pluggable cache strategies.

A strategy can veto caching a response, may suggest a TTL, and tracks keys
so the engine knows which entries to evict when the strategy's capacity is
exceeded. The method and status gate belongs to the engine.

Victims returned by ``record_set`` stay tracked until the engine has
removed them from the store and calls ``forget``.
"""
import time
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from heapq import nsmallest
from itertools import islice
from typing import Any, Optional

from .lru import RecencyList
from .parser import get_header_value, parse_cache_control


class CacheStrategy(ABC):
    """Base class for cache strategies"""

    name: str = "base"

    def should_cache(self, descriptor: Any, response: Any) -> bool:
        """Veto hook; the default accepts whatever the engine lets through."""
        return True

    def get_ttl(self, descriptor: Any, response: Any) -> Optional[float]:
        """Suggested TTL in seconds, or None to defer to the engine default."""
        return None

    def record_access(self, key: str, hit: bool, descriptor: Any = None) -> None:
        """Observe a cache lookup."""
        return None

    @abstractmethod
    def record_set(self, key: str) -> list[str]:
        """Observe a store and return the keys that must be evicted."""
        ...

    def tracked_keys(self) -> list[str]:
        """Keys counted against the strategy's capacity."""
        return []

    def victims(self) -> list[str]:
        """Keys to evict to get back within capacity."""
        return []

    @abstractmethod
    def forget(self, key: str) -> None:
        """Stop tracking a key removed from the cache."""
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class LruStrategy(CacheStrategy):
    """Capacity-bounded; evicts the least recently touched key."""

    name = "lru"

    def __init__(self, max_size: int = 100) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._recency = RecencyList()

    def record_access(self, key: str, hit: bool, descriptor: Any = None) -> None:
        if hit:
            self._recency.touch(key)

    def record_set(self, key: str) -> list[str]:
        self._recency.touch(key)
        return self.victims()

    def victims(self) -> list[str]:
        overflow = len(self._recency) - self.max_size
        if overflow <= 0:
            return []
        return list(islice(self._recency, overflow))

    def forget(self, key: str) -> None:
        self._recency.remove(key)

    def clear(self) -> None:
        self._recency.clear()

    def tracked_keys(self) -> list[str]:
        """Keys from least to most recently touched."""
        return list(self._recency)


class LfuStrategy(CacheStrategy):
    """
    Capacity-bounded; evicts the least frequently accessed key.

    Unlike LRU, picking a victim scans every tracked key, so an insert
    that overflows the capacity costs O(n).
    """

    name = "lfu"

    def __init__(self, max_size: int = 100) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._frequency: dict[str, int] = {}
        self._latest: Optional[str] = None

    def record_access(self, key: str, hit: bool, descriptor: Any = None) -> None:
        if hit and key in self._frequency:
            self._frequency[key] += 1

    def record_set(self, key: str) -> list[str]:
        self._frequency.setdefault(key, 0)
        self._latest = key
        return self.victims()

    def victims(self) -> list[str]:
        overflow = len(self._frequency) - self.max_size
        if overflow <= 0:
            return []
        # Ties go to the earliest inserted key; the latest insert is never a victim
        candidates = (k for k in self._frequency if k != self._latest)
        return nsmallest(overflow, candidates, key=lambda k: self._frequency[k])

    def tracked_keys(self) -> list[str]:
        return list(self._frequency)

    def forget(self, key: str) -> None:
        self._frequency.pop(key, None)
        if key == self._latest:
            self._latest = None

    def clear(self) -> None:
        self._frequency.clear()
        self._latest = None

    def frequency(self, key: str) -> int:
        return self._frequency.get(key, 0)


class TtlStrategy(CacheStrategy):
    """No count cap; freshness comes from TTLs and response headers only."""

    name = "ttl"

    def __init__(self, default_ttl_seconds: Optional[float] = None) -> None:
        self.default_ttl_seconds = default_ttl_seconds

    def should_cache(self, descriptor: Any, response: Any) -> bool:
        return 200 <= response.status < 400

    def get_ttl(self, descriptor: Any, response: Any) -> Optional[float]:
        directives = parse_cache_control(get_header_value(response.headers, "cache-control"))
        if directives.no_cache or directives.no_store:
            return 0.0
        if directives.max_age is not None:
            return float(directives.max_age)
        return self.default_ttl_seconds

    def record_set(self, key: str) -> list[str]:
        return []

    def forget(self, key: str) -> None:
        return None

    def clear(self) -> None:
        return None


class SmartStrategy(CacheStrategy):
    """
    Adapts to observed traffic per endpoint (method + URL without query).

    Keeps a rolling hit-rate estimate and the last ``history_size`` access
    times. The predicted TTL is twice the mean access interval, capped at
    ``max_ttl_seconds``; with fewer than two samples it is the fixed default.
    """

    name = "smart"

    def __init__(
        self,
        default_ttl_seconds: float = 300.0,
        max_ttl_seconds: float = 1800.0,
        history_size: int = 10,
        hit_rate_threshold: float = 0.3,
    ) -> None:
        self.default_ttl_seconds = default_ttl_seconds
        self.max_ttl_seconds = max_ttl_seconds
        self.hit_rate_threshold = hit_rate_threshold
        self._history: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=history_size))
        self._hit_rates: dict[str, float] = {}

    @staticmethod
    def endpoint_key(descriptor: Any) -> str:
        method = (getattr(descriptor, "method", "GET") or "GET").upper()
        url = (getattr(descriptor, "url", "") or "").split("?", 1)[0]
        return f"{method}:{url}"

    def hit_rate(self, descriptor: Any) -> float:
        return self._hit_rates.get(self.endpoint_key(descriptor), 0.0)

    def should_cache(self, descriptor: Any, response: Any) -> bool:
        if self.hit_rate(descriptor) > self.hit_rate_threshold:
            return True
        method = (getattr(descriptor, "method", "GET") or "GET").upper()
        return method == "GET" and response.status == 200

    def get_ttl(self, descriptor: Any, response: Any) -> Optional[float]:
        history = self._history.get(self.endpoint_key(descriptor))
        if not history or len(history) < 2:
            return self.default_ttl_seconds

        samples = list(history)
        intervals = [b - a for a, b in zip(samples, samples[1:])]
        mean_interval = sum(intervals) / len(intervals)
        return min(mean_interval * 2, self.max_ttl_seconds)

    def record_access(self, key: str, hit: bool, descriptor: Any = None) -> None:
        if descriptor is None:
            return
        endpoint = self.endpoint_key(descriptor)
        self._history[endpoint].append(time.time())
        rate = self._hit_rates.get(endpoint, 0.0)
        self._hit_rates[endpoint] = rate * 0.9 + 0.1 if hit else rate * 0.9

    def record_set(self, key: str) -> list[str]:
        return []

    def forget(self, key: str) -> None:
        return None

    def clear(self) -> None:
        self._history.clear()
        self._hit_rates.clear()


STRATEGIES = {
    "lru": LruStrategy,
    "lfu": LfuStrategy,
    "ttl": TtlStrategy,
    "smart": SmartStrategy,
}


def create_cache_strategy(name: str = "lru", **options: Any) -> CacheStrategy:
    """
    Create a strategy by name.

    Args:
        name: One of lru, lfu, ttl, smart
        **options: Passed to the strategy constructor
    """
    try:
        strategy_cls = STRATEGIES[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown cache strategy: {name}") from None
    return strategy_cls(**options)
