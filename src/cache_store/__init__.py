"""
Response cache engine with pluggable strategies and storage backends.
"""
from .types import (
    CacheEntry,
    CacheStore,
    CacheConfig,
    CacheStats,
    CacheControlDirectives,
    DEFAULT_STORE_TTL_SECONDS,
)
from .parser import (
    parse_cache_control,
    get_header_value,
    normalize_headers,
    parse_date_header,
    response_ttl_seconds,
    is_no_store,
    is_success_status,
    is_cacheable_method,
)
from .lru import RecencyList
from .records import entry_to_record, entry_from_record, dumps_record, loads_record
from .strategies import (
    CacheStrategy,
    LruStrategy,
    LfuStrategy,
    TtlStrategy,
    SmartStrategy,
    create_cache_strategy,
)
from .stores import (
    MemoryCacheStore,
    WebStorageCacheStore,
    SQLiteCacheStore,
    KeyValueStorage,
    DictStorage,
    JsonFileStorage,
    StorageQuotaError,
    create_cache_store,
)
from .engine import CacheEngine, create_cache_engine


__all__ = [
    # Types
    "CacheEntry",
    "CacheStore",
    "CacheConfig",
    "CacheStats",
    "CacheControlDirectives",
    "DEFAULT_STORE_TTL_SECONDS",
    # Parser
    "parse_cache_control",
    "get_header_value",
    "normalize_headers",
    "parse_date_header",
    "response_ttl_seconds",
    "is_no_store",
    "is_success_status",
    "is_cacheable_method",
    # Records
    "RecencyList",
    "entry_to_record",
    "entry_from_record",
    "dumps_record",
    "loads_record",
    # Strategies
    "CacheStrategy",
    "LruStrategy",
    "LfuStrategy",
    "TtlStrategy",
    "SmartStrategy",
    "create_cache_strategy",
    # Stores
    "MemoryCacheStore",
    "WebStorageCacheStore",
    "SQLiteCacheStore",
    "KeyValueStorage",
    "DictStorage",
    "JsonFileStorage",
    "StorageQuotaError",
    "create_cache_store",
    # Engine
    "CacheEngine",
    "create_cache_engine",
]
