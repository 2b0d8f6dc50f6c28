"""
HTTP request execution core.

Fingerprints requests, coalesces identical in-flight requests, serves
cached responses, bounds concurrency and retries failures.
"""
from .types import (
    CancelSignal,
    RequestCacheOptions,
    RequestRetryOptions,
    RequestDescriptor,
    ResponseDescriptor,
    Transport,
    BatchResult,
    ExecutorStatus,
)
from .config import (
    CacheSettings,
    RetrySettings,
    FetchCoreSettings,
    settings_from_mapping,
    load_settings,
)
from .executor import RequestExecutor, build_cache_engine, create_request_executor
from .transport import HttpxTransport, AsyncTransportAdapter, FetchCoreTransport
from .factory import compose_transport, create_fetch_client


__all__ = [
    # Types
    "CancelSignal",
    "RequestCacheOptions",
    "RequestRetryOptions",
    "RequestDescriptor",
    "ResponseDescriptor",
    "Transport",
    "BatchResult",
    "ExecutorStatus",
    # Config
    "CacheSettings",
    "RetrySettings",
    "FetchCoreSettings",
    "settings_from_mapping",
    "load_settings",
    # Executor
    "RequestExecutor",
    "build_cache_engine",
    "create_request_executor",
    # Transports
    "HttpxTransport",
    "AsyncTransportAdapter",
    "FetchCoreTransport",
    # Factory
    "compose_transport",
    "create_fetch_client",
]
