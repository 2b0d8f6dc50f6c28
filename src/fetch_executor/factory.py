"""
Factory functions for execution-core transports and clients
"""
from typing import Any, Callable, Optional

import httpx

from .config import FetchCoreSettings
from .transport import FetchCoreTransport


def compose_transport(
    base: httpx.AsyncBaseTransport,
    *wrappers: Callable[[httpx.AsyncBaseTransport], httpx.AsyncBaseTransport],
) -> httpx.AsyncBaseTransport:
    """
    Compose transport wrappers, innermost first.

    Example:
        transport = compose_transport(
            httpx.AsyncHTTPTransport(),
            lambda inner: FetchCoreTransport(inner, settings=settings),
        )
        client = httpx.AsyncClient(transport=transport)
    """
    transport = base
    for wrapper in wrappers:
        transport = wrapper(transport)
    return transport


def create_fetch_client(
    settings: Optional[FetchCoreSettings] = None,
    *,
    base_url: Optional[str] = None,
    proxy: Optional[str] = None,
    timeout: float = 5.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **client_kwargs: Any,
) -> httpx.AsyncClient:
    """
    Create an async HTTP client whose requests go through the execution core.

    Args:
        settings: Execution-core settings (concurrency, cache, retry)
        base_url: Base URL for requests
        proxy: Proxy URL for the default base transport
        timeout: Request timeout in seconds
        transport: Base transport to wrap instead of ``httpx.AsyncHTTPTransport``
        **client_kwargs: Additional arguments for httpx.AsyncClient

    Example:
        client = create_fetch_client(
            FetchCoreSettings(max_concurrent=4, cache=CacheSettings(enabled=True)),
            base_url="https://api.example.com",
        )
        response = await client.get("/users")
    """
    base = transport or httpx.AsyncHTTPTransport(proxy=proxy)
    composed = compose_transport(
        base,
        lambda inner: FetchCoreTransport(inner, settings=settings),
    )
    return httpx.AsyncClient(
        transport=composed,
        base_url=base_url or "",
        timeout=timeout,
        **client_kwargs,
    )
