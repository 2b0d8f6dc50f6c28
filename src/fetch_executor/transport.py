"""
httpx integration.

``HttpxTransport`` lets the execution core send requests through an
``httpx.AsyncClient``. ``FetchCoreTransport`` goes the other way: it is an
``httpx.AsyncBaseTransport`` wrapper that routes every request of an httpx
client through the execution core.
"""
import asyncio
import json
import logging
from typing import Any, Optional

import httpx

from fetch_errors import CancelError, HttpStatusError, NetworkError, RequestTimeoutError

from .config import FetchCoreSettings
from .executor import RequestExecutor
from .types import CancelSignal, RequestDescriptor, ResponseDescriptor

logger = logging.getLogger(__name__)


def _request_content(body: Any) -> dict[str, Any]:
    """Map a descriptor body onto httpx request arguments."""
    if body is None:
        return {}
    if isinstance(body, (bytes, bytearray, str)):
        return {"content": body}
    if isinstance(body, (dict, list)):
        return {"json": body}
    return {"content": body}


def _decode_body(response: httpx.Response) -> Any:
    """JSON for JSON responses, text for text responses, bytes otherwise."""
    content_type = response.headers.get("content-type", "").lower()
    if "json" in content_type:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return response.text
    if content_type.startswith("text/") or "xml" in content_type:
        return response.text
    return response.content


def _map_transport_error(
    error: httpx.TransportError,
    descriptor: RequestDescriptor,
) -> Exception:
    if isinstance(error, httpx.TimeoutException):
        return RequestTimeoutError(
            f"Request timed out: {descriptor.method} {descriptor.url}",
            descriptor=descriptor,
            cause=error,
        )
    return NetworkError(
        f"Network error: {descriptor.method} {descriptor.url}: {error}",
        descriptor=descriptor,
        cause=error,
    )


async def _race_signal(coro, signal: Optional[CancelSignal]) -> Any:
    """Await ``coro`` unless ``signal`` fires first, then raise CancelError."""
    if signal is None:
        return await coro
    if signal.cancelled:
        coro.close()
        raise CancelError(signal.reason or "Request cancelled")

    send_task = asyncio.ensure_future(coro)
    cancel_task = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait(
            {send_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if send_task in done:
            return send_task.result()
    finally:
        cancel_task.cancel()
        if not send_task.done():
            send_task.cancel()
            try:
                await send_task
            except asyncio.CancelledError:
                pass

    raise CancelError(signal.reason or "Request cancelled")


class HttpxTransport:
    """
    Transport backed by ``httpx.AsyncClient``.

    Maps ``httpx.TimeoutException`` to RequestTimeoutError, other
    ``httpx.TransportError`` to NetworkError, and a fired CancelSignal to
    CancelError.

    Example:
        transport = HttpxTransport(base_url="https://api.example.com")
        executor = RequestExecutor(transport)
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        base_url: str = "",
        timeout: Optional[float] = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    def build_request(self, descriptor: RequestDescriptor) -> httpx.Request:
        timeout = descriptor.timeout_seconds
        return self._client.build_request(
            descriptor.method.upper(),
            descriptor.url,
            params=dict(descriptor.params) or None,
            headers=dict(descriptor.headers) or None,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
            **_request_content(descriptor.body),
        )

    async def execute(self, descriptor: RequestDescriptor) -> ResponseDescriptor:
        return await _race_signal(self._send(descriptor), descriptor.signal)

    async def _send(self, descriptor: RequestDescriptor) -> ResponseDescriptor:
        request = self.build_request(descriptor)
        try:
            response = await self._client.send(request)
        except httpx.TransportError as error:
            logger.debug(f"HttpxTransport._send: {type(error).__name__} for {request.url}")
            raise _map_transport_error(error, descriptor) from error

        return ResponseDescriptor(
            status=response.status_code,
            headers=dict(response.headers),
            data=_decode_body(response),
            status_text=response.reason_phrase,
            url=str(response.url),
        )

    def cancel(self, signal: CancelSignal) -> None:
        signal.cancel()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# Body framing headers that no longer describe the decoded content
_FRAMING_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


class AsyncTransportAdapter:
    """
    Transport that sends through a raw ``httpx.AsyncBaseTransport``.

    Response bodies are kept as decoded bytes; framing headers are dropped
    so the response can be replayed from the cache as-is.
    """

    def __init__(self, inner: httpx.AsyncBaseTransport) -> None:
        self._inner = inner

    async def execute(self, descriptor: RequestDescriptor) -> ResponseDescriptor:
        return await _race_signal(self._send(descriptor), descriptor.signal)

    async def _send(self, descriptor: RequestDescriptor) -> ResponseDescriptor:
        request = httpx.Request(
            descriptor.method.upper(),
            descriptor.url,
            params=dict(descriptor.params) or None,
            headers=dict(descriptor.headers),
            **_request_content(descriptor.body),
        )
        try:
            response = await self._inner.handle_async_request(request)
            try:
                content = await response.aread()
            finally:
                await response.aclose()
        except httpx.TransportError as error:
            raise _map_transport_error(error, descriptor) from error

        return ResponseDescriptor(
            status=response.status_code,
            headers={
                k: v for k, v in response.headers.items() if k.lower() not in _FRAMING_HEADERS
            },
            data=content,
            status_text=response.reason_phrase,
            url=str(request.url),
        )

    def cancel(self, signal: CancelSignal) -> None:
        signal.cancel()

    async def aclose(self) -> None:
        await self._inner.aclose()


def _query_params(query: httpx.QueryParams) -> dict[str, Any]:
    """Query parameters as a mapping; repeated names become lists."""
    params: dict[str, Any] = {}
    for name in query.keys():
        values = query.get_list(name)
        params[name] = values[0] if len(values) == 1 else values
    return params


def _to_httpx_response(response: ResponseDescriptor, request: httpx.Request) -> httpx.Response:
    data = response.data
    if isinstance(data, str):
        content = data.encode()
    elif isinstance(data, (bytes, bytearray)):
        content = bytes(data)
    elif data is None:
        content = b""
    else:
        content = json.dumps(data).encode()
    return httpx.Response(
        status_code=response.status,
        headers={k: v for k, v in response.headers.items() if k.lower() not in _FRAMING_HEADERS},
        content=content,
        request=request,
    )


class FetchCoreTransport(httpx.AsyncBaseTransport):
    """
    Execution-core transport wrapper for httpx.

    Wraps another transport so that every request made by the client is
    coalesced, cached, scheduled and retried by a RequestExecutor.
    Error statuses are returned to the client as ordinary responses once
    retries are exhausted.

    Example:
        base = httpx.AsyncHTTPTransport()
        transport = FetchCoreTransport(base, settings=FetchCoreSettings(max_concurrent=4))
        client = httpx.AsyncClient(transport=transport)
    """

    def __init__(
        self,
        inner: httpx.AsyncBaseTransport,
        *,
        settings: Optional[FetchCoreSettings] = None,
        executor: Optional[RequestExecutor] = None,
    ) -> None:
        self._inner = inner
        self._executor = executor or RequestExecutor(AsyncTransportAdapter(inner), settings)

    @property
    def executor(self) -> RequestExecutor:
        return self._executor

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        body = await request.aread()
        descriptor = RequestDescriptor(
            method=request.method,
            url=str(request.url).split("?", 1)[0],
            params=_query_params(request.url.params),
            headers=dict(request.headers),
            body=body or None,
        )

        try:
            response = await self._executor.execute(descriptor)
        except HttpStatusError as error:
            response = error.response
        except (NetworkError, RequestTimeoutError) as error:
            # Surface the original httpx exception to the client
            if isinstance(error.__cause__, httpx.TransportError):
                raise error.__cause__ from error
            raise

        return _to_httpx_response(response, request)

    async def aclose(self) -> None:
        await self._executor.close()
