"""
Type definitions for fetch_executor
"""
import asyncio
import base64
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from retry_policy import DelayCalculator, RetryCondition


class CancelSignal:
    """
    Cooperative cancellation token passed to the transport.

    Example:
        signal = CancelSignal()
        task = asyncio.create_task(executor.execute(RequestDescriptor(url="/slow", signal=signal)))
        signal.cancel("user navigated away")
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "Request cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class RequestCacheOptions:
    """Per-request cache overrides"""

    enabled: Optional[bool] = None
    """Force caching on or off for this request"""

    ttl_seconds: Optional[float] = None
    """TTL overriding headers and defaults"""

    tags: tuple[str, ...] = ()
    """Tags attached to the stored entry"""

    dependencies: tuple[str, ...] = ()
    """Dependency identifiers attached to the stored entry"""


@dataclass(frozen=True)
class RequestRetryOptions:
    """Per-request retry overrides"""

    retries: Optional[int] = None
    retry_delay_seconds: Optional[float] = None
    retry_condition: Optional[RetryCondition] = None
    retry_delay_calculator: Optional[DelayCalculator] = None


@dataclass(frozen=True)
class RequestDescriptor:
    """A logical request, immutable once dispatched"""

    url: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None
    cache: Optional[RequestCacheOptions] = None
    retry: Optional[RequestRetryOptions] = None
    priority: int = 0
    timeout_seconds: Optional[float] = None
    signal: Optional[CancelSignal] = field(default=None, compare=False)


@dataclass
class ResponseDescriptor:
    """A settled response"""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    data: Any = None
    status_text: str = ""
    url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe form; bytes payloads are base64-wrapped."""
        data = self.data
        if isinstance(data, (bytes, bytearray)):
            data = {"__bytes__": base64.b64encode(bytes(data)).decode("ascii")}
        return {
            "status": self.status,
            "status_text": self.status_text,
            "headers": dict(self.headers),
            "data": data,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, value: Mapping[str, Any]) -> "ResponseDescriptor":
        data = value.get("data")
        if isinstance(data, dict) and set(data) == {"__bytes__"}:
            data = base64.b64decode(data["__bytes__"])
        return cls(
            status=int(value["status"]),
            headers=dict(value.get("headers") or {}),
            data=data,
            status_text=value.get("status_text") or "",
            url=value.get("url"),
        )


@runtime_checkable
class Transport(Protocol):
    """Performs the actual network call for a descriptor."""

    async def execute(self, descriptor: RequestDescriptor) -> ResponseDescriptor:
        ...

    def cancel(self, signal: CancelSignal) -> None:
        ...


@dataclass
class BatchResult:
    """Outcome of one request in a batch"""

    success: bool
    response: Optional[ResponseDescriptor] = None
    error: Optional[Exception] = None


@dataclass
class ExecutorStatus:
    """Combined status of the execution core"""

    active_count: int
    queued_count: int
    max_concurrent: int
    max_queue_size: int
    in_flight: int
    deduplication_rate: float
    cache_enabled: bool
    cache_size: int
    cache_hit_rate: float
