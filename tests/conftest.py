"""Pytest configuration and fixtures for the execution core tests."""
import asyncio
from typing import Any, AsyncGenerator, Callable, Generator, Optional, Union

import pytest

from cache_store import CacheEngine, MemoryCacheStore
from fetch_executor import (
    CancelSignal,
    FetchCoreSettings,
    RequestDescriptor,
    RequestExecutor,
    ResponseDescriptor,
)
from fetch_scheduler import ConcurrencyScheduler
from request_coalesce import RequestCoalescer


Outcome = Union[ResponseDescriptor, Exception]


class FakeTransport:
    """
    Scripted transport for executor tests.

    Each call pops the next outcome from ``outcomes``; once the script is
    exhausted the last outcome repeats. Exceptions are raised, responses
    returned.
    """

    def __init__(
        self,
        outcomes: Optional[list[Outcome]] = None,
        *,
        delay: float = 0.0,
        handler: Optional[Callable[[RequestDescriptor], Outcome]] = None,
    ) -> None:
        self.outcomes = list(outcomes or [ResponseDescriptor(status=200, data={"ok": True})])
        self.delay = delay
        self.handler = handler
        self.calls: list[RequestDescriptor] = []
        self.cancelled: list[CancelSignal] = []
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def execute(self, descriptor: RequestDescriptor) -> ResponseDescriptor:
        self.calls.append(descriptor)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.handler is not None:
            outcome = self.handler(descriptor)
        elif len(self.outcomes) > 1:
            outcome = self.outcomes.pop(0)
        else:
            outcome = self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def cancel(self, signal: CancelSignal) -> None:
        self.cancelled.append(signal)
        signal.cancel()

    async def aclose(self) -> None:
        self.closed = True


class FailingStore(MemoryCacheStore):
    """Memory store whose every operation raises."""

    async def get(self, key: str):
        raise RuntimeError("store unavailable")

    async def set(self, key: str, entry) -> None:
        raise RuntimeError("store unavailable")

    async def delete(self, key: str) -> bool:
        raise RuntimeError("store unavailable")


def ok_response(data: Any = None, status: int = 200, headers: Optional[dict] = None) -> ResponseDescriptor:
    return ResponseDescriptor(status=status, headers=headers or {}, data=data)


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Transport returning 200 with a JSON body."""
    return FakeTransport()


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    """Factory for scripted transports."""
    return FakeTransport


@pytest.fixture
def make_response() -> Callable[..., ResponseDescriptor]:
    """Factory for response descriptors."""
    return ok_response


@pytest.fixture
def failing_store() -> FailingStore:
    """Cache store that raises on get, set and delete."""
    return FailingStore()


@pytest.fixture
def scheduler() -> Generator[ConcurrencyScheduler, None, None]:
    """Scheduler with two slots and a queue of three."""
    from fetch_scheduler import SchedulerConfig

    s = ConcurrencyScheduler(SchedulerConfig(max_concurrent=2, max_queue_size=3))
    yield s
    s.close()


@pytest.fixture
def coalescer() -> Generator[RequestCoalescer, None, None]:
    """Coalescer without the background sweep."""
    from request_coalesce import CoalesceConfig

    c = RequestCoalescer(CoalesceConfig(auto_cleanup=False))
    yield c
    c.close()


@pytest.fixture
async def cache_engine() -> AsyncGenerator[CacheEngine, None]:
    """Enabled cache engine over a memory store."""
    engine = CacheEngine(store=MemoryCacheStore(max_entries=100))
    yield engine
    await engine.close()


@pytest.fixture
async def executor_factory() -> AsyncGenerator[Callable[..., RequestExecutor], None]:
    """Build executors that are closed after the test."""
    created: list[RequestExecutor] = []

    def factory(transport, settings: Optional[FetchCoreSettings] = None, **kwargs) -> RequestExecutor:
        executor = RequestExecutor(transport, settings, **kwargs)
        created.append(executor)
        return executor

    yield factory

    for executor in created:
        await executor.close()
