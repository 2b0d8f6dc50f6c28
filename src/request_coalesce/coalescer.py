"""
In-flight request coalescing.

When several identical requests are made concurrently, only the first one
invokes its factory; the others attach to the running execution and receive
the same result or the same exception.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Set, TypeVar

from .types import (
    CoalesceConfig,
    CoalesceEvent,
    CoalesceEventListener,
    CoalesceEventType,
    CoalesceStats,
    InFlightTask,
    TaskInfo,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


DEFAULT_COALESCE_CONFIG = CoalesceConfig()


def merge_coalesce_config(config: Optional[CoalesceConfig] = None) -> CoalesceConfig:
    """Merge user config with defaults."""
    if config is None:
        return CoalesceConfig(
            max_pending=DEFAULT_COALESCE_CONFIG.max_pending,
            request_timeout_seconds=DEFAULT_COALESCE_CONFIG.request_timeout_seconds,
            cleanup_interval_seconds=DEFAULT_COALESCE_CONFIG.cleanup_interval_seconds,
            auto_cleanup=DEFAULT_COALESCE_CONFIG.auto_cleanup,
        )
    if config.max_pending < 1:
        raise ValueError("max_pending must be at least 1")
    return config


class RequestCoalescer:
    """
    Shares one underlying execution among concurrent identical requests.

    The in-flight entry is removed as soon as its execution settles,
    whatever the outcome and however many callers are attached. Callers that
    cancel their own await do not cancel the shared execution.

    Example:
        coalescer = RequestCoalescer()

        # 50 concurrent calls, one fetch
        results = await asyncio.gather(
            *[coalescer.execute("GET|/api/data", fetch_data) for _ in range(50)]
        )
        coalescer.get_stats().executions  # 1
    """

    def __init__(self, config: Optional[CoalesceConfig] = None) -> None:
        self._config = merge_coalesce_config(config)
        self._pending: dict[str, InFlightTask[Any]] = {}
        self._listeners: Set[CoalesceEventListener] = set()
        self._executions = 0
        self._duplications = 0
        self._saved_requests = 0
        self._cleanup_task: Optional[asyncio.Task[None]] = None
        self._closed = False

    async def execute(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``factory`` unless an execution for ``key`` is already in flight.

        Args:
            key: Request fingerprint
            factory: Zero-argument coroutine function performing the request

        Returns:
            The result of the single underlying execution
        """
        self._ensure_cleanup_loop()

        existing = self._pending.get(key)
        if existing is not None:
            existing.ref_count += 1
            self._duplications += 1
            self._saved_requests += 1
            logger.debug(
                f"RequestCoalescer.execute: Joining in-flight request {key} "
                f"(ref_count={existing.ref_count})"
            )
            self._emit(CoalesceEventType.JOIN, key, {"ref_count": existing.ref_count})
            return await asyncio.shield(existing.task)

        if len(self._pending) >= self._config.max_pending:
            self._evict_oldest()

        task: asyncio.Task[T] = asyncio.ensure_future(factory())
        in_flight = InFlightTask(key=key, task=task, created_at=time.time())
        self._pending[key] = in_flight
        self._executions += 1
        task.add_done_callback(lambda t: self._settle(in_flight))

        logger.debug(f"RequestCoalescer.execute: Leading new request {key}")
        self._emit(CoalesceEventType.LEAD, key)

        return await asyncio.shield(task)

    def _settle(self, in_flight: InFlightTask[Any]) -> None:
        """Forget a settled execution, unless the key now belongs to a newer one."""
        if self._pending.get(in_flight.key) is in_flight:
            del self._pending[in_flight.key]

        task = in_flight.task
        duration = time.time() - in_flight.created_at
        if task.cancelled():
            self._emit(CoalesceEventType.ERROR, in_flight.key, {"error": "cancelled"})
            return

        error = task.exception()
        if error is not None:
            self._emit(
                CoalesceEventType.ERROR,
                in_flight.key,
                {"error": str(error), "ref_count": in_flight.ref_count},
            )
        else:
            self._emit(
                CoalesceEventType.COMPLETE,
                in_flight.key,
                {"ref_count": in_flight.ref_count, "duration_seconds": duration},
            )

    def _evict_oldest(self) -> None:
        """Forget the oldest in-flight task; its execution keeps running."""
        if not self._pending:
            return
        oldest = min(self._pending.values(), key=lambda t: t.created_at)
        del self._pending[oldest.key]
        logger.debug(f"RequestCoalescer._evict_oldest: Evicted {oldest.key}")
        self._emit(CoalesceEventType.EVICT, oldest.key)

    def cleanup_timeout_tasks(self, timeout_seconds: float) -> int:
        """
        Forget in-flight tasks older than ``timeout_seconds``.

        The underlying calls are not cancelled and callers already attached
        keep waiting for them; only new callers stop coalescing onto them.

        Returns:
            Number of tasks forgotten
        """
        now = time.time()
        stale = [
            key
            for key, in_flight in self._pending.items()
            if now - in_flight.created_at > timeout_seconds
        ]
        for key in stale:
            del self._pending[key]

        if stale:
            logger.debug(f"RequestCoalescer.cleanup_timeout_tasks: Swept {len(stale)} stale tasks")
            self._emit(CoalesceEventType.SWEEP, None, {"count": len(stale)})
        return len(stale)

    def _ensure_cleanup_loop(self) -> None:
        if not self._config.auto_cleanup or self._closed:
            return
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        """Background task that sweeps stale in-flight tasks."""
        while True:
            await asyncio.sleep(self._config.cleanup_interval_seconds)
            self.cleanup_timeout_tasks(self._config.request_timeout_seconds)

    def is_running(self, key: str) -> bool:
        """Check whether an execution for ``key`` is in flight."""
        return key in self._pending

    def get_task_info(self, key: str) -> Optional[TaskInfo]:
        """Get a snapshot of the in-flight task for ``key``."""
        in_flight = self._pending.get(key)
        if in_flight is None:
            return None
        return self._task_info(in_flight)

    def get_all_task_info(self) -> list[TaskInfo]:
        return [self._task_info(t) for t in self._pending.values()]

    def _task_info(self, in_flight: InFlightTask[Any]) -> TaskInfo:
        return TaskInfo(
            key=in_flight.key,
            created_at=in_flight.created_at,
            ref_count=in_flight.ref_count,
            duration_seconds=time.time() - in_flight.created_at,
        )

    def get_pending_keys(self) -> list[str]:
        return list(self._pending)

    def get_pending_count(self) -> int:
        return len(self._pending)

    def get_stats(self) -> CoalesceStats:
        """Get coalescing statistics."""
        total = self._executions + self._duplications
        return CoalesceStats(
            executions=self._executions,
            duplications=self._duplications,
            saved_requests=self._saved_requests,
            deduplication_rate=self._duplications / total if total > 0 else 0.0,
            pending_count=len(self._pending),
        )

    def reset_stats(self) -> None:
        self._executions = 0
        self._duplications = 0
        self._saved_requests = 0

    def cancel(self, key: str) -> bool:
        """Forget the in-flight task for ``key`` without cancelling it."""
        return self._pending.pop(key, None) is not None

    def cancel_all(self) -> None:
        """Forget every in-flight task without cancelling them."""
        self._pending.clear()

    async def wait_for(self, key: str) -> Optional[Any]:
        """Wait for the in-flight task for ``key``; None if absent or failed."""
        in_flight = self._pending.get(key)
        if in_flight is None:
            return None
        try:
            return await asyncio.shield(in_flight.task)
        except Exception:
            return None

    async def wait_for_all(self) -> None:
        """Wait for every in-flight task to settle, ignoring failures."""
        tasks = [t.task for t in self._pending.values()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def get_config(self) -> CoalesceConfig:
        return self._config

    def on(self, listener: CoalesceEventListener) -> Callable[[], None]:
        """Add event listener."""
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def off(self, listener: CoalesceEventListener) -> None:
        """Remove event listener."""
        self._listeners.discard(listener)

    def _emit(
        self,
        event_type: CoalesceEventType,
        key: Optional[str],
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        event = CoalesceEvent(
            type=event_type,
            key=key,
            timestamp=time.time(),
            metadata=metadata or {},
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as error:
                logger.debug(f"RequestCoalescer._emit: Listener failed: {error}")

    def close(self) -> None:
        """Stop the stale sweep and forget all in-flight tasks."""
        self._closed = True
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None
        self._pending.clear()
        self._listeners.clear()


def create_request_coalescer(config: Optional[CoalesceConfig] = None) -> RequestCoalescer:
    """Create a request coalescer."""
    return RequestCoalescer(config)
