"""
Concurrency scheduler: admission control with a bounded priority queue.
"""
import asyncio
import itertools
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Optional, TypeVar

from fetch_errors import CancelError, QueueFullError

from .queue import PriorityQueue
from .types import (
    QueueEntry,
    SchedulerConfig,
    SchedulerEvent,
    SchedulerEventListener,
    SchedulerStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


DEFAULT_SCHEDULER_CONFIG = SchedulerConfig()


def merge_scheduler_config(config: Optional[SchedulerConfig] = None) -> SchedulerConfig:
    """Merge user config with defaults and validate limits."""
    if config is None:
        return SchedulerConfig(
            max_concurrent=DEFAULT_SCHEDULER_CONFIG.max_concurrent,
            max_queue_size=DEFAULT_SCHEDULER_CONFIG.max_queue_size,
        )
    if config.max_concurrent < 1:
        raise ValueError("max_concurrent must be at least 1")
    if config.max_queue_size < 0:
        raise ValueError("max_queue_size must not be negative")
    return config


class ConcurrencyScheduler:
    """
    Concurrency Scheduler

    Runs at most ``max_concurrent`` tasks at once. Further tasks wait in a
    bounded queue ordered by priority, then by arrival. Whenever an active
    task settles its slot is released and the queue is drained.

    Example:
        scheduler = ConcurrencyScheduler(SchedulerConfig(max_concurrent=2))
        results = await asyncio.gather(
            *[scheduler.schedule(lambda: fetch(url)) for url in urls]
        )
    """

    def __init__(self, config: Optional[SchedulerConfig] = None) -> None:
        self._config = merge_scheduler_config(config)
        self._queue: PriorityQueue[Any] = PriorityQueue()
        self._listeners: set[SchedulerEventListener] = set()
        self._running: set[asyncio.Task[None]] = set()
        self._sequence = itertools.count()

        self._active_count = 0
        self._total_started = 0
        self._total_completed = 0
        self._total_failed = 0
        self._total_rejected = 0
        self._draining = False
        self._closed = False

    def _emit(self, event: SchedulerEvent) -> None:
        """Emit an event to all listeners"""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as error:
                logger.debug(f"ConcurrencyScheduler._emit: Listener failed: {error}")

    @property
    def active_count(self) -> int:
        return self._active_count

    @property
    def queued_count(self) -> int:
        return self._queue.size

    async def schedule(
        self,
        executor: Callable[[], Awaitable[T]],
        priority: int = 0,
    ) -> T:
        """
        Run ``executor`` now if a slot is free, otherwise queue it.

        Args:
            executor: Zero-argument coroutine function to run
            priority: Higher priorities leave the queue first. Default: 0

        Returns:
            The executor's result

        Raises:
            QueueFullError: The queue already holds ``max_queue_size`` entries
            CancelError: The entry was cancelled while queued
        """
        if self._closed:
            raise CancelError("Scheduler closed")

        loop = asyncio.get_running_loop()
        entry: QueueEntry[T] = QueueEntry(
            task_id=uuid.uuid4().hex,
            executor=executor,
            future=loop.create_future(),
            enqueued_at=time.time(),
            priority=priority,
            sequence=next(self._sequence),
        )

        if self._active_count < self._config.max_concurrent:
            self._start(entry)
        else:
            if self._queue.size >= self._config.max_queue_size:
                self._total_rejected += 1
                self._emit(
                    SchedulerEvent(
                        type="task:rejected",
                        data={"task_id": entry.task_id, "queue_size": self._queue.size},
                    )
                )
                logger.debug(
                    f"ConcurrencyScheduler.schedule: Queue full, rejecting {entry.task_id}"
                )
                raise QueueFullError(self._config.max_queue_size)

            self._queue.enqueue(entry)
            self._emit(
                SchedulerEvent(
                    type="task:queued",
                    data={
                        "task_id": entry.task_id,
                        "priority": priority,
                        "queue_size": self._queue.size,
                    },
                )
            )

        try:
            return await entry.future
        except asyncio.CancelledError:
            # Caller gave up while waiting; never promote it afterwards
            self._queue.remove_by_id(entry.task_id)
            raise

    def _start(self, entry: QueueEntry[Any]) -> None:
        """Move an entry to Active and launch its executor."""
        self._active_count += 1
        self._total_started += 1
        self._emit(
            SchedulerEvent(
                type="task:started",
                data={
                    "task_id": entry.task_id,
                    "active_count": self._active_count,
                    "queue_time_seconds": time.time() - entry.enqueued_at,
                },
            )
        )
        task = asyncio.get_running_loop().create_task(self._run(entry))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, entry: QueueEntry[Any]) -> None:
        """Run an active entry and release its slot when it settles."""
        try:
            result = await entry.executor()
        except asyncio.CancelledError:
            if not entry.future.done():
                entry.future.set_exception(CancelError("Task cancelled"))
            self._total_failed += 1
            raise
        except Exception as error:
            self._total_failed += 1
            self._emit(
                SchedulerEvent(
                    type="task:failed",
                    data={"task_id": entry.task_id, "error": str(error)},
                )
            )
            if not entry.future.done():
                entry.future.set_exception(error)
        else:
            self._total_completed += 1
            self._emit(SchedulerEvent(type="task:completed", data={"task_id": entry.task_id}))
            if not entry.future.done():
                entry.future.set_result(result)
        finally:
            self._active_count -= 1
            self._drain()

    def _drain(self) -> None:
        """Promote queue heads while slots are free."""
        if self._draining:
            return

        self._draining = True
        try:
            while self._active_count < self._config.max_concurrent:
                entry = self._queue.dequeue()
                if entry is None:
                    break
                if entry.future.done():
                    continue
                self._start(entry)
        finally:
            self._draining = False

    def cancel_queue(self, reason: str = "Queue cancelled") -> int:
        """
        Reject every queued entry with ``CancelError(reason)``.

        Active tasks are not affected.

        Returns:
            Number of entries rejected
        """
        entries = self._queue.clear()
        cancelled = 0
        for entry in entries:
            if not entry.future.done():
                entry.future.set_exception(CancelError(reason))
                cancelled += 1

        if cancelled:
            logger.debug(f"ConcurrencyScheduler.cancel_queue: Cancelled {cancelled} queued tasks")
        self._emit(SchedulerEvent(type="queue:cancelled", data={"count": cancelled, "reason": reason}))
        return cancelled

    def update_config(
        self,
        max_concurrent: Optional[int] = None,
        max_queue_size: Optional[int] = None,
    ) -> None:
        """Change limits at runtime; a raised concurrency limit drains immediately."""
        self._config = merge_scheduler_config(
            SchedulerConfig(
                max_concurrent=max_concurrent
                if max_concurrent is not None
                else self._config.max_concurrent,
                max_queue_size=max_queue_size
                if max_queue_size is not None
                else self._config.max_queue_size,
            )
        )
        self._drain()

    def get_status(self) -> SchedulerStatus:
        """Get current status"""
        return SchedulerStatus(
            active_count=self._active_count,
            queued_count=self._queue.size,
            max_concurrent=self._config.max_concurrent,
            max_queue_size=self._config.max_queue_size,
            total_started=self._total_started,
            total_completed=self._total_completed,
            total_failed=self._total_failed,
            total_rejected=self._total_rejected,
        )

    def get_config(self) -> SchedulerConfig:
        return self._config

    def on(self, listener: SchedulerEventListener) -> Callable[[], None]:
        """
        Add an event listener.

        Returns:
            Function to remove the listener
        """
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def off(self, listener: SchedulerEventListener) -> None:
        """Remove an event listener"""
        self._listeners.discard(listener)

    def close(self) -> None:
        """Reject queued work and refuse new tasks."""
        self.cancel_queue("Scheduler closed")
        self._closed = True
        self._listeners.clear()


def create_scheduler(config: Optional[SchedulerConfig] = None) -> ConcurrencyScheduler:
    """Create a new concurrency scheduler"""
    return ConcurrencyScheduler(config)
