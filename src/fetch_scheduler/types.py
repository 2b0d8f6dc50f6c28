"""
Type definitions for fetch_scheduler
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Literal, TypeVar


T = TypeVar("T")


@dataclass
class SchedulerConfig:
    """Scheduler configuration"""

    max_concurrent: int = 10
    """Maximum number of tasks running at once. Default: 10"""

    max_queue_size: int = 100
    """Maximum number of queued tasks before QueueFullError. Default: 100"""


@dataclass
class QueueEntry(Generic[T]):
    """A task waiting for a concurrency slot"""

    task_id: str
    """Unique task identifier"""

    executor: Callable[[], Awaitable[T]]
    """The work to run once admitted"""

    future: "asyncio.Future[T]"
    """Settled with the executor's outcome"""

    enqueued_at: float
    """Submission timestamp"""

    priority: int = 0
    """Higher runs first"""

    sequence: int = 0
    """Arrival order, breaks priority ties"""


@dataclass
class SchedulerStatus:
    """Current scheduler status"""

    active_count: int
    queued_count: int
    max_concurrent: int
    max_queue_size: int
    total_started: int
    total_completed: int
    total_failed: int
    total_rejected: int


EventType = Literal[
    "task:queued",
    "task:started",
    "task:completed",
    "task:failed",
    "task:rejected",
    "queue:cancelled",
]


@dataclass
class SchedulerEvent:
    """Event emitted by the scheduler"""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


SchedulerEventListener = Callable[[SchedulerEvent], None]
