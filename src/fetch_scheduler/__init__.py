"""
Concurrency scheduler with bounded, priority-ordered queueing.
"""
from .types import (
    SchedulerConfig,
    QueueEntry,
    SchedulerStatus,
    SchedulerEvent,
    SchedulerEventListener,
)
from .queue import PriorityQueue
from .scheduler import (
    ConcurrencyScheduler,
    create_scheduler,
    DEFAULT_SCHEDULER_CONFIG,
    merge_scheduler_config,
)


__all__ = [
    "SchedulerConfig",
    "QueueEntry",
    "SchedulerStatus",
    "SchedulerEvent",
    "SchedulerEventListener",
    "PriorityQueue",
    "ConcurrencyScheduler",
    "create_scheduler",
    "DEFAULT_SCHEDULER_CONFIG",
    "merge_scheduler_config",
]
