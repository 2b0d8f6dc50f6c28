"""
Request coalescing: one underlying execution per in-flight fingerprint.
"""
from .types import (
    CoalesceConfig,
    InFlightTask,
    TaskInfo,
    CoalesceStats,
    CoalesceEventType,
    CoalesceEvent,
    CoalesceEventListener,
)
from .coalescer import (
    RequestCoalescer,
    create_request_coalescer,
    DEFAULT_COALESCE_CONFIG,
    merge_coalesce_config,
)


__all__ = [
    # Types
    "CoalesceConfig",
    "InFlightTask",
    "TaskInfo",
    "CoalesceStats",
    "CoalesceEventType",
    "CoalesceEvent",
    "CoalesceEventListener",
    # Coalescer
    "RequestCoalescer",
    "create_request_coalescer",
    "DEFAULT_COALESCE_CONFIG",
    "merge_coalesce_config",
]
