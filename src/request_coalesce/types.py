"""
Type definitions for request_coalesce
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar


T = TypeVar("T")


@dataclass
class CoalesceConfig:
    """Configuration for request coalescing"""

    max_pending: int = 1000
    """Ceiling on in-flight tasks; the oldest is forgotten when reached. Default: 1000"""

    request_timeout_seconds: float = 60.0
    """Age after which the stale sweep forgets an in-flight task. Default: 60"""

    cleanup_interval_seconds: float = 30.0
    """Interval of the background stale sweep. Default: 30"""

    auto_cleanup: bool = True
    """Run the stale sweep in the background. Default: True"""


@dataclass
class InFlightTask(Generic[T]):
    """A running execution shared by every caller with the same fingerprint"""

    key: str
    """Fingerprint of the request"""

    task: "asyncio.Task[T]"
    """The single underlying execution"""

    created_at: float
    """Creation timestamp (seconds since epoch)"""

    ref_count: int = 1
    """Number of callers attached; informational only"""


@dataclass
class TaskInfo:
    """Snapshot of an in-flight task"""

    key: str
    created_at: float
    ref_count: int
    duration_seconds: float


@dataclass
class CoalesceStats:
    """Aggregate coalescing statistics"""

    executions: int = 0
    """Number of factories actually invoked"""

    duplications: int = 0
    """Number of callers that joined an existing execution"""

    saved_requests: int = 0
    """Number of underlying calls avoided"""

    deduplication_rate: float = 0.0
    """duplications / (executions + duplications)"""

    pending_count: int = 0
    """Number of in-flight tasks currently tracked"""


class CoalesceEventType(str, Enum):
    """Event types emitted by the coalescer"""

    LEAD = "coalesce:lead"
    JOIN = "coalesce:join"
    COMPLETE = "coalesce:complete"
    ERROR = "coalesce:error"
    EVICT = "coalesce:evict"
    SWEEP = "coalesce:sweep"


@dataclass
class CoalesceEvent:
    """Event emitted by the coalescer"""

    type: CoalesceEventType
    key: Optional[str]
    timestamp: float
    metadata: dict[str, Any] = field(default_factory=dict)


CoalesceEventListener = Callable[[CoalesceEvent], None]
