"""
Type definitions for retry_policy
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Literal, Optional, TypeVar


T = TypeVar("T")


RetryCondition = Callable[[Exception, int], bool]
"""(error, attempt) -> whether to retry"""

DelayCalculator = Callable[[int, Exception], float]
"""(attempt, error) -> delay in seconds"""


@dataclass
class RetryConfig:
    """Retry configuration"""

    max_retries: int = 3
    """Maximum number of retries after the first attempt. Default: 3"""

    base_delay_seconds: float = 1.0
    """Base delay for exponential backoff (seconds). Default: 1.0"""

    max_delay_seconds: Optional[float] = None
    """Optional cap on a single delay (seconds). Default: no cap"""

    jitter_factor: float = 0.0
    """Jitter factor (0-1) applied around the computed delay. Default: 0"""

    retry_on_status: range = field(default_factory=lambda: range(500, 600))
    """Response statuses that trigger a retry. Default: 500-599"""

    retry_condition: Optional[RetryCondition] = None
    """Replaces the default retry predicate"""

    delay_calculator: Optional[DelayCalculator] = None
    """Replaces the default exponential delay"""


@dataclass
class RetryState:
    """Progress of one logical request through its retries"""

    attempt: int = 0
    """Number of retries made so far"""

    last_error: Optional[Exception] = None
    """Most recent failure"""


@dataclass
class RetryResult(Generic[T]):
    """Result of a retried operation"""

    result: T
    """The result of the operation"""

    retries: int
    """Number of retries made (0 if the first attempt succeeded)"""

    total_time_seconds: float
    """Total time spent including retries (seconds)"""

    delay_time_seconds: float
    """Time spent in backoff delays (seconds)"""


EventType = Literal[
    "attempt:start",
    "attempt:success",
    "attempt:fail",
    "retry:wait",
]


@dataclass
class RetryEvent:
    """Event emitted by the retry policy"""

    type: EventType
    """Event type"""

    attempt: int
    """Retries made so far"""

    data: dict[str, Any] = field(default_factory=dict)
    """Event-specific data"""


RetryEventListener = Callable[[RetryEvent], None]
