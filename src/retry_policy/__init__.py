"""
Retry decisions and exponential backoff for failed requests.
"""
from .types import (
    RetryConfig,
    RetryState,
    RetryResult,
    RetryEvent,
    RetryEventListener,
    RetryCondition,
    DelayCalculator,
)
from .config import (
    DEFAULT_RETRY_CONFIG,
    merge_config,
    calculate_backoff_delay,
    is_retryable_error,
)
from .policy import RetryPolicy, create_retry_policy, retry


__all__ = [
    # Types
    "RetryConfig",
    "RetryState",
    "RetryResult",
    "RetryEvent",
    "RetryEventListener",
    "RetryCondition",
    "DelayCalculator",
    # Config
    "DEFAULT_RETRY_CONFIG",
    "merge_config",
    "calculate_backoff_delay",
    "is_retryable_error",
    # Policy
    "RetryPolicy",
    "create_retry_policy",
    "retry",
]
