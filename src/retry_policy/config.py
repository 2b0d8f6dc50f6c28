"""
Configuration utilities for retry_policy
"""
import asyncio
import random
from typing import Optional

from fetch_errors import CancelError, QueueFullError

from .types import RetryConfig


DEFAULT_RETRY_CONFIG = RetryConfig()


def merge_config(
    config: Optional[RetryConfig] = None,
    *,
    max_retries: Optional[int] = None,
    base_delay_seconds: Optional[float] = None,
    retry_condition=None,
    delay_calculator=None,
) -> RetryConfig:
    """
    Layer per-call overrides on top of a base configuration.

    Args:
        config: Base configuration, defaults when None
        max_retries: Override for max_retries
        base_delay_seconds: Override for base_delay_seconds
        retry_condition: Override for retry_condition
        delay_calculator: Override for delay_calculator

    Returns:
        A new configuration; the base is left untouched
    """
    base = config or DEFAULT_RETRY_CONFIG
    return RetryConfig(
        max_retries=max_retries if max_retries is not None else base.max_retries,
        base_delay_seconds=base_delay_seconds
        if base_delay_seconds is not None
        else base.base_delay_seconds,
        max_delay_seconds=base.max_delay_seconds,
        jitter_factor=base.jitter_factor,
        retry_on_status=base.retry_on_status,
        retry_condition=retry_condition or base.retry_condition,
        delay_calculator=delay_calculator or base.delay_calculator,
    )


def calculate_backoff_delay(attempt: int, config: RetryConfig) -> float:
    """
    Exponential backoff: base * 2^(attempt - 1).

    Args:
        attempt: The retry about to be made (1-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = config.base_delay_seconds * (2 ** max(0, attempt - 1))

    if config.jitter_factor > 0:
        jitter = config.jitter_factor
        delay = delay * (1 - jitter / 2) + random.random() * jitter * delay

    if config.max_delay_seconds is not None:
        delay = min(delay, config.max_delay_seconds)

    return delay


def is_retryable_error(error: Exception, config: RetryConfig) -> bool:
    """
    Default retry predicate.

    True when no response was received (network failure or timeout) or the
    response status is one of ``retry_on_status``. Cancellations and queue
    rejections are never retried.
    """
    if isinstance(error, (CancelError, QueueFullError)):
        return False

    response = getattr(error, "response", None)
    if response is None:
        return True

    status = getattr(response, "status", None)
    return status is not None and status in config.retry_on_status


async def async_sleep(seconds: float) -> None:
    """Sleep for a specified duration (async)."""
    await asyncio.sleep(seconds)
