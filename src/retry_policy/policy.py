"""
Retry policy implementation
"""
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from fetch_errors import CancelError, QueueFullError

from .config import async_sleep, calculate_backoff_delay, is_retryable_error, merge_config
from .types import RetryConfig, RetryEvent, RetryEventListener, RetryResult, RetryState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """
    Retry Policy

    Decides whether a failed attempt is retried and how long to wait first.
    Attempts are numbered from 1: ``attempt`` is the retry about to be made.
    Once ``attempt > max_retries`` nothing is retried and the most recent
    error propagates unchanged.

    The policy does not check whether the request method is idempotent.
    Narrow ``retry_condition`` or set ``max_retries=0`` for unsafe methods.

    Example:
        policy = RetryPolicy(RetryConfig(max_retries=3, base_delay_seconds=0.1))
        policy.delay_for(1)  # 0.1
        policy.delay_for(3)  # 0.4
        result = await policy.execute(fetch_data)
    """

    def __init__(self, config: Optional[RetryConfig] = None) -> None:
        self._config = config or merge_config(None)
        self._listeners: list[RetryEventListener] = []

    @property
    def config(self) -> RetryConfig:
        return self._config

    def with_overrides(
        self,
        *,
        max_retries: Optional[int] = None,
        base_delay_seconds: Optional[float] = None,
        retry_condition=None,
        delay_calculator=None,
    ) -> "RetryPolicy":
        """Derive a policy for a single request; listeners are shared."""
        if (
            max_retries is None
            and base_delay_seconds is None
            and retry_condition is None
            and delay_calculator is None
        ):
            return self
        derived = RetryPolicy(
            merge_config(
                self._config,
                max_retries=max_retries,
                base_delay_seconds=base_delay_seconds,
                retry_condition=retry_condition,
                delay_calculator=delay_calculator,
            )
        )
        derived._listeners = self._listeners
        return derived

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """
        Decide whether to make retry number ``attempt``.

        Args:
            error: The failure of the previous attempt
            attempt: The retry about to be made (1-indexed)
        """
        if attempt > self._config.max_retries:
            return False

        if isinstance(error, (CancelError, QueueFullError)):
            return False

        if self._config.retry_condition is not None:
            return bool(self._config.retry_condition(error, attempt))

        return is_retryable_error(error, self._config)

    def delay_for(self, attempt: int, error: Optional[Exception] = None) -> float:
        """
        Delay in seconds before retry number ``attempt``.

        Uses the custom calculator when configured, otherwise
        ``base_delay * 2 ** (attempt - 1)``.
        """
        if self._config.delay_calculator is not None:
            return self._config.delay_calculator(attempt, error)
        return calculate_backoff_delay(attempt, self._config)

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> RetryResult[T]:
        """
        Run ``fn`` until it succeeds or the policy gives up.

        Returns:
            Result with retry metadata

        Raises:
            The most recent error, unchanged, once retries are exhausted
        """
        state = RetryState()
        start_time = time.monotonic()
        delay_time = 0.0

        while True:
            self._emit(RetryEvent(type="attempt:start", attempt=state.attempt))
            attempt_start = time.monotonic()

            try:
                result = await fn()
            except Exception as error:
                state.last_error = error
                next_attempt = state.attempt + 1
                will_retry = self.should_retry(error, next_attempt)

                self._emit(
                    RetryEvent(
                        type="attempt:fail",
                        attempt=state.attempt,
                        data={"error": str(error), "will_retry": will_retry},
                    )
                )

                if not will_retry:
                    raise

                delay = self.delay_for(next_attempt, error)
                delay_time += delay
                logger.debug(
                    f"RetryPolicy.execute: Retry {next_attempt}/{self._config.max_retries} "
                    f"in {delay:.3f}s after {type(error).__name__}: {error}"
                )
                self._emit(
                    RetryEvent(
                        type="retry:wait",
                        attempt=next_attempt,
                        data={"delay_seconds": delay},
                    )
                )

                await async_sleep(delay)
                state.attempt = next_attempt
                continue

            self._emit(
                RetryEvent(
                    type="attempt:success",
                    attempt=state.attempt,
                    data={"duration_seconds": time.monotonic() - attempt_start},
                )
            )
            return RetryResult(
                result=result,
                retries=state.attempt,
                total_time_seconds=time.monotonic() - start_time,
                delay_time_seconds=delay_time,
            )

    def _emit(self, event: RetryEvent) -> None:
        """Emit an event to all listeners."""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as error:
                logger.debug(f"RetryPolicy._emit: Listener failed: {error}")

    def on(self, listener: RetryEventListener) -> Callable[[], None]:
        """
        Add an event listener.

        Returns:
            Function to remove the listener
        """
        self._listeners.append(listener)
        return lambda: self.off(listener)

    def off(self, listener: RetryEventListener) -> None:
        """Remove an event listener."""
        if listener in self._listeners:
            self._listeners.remove(listener)


def create_retry_policy(config: Optional[RetryConfig] = None) -> RetryPolicy:
    """Create a new retry policy."""
    return RetryPolicy(config)


async def retry(
    fn: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
) -> RetryResult[T]:
    """
    Execute a function with retry logic (convenience function).

    Example:
        result = await retry(fetch_data, RetryConfig(max_retries=3))
    """
    return await RetryPolicy(config).execute(fn)
