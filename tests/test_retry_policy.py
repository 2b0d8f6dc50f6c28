"""
Tests for RetryPolicy.

Coverage includes:
- Backoff delays and caps
- Retry decisions (attempt bound, non-retryable errors, status ranges)
- Custom conditions and delay calculators
- Execution loop: success after failures, exhaustion, events
"""
import pytest

from fetch_errors import CancelError, HttpStatusError, NetworkError, QueueFullError
from fetch_executor import ResponseDescriptor
from retry_policy import (
    RetryConfig,
    RetryEvent,
    RetryPolicy,
    calculate_backoff_delay,
    create_retry_policy,
    is_retryable_error,
    merge_config,
    retry,
)


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record backoff sleeps instead of waiting."""
    recorded: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        recorded.append(seconds)

    monkeypatch.setattr("retry_policy.policy.async_sleep", fake_sleep)
    return recorded


def status_error(status: int) -> HttpStatusError:
    return HttpStatusError(ResponseDescriptor(status=status))


class TestBackoff:
    """Tests for delay calculation."""

    def test_exponential_delays(self) -> None:
        policy = RetryPolicy(RetryConfig(max_retries=3, base_delay_seconds=0.1))

        assert policy.delay_for(1) == pytest.approx(0.1)
        assert policy.delay_for(2) == pytest.approx(0.2)
        assert policy.delay_for(3) == pytest.approx(0.4)

    def test_max_delay_cap(self) -> None:
        config = RetryConfig(base_delay_seconds=1.0, max_delay_seconds=3.0)

        assert calculate_backoff_delay(5, config) == 3.0

    def test_jitter_stays_in_range(self) -> None:
        config = RetryConfig(base_delay_seconds=1.0, jitter_factor=0.5)

        for _ in range(20):
            assert 0.75 <= calculate_backoff_delay(1, config) <= 1.25

    def test_custom_calculator(self) -> None:
        policy = RetryPolicy(RetryConfig(delay_calculator=lambda attempt, error: attempt * 10.0))

        assert policy.delay_for(2) == 20.0


class TestShouldRetry:
    """Tests for retry decisions."""

    @pytest.fixture
    def policy(self) -> RetryPolicy:
        return RetryPolicy(RetryConfig(max_retries=3, base_delay_seconds=0.1))

    def test_attempt_bound(self, policy: RetryPolicy) -> None:
        error = NetworkError("reset")

        assert policy.should_retry(error, 3) is True
        assert policy.should_retry(error, 4) is False

    def test_never_retries_cancel_or_queue_full(self, policy: RetryPolicy) -> None:
        assert policy.should_retry(CancelError(), 1) is False
        assert policy.should_retry(QueueFullError(10), 1) is False

    def test_server_errors_retried(self, policy: RetryPolicy) -> None:
        assert policy.should_retry(status_error(503), 1) is True
        assert policy.should_retry(status_error(404), 1) is False

    def test_custom_condition_overrides_default(self) -> None:
        policy = RetryPolicy(
            RetryConfig(retry_condition=lambda error, attempt: error.status == 429)
        )

        assert policy.should_retry(status_error(429), 1) is True
        assert policy.should_retry(status_error(503), 1) is False

    def test_custom_condition_cannot_retry_cancellation(self) -> None:
        policy = RetryPolicy(RetryConfig(retry_condition=lambda error, attempt: True))

        assert policy.should_retry(CancelError(), 1) is False

    def test_is_retryable_error(self) -> None:
        config = RetryConfig()

        assert is_retryable_error(NetworkError("x"), config) is True
        assert is_retryable_error(ValueError("no response"), config) is True
        assert is_retryable_error(status_error(500), config) is True
        assert is_retryable_error(status_error(400), config) is False


class TestExecute:
    """Tests for the execution loop."""

    @pytest.mark.asyncio
    async def test_success_after_failures(self, sleeps: list[float]) -> None:
        policy = RetryPolicy(RetryConfig(max_retries=3, base_delay_seconds=0.1))
        attempts = 0

        async def flaky() -> str:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise NetworkError("reset")
            return "ok"

        result = await policy.execute(flaky)

        assert result.result == "ok"
        assert result.retries == 2
        assert sleeps == pytest.approx([0.1, 0.2])
        assert result.delay_time_seconds == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error(self, sleeps: list[float]) -> None:
        policy = RetryPolicy(RetryConfig(max_retries=2, base_delay_seconds=0.1))
        errors: list[Exception] = []

        async def always_fail() -> None:
            error = status_error(502)
            errors.append(error)
            raise error

        with pytest.raises(HttpStatusError) as exc_info:
            await policy.execute(always_fail)

        assert len(errors) == 3
        assert exc_info.value is errors[-1]
        assert sleeps == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_non_retryable_error_fails_fast(self, sleeps: list[float]) -> None:
        policy = RetryPolicy(RetryConfig(max_retries=3))
        calls = 0

        async def rejected() -> None:
            nonlocal calls
            calls += 1
            raise QueueFullError(1)

        with pytest.raises(QueueFullError):
            await policy.execute(rejected)

        assert calls == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_zero_retries(self, sleeps: list[float]) -> None:
        policy = RetryPolicy(RetryConfig(max_retries=0))

        async def fail() -> None:
            raise NetworkError("down")

        with pytest.raises(NetworkError):
            await policy.execute(fail)
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_events(self, sleeps: list[float]) -> None:
        policy = create_retry_policy(RetryConfig(max_retries=1, base_delay_seconds=0.5))
        events: list[RetryEvent] = []
        policy.on(events.append)
        attempts = 0

        async def flaky() -> str:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise NetworkError("reset")
            return "ok"

        await policy.execute(flaky)

        assert [(e.type, e.attempt) for e in events] == [
            ("attempt:start", 0),
            ("attempt:fail", 0),
            ("retry:wait", 1),
            ("attempt:start", 1),
            ("attempt:success", 1),
        ]
        assert events[2].data["delay_seconds"] == 0.5

    @pytest.mark.asyncio
    async def test_retry_helper(self, sleeps: list[float]) -> None:
        async def ok() -> int:
            return 42

        result = await retry(ok)

        assert result.result == 42
        assert result.retries == 0


class TestOverrides:
    """Tests for per-request overrides."""

    def test_with_overrides_shares_listeners(self) -> None:
        policy = RetryPolicy(RetryConfig(max_retries=3, base_delay_seconds=1.0))
        events: list[RetryEvent] = []
        policy.on(events.append)

        derived = policy.with_overrides(max_retries=0, base_delay_seconds=0.1)

        assert derived.config.max_retries == 0
        assert derived.config.base_delay_seconds == 0.1
        assert policy.config.max_retries == 3
        assert derived._listeners is policy._listeners

    def test_no_overrides_returns_same_policy(self) -> None:
        policy = RetryPolicy()

        assert policy.with_overrides() is policy

    def test_merge_config_keeps_base(self) -> None:
        base = RetryConfig(max_retries=5, max_delay_seconds=2.0)
        merged = merge_config(base, base_delay_seconds=0.2)

        assert merged.max_retries == 5
        assert merged.max_delay_seconds == 2.0
        assert merged.base_delay_seconds == 0.2
