"""
Unit tests for the shared retry and circuit breaker helpers.
"""

from unittest.mock import AsyncMock

import pytest

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.retry import RetryConfig, RetryError, call_with_retry, retry_on_exception


class TestRetry:
    """Test cases for retry_on_exception."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        func = AsyncMock(side_effect=[ValueError("boom"), ValueError("boom"), "ok"])
        wrapped = retry_on_exception((ValueError,), RetryConfig(max_attempts=3, base_delay=0.0))(func)

        assert await wrapped("arg") == "ok"
        assert func.await_count == 3
        func.assert_awaited_with("arg")

    @pytest.mark.asyncio
    async def test_exhaustion_raises_retry_error(self):
        func = AsyncMock(side_effect=ValueError("boom"))
        wrapped = retry_on_exception((ValueError,), RetryConfig(max_attempts=2, base_delay=0.0))(func)

        with pytest.raises(RetryError) as exc_info:
            await wrapped()

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_exception, ValueError)

    @pytest.mark.asyncio
    async def test_other_exceptions_are_not_retried(self):
        func = AsyncMock(side_effect=KeyError("nope"))
        wrapped = retry_on_exception((ValueError,), RetryConfig(max_attempts=3, base_delay=0.0))(func)

        with pytest.raises(KeyError):
            await wrapped()

        assert func.await_count == 1

    def test_exponential_backoff_is_capped(self):
        config = RetryConfig(base_delay=1.0, max_delay=3.0, jitter=False)

        assert [config.delay_for(attempt) for attempt in (1, 2, 3, 4)] == [1.0, 2.0, 3.0, 3.0]

    def test_jitter_stays_within_ten_percent(self):
        config = RetryConfig(base_delay=1.0, jitter=True)

        for _ in range(20):
            assert 0.9 <= config.delay_for(1) <= 1.1

    def test_linear_and_fixed_backoff(self):
        linear = RetryConfig(base_delay=0.5, jitter=False, backoff_strategy="linear")
        fixed = RetryConfig(base_delay=0.5, jitter=False, backoff_strategy="fixed")

        assert [linear.delay_for(attempt) for attempt in (1, 2, 3)] == [0.5, 1.0, 1.5]
        assert [fixed.delay_for(attempt) for attempt in (1, 2, 3)] == [0.5, 0.5, 0.5]

    def test_at_least_one_attempt_is_required(self):
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)

    @pytest.mark.asyncio
    async def test_call_with_retry_passes_arguments_through(self):
        func = AsyncMock(side_effect=[ConnectionError("down"), "ok"])

        result = await call_with_retry(
            func,
            "Pho One",
            retry_on=(ConnectionError,),
            config=RetryConfig(max_attempts=2, base_delay=0.0),
            operation="store.get",
            consistent=True,
        )

        assert result == "ok"
        func.assert_awaited_with("Pho One", consistent=True)

    @pytest.mark.asyncio
    async def test_call_with_retry_reports_attempts(self):
        func = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(RetryError) as exc_info:
            await call_with_retry(
                func,
                retry_on=(ConnectionError,),
                config=RetryConfig(max_attempts=3, base_delay=0.0),
                operation="store.query",
            )

        assert exc_info.value.attempts == 3
        assert "store.query" in str(exc_info.value)
        assert func.await_count == 3


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60.0, name="test")
        failing = AsyncMock(side_effect=ConnectionError("down"))

        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        assert breaker.is_open()
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(failing)
        assert failing.await_count == 2

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self):
        breaker = CircuitBreaker(failure_threshold=2, name="test")

        with pytest.raises(ConnectionError):
            await breaker.call(AsyncMock(side_effect=ConnectionError("down")))
        await breaker.call(AsyncMock(return_value="ok"))

        assert breaker.get_state()["failure_count"] == 0
        assert breaker.get_state()["state"] == "closed"

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self):
        now = [0.0]
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=5.0, name="test", clock=lambda: now[0])
        failing = AsyncMock(side_effect=ConnectionError("down"))

        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        now[0] = 6.0
        with pytest.raises(ConnectionError):
            await breaker.call(failing)

        assert breaker.is_open()
