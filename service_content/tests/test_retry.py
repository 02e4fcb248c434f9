"""
Unit tests for retry with exponential backoff.
"""

from unittest.mock import AsyncMock

import pytest

from shared.metrics import MetricsCollector
from shared.retry import retry_on_exception, retry_with_backoff
from shared.test_helpers import FakeClock


class TestRetryWithBackoff:
    """Test cases for retry_with_backoff."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.mark.asyncio
    async def test_succeeds_after_two_failures(self, clock):
        fn = AsyncMock(side_effect=[ConnectionError("1"), ConnectionError("2"), "ok"])

        result = await retry_with_backoff(fn, retries=3, initial_delay=0.1, clock=clock)

        assert result == "ok"
        assert fn.await_count == 3
        assert clock.sleeps == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_last_error(self, clock):
        last = ConnectionError("last")
        fn = AsyncMock(side_effect=[ConnectionError("first"), ConnectionError("second"), last])

        with pytest.raises(ConnectionError) as exc_info:
            await retry_with_backoff(fn, retries=2, initial_delay=0.1, clock=clock)

        assert exc_info.value is last
        assert fn.await_count == 3
        assert clock.sleeps == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_zero_retries_calls_once(self, clock):
        fn = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(ConnectionError):
            await retry_with_backoff(fn, retries=0, clock=clock)

        fn.assert_awaited_once()
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_unlisted_exceptions_are_not_retried(self, clock):
        fn = AsyncMock(side_effect=ValueError("bad input"))

        with pytest.raises(ValueError):
            await retry_with_backoff(fn, exceptions=(ConnectionError,), clock=clock)

        fn.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_are_counted(self, clock):
        metrics = MetricsCollector("test-content")
        fn = AsyncMock(side_effect=[ConnectionError("1"), "ok"])

        await retry_with_backoff(fn, retries=3, initial_delay=0.1, clock=clock, metrics=metrics, name="quran")

        assert metrics.sample("retry_attempts_total", function="quran") == 1.0


class TestRetryOnException:

    @pytest.mark.asyncio
    async def test_decorated_function_is_retried(self):
        calls = []

        @retry_on_exception((ConnectionError,), retries=2, initial_delay=0)
        async def flaky(value):
            calls.append(value)
            if len(calls) < 3:
                raise ConnectionError("flaky")
            return value * 2

        assert await flaky(21) == 42
        assert calls == [21, 21, 21]
        assert flaky.__name__ == "flaky"
