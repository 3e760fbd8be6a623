"""
Retry Handler Tests
===================
Tests for bounded retries with exponential backoff.
"""

import asyncio

import httpx
import pytest

from gateway.core.errors import PermanentRequestError, TransientProviderError
from gateway.core.retry import RetryHandler


def scripted(*outcomes):
    """Attempt function returning or raising each outcome in turn."""
    remaining = list(outcomes)
    calls = []

    async def attempt():
        calls.append(1)
        outcome = remaining.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    attempt.calls = calls
    return attempt


@pytest.fixture
def handler(recording_sleep) -> RetryHandler:
    return RetryHandler(max_attempts=3, base_delay=1.0, max_delay=16.0, sleep=recording_sleep)


class TestRetryHandler:
    """Tests for RetryHandler.retry."""

    async def test_first_attempt_success(self, handler, sleeps):
        result = await handler.retry(scripted("ok"), "test")

        assert result.success
        assert result.data == "ok"
        assert result.attempts == 1
        assert result.error is None
        assert sleeps == []

    async def test_transient_then_success(self, handler, sleeps):
        attempt = scripted(
            TransientProviderError("500", status_code=500),
            TransientProviderError("500", status_code=500),
            "ok",
        )
        result = await handler.retry(attempt, "test")

        assert result.success
        assert result.attempts == 3
        assert len(sleeps) == 2
        assert 1.0 <= sleeps[0] <= 1.1
        assert 2.0 <= sleeps[1] <= 2.1

    async def test_exhaustion_returns_last_error(self, handler):
        last = TransientProviderError("third")
        attempt = scripted(TransientProviderError("first"), TransientProviderError("second"), last)
        result = await handler.retry(attempt, "test")

        assert not result.success
        assert result.attempts == 3
        assert result.error is last
        assert result.error_message == "third"
        assert len(attempt.calls) == 3

    async def test_permanent_error_not_retried(self, handler, sleeps):
        attempt = scripted(PermanentRequestError("bad request", status_code=400), "never")
        result = await handler.retry(attempt, "test")

        assert not result.success
        assert result.attempts == 1
        assert isinstance(result.error, PermanentRequestError)
        assert sleeps == []

    async def test_transport_errors_are_retried(self, handler):
        attempt = scripted(httpx.ConnectError("refused"), "ok")
        result = await handler.retry(attempt, "test")

        assert result.success
        assert result.attempts == 2

    async def test_unknown_errors_not_retried(self, handler):
        result = await handler.retry(scripted(KeyError("boom"), "ok"), "test")

        assert not result.success
        assert result.attempts == 1

    async def test_per_call_attempt_limit(self, handler):
        attempt = scripted(*[TransientProviderError("down")] * 5)
        result = await handler.retry(attempt, "test", max_attempts=5)

        assert result.attempts == 5
        assert len(attempt.calls) == 5

    async def test_single_attempt(self, handler, sleeps):
        result = await handler.retry(scripted(TransientProviderError("down")), "test", max_attempts=1)

        assert not result.success
        assert result.attempts == 1
        assert sleeps == []

    async def test_backoff_monotonic_and_capped(self, recording_sleep, sleeps):
        handler = RetryHandler(max_attempts=8, base_delay=1.0, max_delay=10.0, sleep=recording_sleep)
        await handler.retry(scripted(*[TransientProviderError("down")] * 8), "test")

        assert len(sleeps) == 7
        assert sleeps == sorted(sleeps)
        assert max(sleeps) <= 10.0
        assert sleeps[-1] == 10.0

    async def test_zero_base_delay(self, recording_sleep, sleeps):
        handler = RetryHandler(max_attempts=3, base_delay=0, max_delay=0, sleep=recording_sleep)
        await handler.retry(scripted(TransientProviderError("a"), TransientProviderError("b"), "ok"), "test")

        assert sleeps == [0, 0]

    async def test_attempt_timeout(self, recording_sleep):
        handler = RetryHandler(max_attempts=2, base_delay=0, attempt_timeout=0.01, sleep=recording_sleep)

        async def slow():
            await asyncio.sleep(1)

        result = await handler.retry(slow, "test")

        assert not result.success
        assert result.attempts == 2
        assert isinstance(result.error, (asyncio.TimeoutError, TimeoutError))

    def test_invalid_attempt_limit(self):
        with pytest.raises(ValueError):
            RetryHandler(max_attempts=0)

    async def test_retry_with_fallback(self, handler):
        primary = scripted(*[TransientProviderError("down")] * 3)
        fallback = scripted("backup")

        result = await handler.retry_with_fallback(primary, fallback, "test")

        assert result.success
        assert result.data == "backup"
        assert result.attempts == 4
