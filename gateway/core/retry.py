"""
Retry Handler
=============
Bounded retries with exponential backoff and jitter for provider calls.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from gateway.core.errors import describe_error, is_retryable

logger = structlog.get_logger()

T = TypeVar("T")

# Jitter is a fraction of the base delay, which keeps successive delays non-decreasing
JITTER_RATIO = 0.1


@dataclass
class RetryResult(Generic[T]):
    """Outcome of a retried operation."""

    success: bool
    attempts: int
    total_duration_ms: int
    data: T | None = None
    error: BaseException | None = None

    @property
    def error_message(self) -> str | None:
        return describe_error(self.error) if self.error is not None else None


class RetryHandler:
    """
    Retries an async callable, returning a structured result instead of raising.

    Each attempt runs under ``attempt_timeout``. Errors rejected by the
    ``retryable`` predicate stop the loop immediately.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 16.0,
        attempt_timeout: float | None = 60.0,
        retryable: Callable[[BaseException], bool] = is_retryable,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.attempt_timeout = attempt_timeout
        self.retryable = retryable
        self._sleep = sleep

    def backoff(self, base_delay: float | None = None, max_delay: float | None = None):
        """Build the tenacity wait strategy for the given delays."""
        base = self.base_delay if base_delay is None else base_delay
        cap = self.max_delay if max_delay is None else max_delay
        return wait_exponential_jitter(initial=base, max=cap, jitter=base * JITTER_RATIO)

    async def _run_attempt(self, attempt_fn: Callable[[], Awaitable[T]]) -> T:
        if self.attempt_timeout is None:
            return await attempt_fn()
        return await asyncio.wait_for(attempt_fn(), timeout=self.attempt_timeout)

    async def retry(
        self,
        attempt_fn: Callable[[], Awaitable[T]],
        label: str = "operation",
        max_attempts: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
    ) -> RetryResult[T]:
        """
        Run ``attempt_fn`` until it succeeds, fails permanently, or runs out
        of attempts.
        """
        limit = self.max_attempts if max_attempts is None else max_attempts
        if limit < 1:
            raise ValueError("max_attempts must be at least 1")

        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "Retrying after failure",
                label=label,
                attempt=retry_state.attempt_number,
                max_attempts=limit,
                error=describe_error(error) if error else None,
                retry_in_s=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(limit),
            wait=self.backoff(base_delay, max_delay),
            retry=retry_if_exception(self.retryable),
            sleep=self._sleep,
            before_sleep=log_retry,
            reraise=True,
        )

        start = time.perf_counter()
        attempts = 0
        try:
            async for attempt in retrying:
                attempts = attempt.retry_state.attempt_number
                with attempt:
                    data = await self._run_attempt(attempt_fn)
        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.error(
                "Retry failed",
                label=label,
                attempts=attempts,
                retryable=self.retryable(e),
                error=describe_error(e),
                duration_ms=duration_ms,
            )
            return RetryResult(
                success=False,
                attempts=attempts,
                total_duration_ms=duration_ms,
                error=e,
            )

        duration_ms = int((time.perf_counter() - start) * 1000)
        if attempts > 1:
            logger.info("Retry succeeded", label=label, attempts=attempts, duration_ms=duration_ms)
        return RetryResult(
            success=True,
            attempts=attempts,
            total_duration_ms=duration_ms,
            data=data,
        )

    async def retry_with_fallback(
        self,
        primary_fn: Callable[[], Awaitable[T]],
        fallback_fn: Callable[[], Awaitable[T]],
        label: str = "operation",
    ) -> RetryResult[T]:
        """Retry the primary callable, then the fallback if the primary is exhausted."""
        primary = await self.retry(primary_fn, f"{label} (primary)")
        if primary.success:
            return primary

        logger.warning("Primary exhausted, trying fallback", label=label)
        fallback = await self.retry(fallback_fn, f"{label} (fallback)")
        fallback.attempts += primary.attempts
        return fallback
