"""
Request Deduplication
=====================
Coalesces concurrent identical requests onto one in-flight execution.

The table is owned by a ``Deduplicator`` instance and lives only in this
process. Other gateway instances keep their own tables.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class PendingRequest:
    """An in-flight execution shared by every caller with the same fingerprint."""

    fingerprint: str
    task: asyncio.Task
    started_at: float
    timer: asyncio.TimerHandle | None = None

    def age_ms(self, now: float | None = None) -> float:
        return ((now if now is not None else time.monotonic()) - self.started_at) * 1000


@dataclass(frozen=True)
class CoalescedResult(Generic[T]):
    result: T
    was_deduplicated: bool


class Deduplicator:
    """In-memory fingerprint -> in-flight task table."""

    def __init__(self, timeout_seconds: float = 60.0):
        self.timeout_seconds = timeout_seconds
        self._pending: dict[str, PendingRequest] = {}

    def _remove(self, fingerprint: str, task: asyncio.Task) -> bool:
        """Drop the entry only if it still belongs to ``task``."""
        pending = self._pending.get(fingerprint)
        if pending is None or pending.task is not task:
            return False
        del self._pending[fingerprint]
        if pending.timer is not None:
            pending.timer.cancel()
        return True

    def _on_done(self, fingerprint: str, task: asyncio.Task) -> None:
        self._remove(fingerprint, task)
        # Mark the exception retrieved when every waiter has gone away
        if not task.cancelled():
            task.exception()

    def _on_timeout(self, fingerprint: str, task: asyncio.Task) -> None:
        if self._remove(fingerprint, task):
            logger.warning("Pending request timed out, entry cleared", fingerprint=fingerprint[:12])

    async def coalesce(
        self,
        fingerprint: str,
        executor: Callable[[], Awaitable[T]],
    ) -> CoalescedResult[T]:
        """
        Run ``executor`` once per fingerprint across concurrent callers.

        The lookup and insert below contain no await, so two callers can never
        both start an execution for the same fingerprint.
        """
        existing = self._pending.get(fingerprint)
        if existing is not None:
            logger.info(
                "Deduplicated request",
                fingerprint=fingerprint[:12],
                age_ms=round(existing.age_ms()),
            )
            result = await asyncio.shield(existing.task)
            return CoalescedResult(result=result, was_deduplicated=True)

        loop = asyncio.get_running_loop()
        task = loop.create_task(executor())
        pending = PendingRequest(fingerprint=fingerprint, task=task, started_at=time.monotonic())
        pending.timer = loop.call_later(self.timeout_seconds, self._on_timeout, fingerprint, task)
        self._pending[fingerprint] = pending
        task.add_done_callback(lambda t: self._on_done(fingerprint, t))
        logger.debug("New request", fingerprint=fingerprint[:12])

        # Shield so one caller's cancellation never cancels the shared work
        result = await asyncio.shield(task)
        return CoalescedResult(result=result, was_deduplicated=False)

    def is_pending(self, fingerprint: str) -> bool:
        return fingerprint in self._pending

    def stats(self) -> dict[str, Any]:
        now = time.monotonic()
        ages = [p.age_ms(now) for p in self._pending.values()]
        return {
            "total_pending": len(ages),
            "avg_age_ms": sum(ages) / len(ages) if ages else 0.0,
            "oldest_age_ms": max(ages) if ages else 0.0,
        }

    def clean_stale(self) -> int:
        """Clear entries older than the safety-net timeout."""
        now = time.monotonic()
        stale = [
            p for p in self._pending.values()
            if now - p.started_at > self.timeout_seconds
        ]
        for pending in stale:
            self._remove(pending.fingerprint, pending.task)

        if stale:
            logger.info("Cleaned stale pending requests", count=len(stale))
        return len(stale)

    def clear(self) -> int:
        """
        Clear the table. In-flight executions keep running for the callers
        already waiting on them.
        """
        count = len(self._pending)
        for pending in self._pending.values():
            if pending.timer is not None:
                pending.timer.cancel()
        self._pending.clear()
        logger.info("Cleared pending requests", count=count)
        return count
