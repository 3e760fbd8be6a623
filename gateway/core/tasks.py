"""
Side-Effect Queue
=================
Tracks fire-and-forget coroutines such as usage logging and health recording.

Failures are logged and dropped. ``drain()`` waits for everything submitted so
far, which lets shutdown and tests observe side effects deterministically.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

logger = structlog.get_logger()


class SideEffectQueue:
    """Set of background tasks with log-and-drop failure handling."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self.failed = 0

    def submit(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(t, label))
        return task

    def _finished(self, task: asyncio.Task, label: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.failed += 1
            logger.error("Side effect failed", label=label, error=str(error))

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every submitted side effect has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
