"""Cancellable background tasks and deferred calls.

Every task the pool starts (session lifecycles, reconnect timers, macro
playback) goes through a Scheduler so that shutdown can cancel all of it
in one place. Deferred calls re-check the running flag when their timer
fires and do nothing once the pool has stopped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Coroutine

logger = logging.getLogger(__name__)


class Scheduler:
    def __init__(self, is_running: Callable[[], bool]) -> None:
        self._is_running = is_running
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine, *, name: str | None = None) -> asyncio.Task:
        """Run a coroutine as a tracked task."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def call_later(
        self,
        delay: float,
        factory: Callable[[], Awaitable[None]],
        *,
        name: str | None = None,
    ) -> asyncio.Task:
        """Await ``factory()`` after ``delay`` seconds, unless stopped by then."""

        async def _deferred() -> None:
            await asyncio.sleep(delay)
            if not self._is_running():
                logger.debug("Dropping deferred task %s (stopped)", name)
                return
            await factory()

        return self.spawn(_deferred(), name=name)

    async def cancel_all(self) -> None:
        """Cancel every tracked task and wait for them to finish."""
        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s failed: %s", task.get_name(), exc, exc_info=exc
            )
