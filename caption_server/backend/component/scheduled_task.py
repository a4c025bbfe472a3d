"""Cancellable delayed callbacks for session timers."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from typing import Callable, List, Optional, Protocol, Tuple

LOGGER = logging.getLogger("caption_server.scheduled_task")


class ScheduledTask:
    """Handle for a callback scheduled to run once after a delay."""

    def __init__(self, callback: Callable[[], None], due_at: float) -> None:
        self._callback = callback
        self.due_at = due_at
        self._cancelled = False
        self._done = False
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._done

    def cancel(self) -> None:
        """Cancel the task; a no-op once it has fired."""
        if self._done or self._cancelled:
            return
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _run(self) -> None:
        if self._cancelled or self._done:
            return
        self._done = True
        self._handle = None
        try:
            self._callback()
        except Exception:
            LOGGER.exception("Scheduled task callback failed")


class TaskScheduler(Protocol):
    def now(self) -> float: ...

    def call_later(
        self, delay: float, callback: Callable[[], None]
    ) -> ScheduledTask: ...


class AsyncioTaskScheduler:
    """Schedules callbacks on an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self._get_loop().time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        loop = self._get_loop()
        delay = max(0.0, float(delay))
        task = ScheduledTask(callback, loop.time() + delay)
        task._handle = loop.call_later(delay, task._run)
        return task


class ManualTaskScheduler:
    """Virtual-clock scheduler; callbacks fire only when ``advance`` is called."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, ScheduledTask]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        task = ScheduledTask(callback, self._now + max(0.0, float(delay)))
        heapq.heappush(self._queue, (task.due_at, next(self._seq), task))
        return task

    def advance(self, seconds: float) -> int:
        """Move the clock forward and run every task that became due.

        Returns the number of callbacks that ran. Tasks scheduled by a callback
        run in the same call when they fall inside the window.
        """
        target = self._now + max(0.0, float(seconds))
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due_at, _, task = heapq.heappop(self._queue)
            self._now = max(self._now, due_at)
            if task.cancelled:
                continue
            task._run()
            fired += 1
        self._now = target
        return fired

    @property
    def pending(self) -> int:
        return sum(1 for _, _, task in self._queue if not task.cancelled)


__all__ = [
    "AsyncioTaskScheduler",
    "ManualTaskScheduler",
    "ScheduledTask",
    "TaskScheduler",
]
