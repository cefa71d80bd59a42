"""Single-slot cancellable retry timer."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger("moonbridge.service.retry")

RetryCallback = Callable[[], Awaitable[None] | None]


class RetryScheduler:
    """Holds at most one pending delayed callback.

    ``arm`` cancels whatever is pending before scheduling, so the not-ready
    poll and the 503 recovery can never both be queued.
    """

    def __init__(self, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self.armed_count = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def arm(self, delay: float, callback: RetryCallback, *, reason: str = "") -> None:
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire, callback)
        self.armed_count += 1
        logger.debug("Retry armed in %.2fs (%s)", delay, reason or "unspecified")

    def cancel(self) -> bool:
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        return True

    def _fire(self, callback: RetryCallback) -> None:
        self._handle = None
        result = callback()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)


__all__ = ["RetryCallback", "RetryScheduler"]
