"""Debounced scheduling of outbound writes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

_LOGGER = logging.getLogger(__name__)


class Debouncer:
    """Coalesce bursts of calls into one invocation of an async function.

    Each call restarts a quiet window of ``wait`` seconds. The function runs
    once the window elapses without further calls, or at the latest
    ``max_wait`` seconds after the first call of the burst, so continuous
    activity still flushes periodically.
    """

    def __init__(
        self,
        function: Callable[[], Awaitable[Any]],
        *,
        wait: float,
        max_wait: float,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Bind the coroutine function and the timing windows."""

        if max_wait < wait:
            raise ValueError("max_wait must not be shorter than wait")
        self._function = function
        self._wait = wait
        self._max_wait = max_wait
        self._loop = loop
        self._timer: asyncio.TimerHandle | None = None
        self._deadline: float | None = None
        self._pending_tasks: set[asyncio.Task[Any]] = set()

    @property
    def is_pending(self) -> bool:
        """Return True while a flush is scheduled but has not fired."""

        return self._timer is not None

    @property
    def pending_tasks(self) -> set[asyncio.Task[Any]]:
        """Return the flushes currently running."""

        return set(self._pending_tasks)

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def __call__(self) -> None:
        """Schedule a flush, extending the quiet window up to the deadline."""

        loop = self._get_loop()
        now = loop.time()
        if self._deadline is None:
            self._deadline = now + self._max_wait
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_at(min(now + self._wait, self._deadline), self._flush)

    def _flush(self) -> None:
        self._timer = None
        self._deadline = None
        task = self._get_loop().create_task(self._function())
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)
        _LOGGER.debug("Debounced call flushed")

    async def async_wait(self) -> None:
        """Wait for any scheduled flush and the resulting call to finish."""

        while self._timer is not None or self._pending_tasks:
            if self._pending_tasks:
                await asyncio.gather(*self._pending_tasks, return_exceptions=True)
            else:
                await asyncio.sleep(self._wait / 4 or 0.001)
