"""Coalescing scheduler for subscription pushes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

_logger = logging.getLogger(__name__)


class Debouncer:
    """Collapse bursts of triggers into a single async call.

    Each trigger re-arms a ``wait`` second quiet-period timer. The call runs
    when the quiet period elapses, or at the latest ``max_wait`` seconds after
    the first trigger of the burst. Calls never overlap: a timer firing while
    a call is running queues one follow-up call, and further firings while
    that follow-up is waiting collapse into it.
    """

    def __init__(
        self,
        function: Callable[[], Awaitable[None]],
        *,
        wait: float,
        max_wait: float,
        name: str = "debouncer",
    ) -> None:
        self._function = function
        self._wait = wait
        self._max_wait = max(max_wait, wait)
        self._name = name
        self._timer: asyncio.TimerHandle | None = None
        self._burst_started: float | None = None
        self._lock = asyncio.Lock()
        self._queued = False
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def is_armed(self) -> bool:
        return self._timer is not None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def __call__(self) -> None:
        """Arm (or re-arm) the timer. Must be called with a running loop."""
        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._burst_started is None:
            self._burst_started = now
        if self._timer is not None:
            self._timer.cancel()
        deadline = min(now + self._wait, self._burst_started + self._max_wait)
        self._timer = loop.call_at(deadline, self._fire)

    def cancel(self) -> None:
        """Drop the armed timer. A call already running is left to finish."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._burst_started = None

    async def flush(self) -> None:
        """Run the call now, cancelling any armed timer."""
        self.cancel()
        async with self._lock:
            await self._call()

    async def wait_idle(self) -> None:
        """Wait until every call started by the timer has completed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self) -> None:
        self._timer = None
        self._burst_started = None
        if self._queued:
            return
        self._queued = True
        task = asyncio.get_running_loop().create_task(self._run_queued())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_queued(self) -> None:
        async with self._lock:
            self._queued = False
            await self._call()

    async def _call(self) -> None:
        try:
            await self._function()
        except Exception:
            _logger.exception("%s: debounced call failed", self._name)
