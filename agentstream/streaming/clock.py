"""Time sources for the reveal engine.

All scheduling goes through a ``Clock`` so that the same schedulers can run on
an asyncio loop (``LoopClock``) or under fully deterministic virtual time
(``ManualClock``). Times and delays are in milliseconds.
"""

import asyncio
import heapq
import itertools
import logging
from typing import Callable, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopClock:
    """Clock backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(delay_ms, 0.0) / 1000.0, callback)


class _ManualHandle:
    __slots__ = ("cancelled",)

    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Virtual clock that only moves when ``advance`` is called.

    Callbacks due at the same instant run in scheduling order. Callbacks
    scheduled from inside a callback run in the same ``advance`` call if they
    fall due before its end.
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._queue: List[Tuple[float, int, _ManualHandle, Callable[[], None]]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle()
        due = self._now + max(delay_ms, 0.0)
        heapq.heappush(self._queue, (due, next(self._seq), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks that have not been cancelled."""
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def next_due(self) -> Optional[float]:
        for due, _, handle, _ in sorted(self._queue):
            if not handle.cancelled:
                return due
        return None

    def advance(self, ms: float) -> None:
        target = self._now + ms
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, due)
            callback()
        self._now = target

    def run_until_idle(self, limit_ms: float = 60_000.0) -> None:
        """Advance until nothing is scheduled or ``limit_ms`` has elapsed."""
        deadline = self._now + limit_ms
        while True:
            due = self.next_due()
            if due is None or due > deadline:
                break
            self.advance(due - self._now)
