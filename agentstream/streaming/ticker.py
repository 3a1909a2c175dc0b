"""Cooperative scheduling primitives bound to a channel."""

from typing import Callable, Dict, Optional
import logging

from agentstream.streaming.clock import Clock, TimerHandle

logger = logging.getLogger(__name__)


class TimerSet:
    """Named, cancellable one-shot timers owned by a channel.

    A fired timer forgets its handle before running the callback, so the
    callback may re-arm the same name.
    """

    def __init__(self, clock: Clock):
        self._clock = clock
        self._handles: Dict[str, TimerHandle] = {}

    def arm(self, name: str, delay_ms: float, callback: Callable[[], None], replace: bool = False) -> bool:
        """Schedule ``callback``. Returns False if ``name`` is already armed and not replaced."""
        if name in self._handles:
            if not replace:
                return False
            self.cancel(name)

        handle: Optional[TimerHandle] = None

        def fire() -> None:
            if self._handles.get(name) is not handle:
                return
            del self._handles[name]
            callback()

        handle = self._clock.call_later(delay_ms, fire)
        self._handles[name] = handle
        return True

    def is_armed(self, name: str) -> bool:
        return name in self._handles

    def cancel(self, name: str) -> None:
        handle = self._handles.pop(name, None)
        if handle is not None:
            handle.cancel()

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def __len__(self) -> int:
        return len(self._handles)


class RevealLoop:
    """A tick that releases a sized slice of a channel's backlog.

    Serves both as the fixed-period spooler (``persistent=True``: keeps ticking
    until stopped) and as the frame-driven reveal loop (``persistent=False``:
    reschedules itself only while backlog remains).

    Args:
        clock: Time source
        period_ms: Delay between ticks
        backlog: Returns the current pending length
        slice_size: Maps pending length to the number of characters to release
        release: Releases that many characters
        persistent: Keep ticking when the backlog is empty
        name: Used in debug logs only
    """

    def __init__(
        self,
        clock: Clock,
        period_ms: float,
        backlog: Callable[[], int],
        slice_size: Callable[[int], int],
        release: Callable[[int], None],
        persistent: bool = False,
        name: str = "reveal",
    ):
        self._clock = clock
        self.period_ms = period_ms
        self._backlog = backlog
        self._slice_size = slice_size
        self._release = release
        self.persistent = persistent
        self.name = name
        self._handle: Optional[TimerHandle] = None
        self._epoch = 0
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        if self._handle is None:
            self._schedule()

    def stop(self) -> None:
        self._epoch += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self) -> None:
        epoch = self._epoch
        self._handle = self._clock.call_later(self.period_ms, lambda: self._tick(epoch))

    def _tick(self, epoch: int) -> None:
        if epoch != self._epoch:
            return
        self._handle = None
        self.ticks += 1

        backlog = self._backlog()
        if backlog:
            size = self._slice_size(backlog)
            if size > 0:
                self._release(size)

        # release() may have stopped or restarted the loop
        if epoch != self._epoch or self._handle is not None:
            return
        if self.persistent or self._backlog() > 0:
            self._schedule()
        else:
            logger.debug(f"{self.name} loop idle after {self.ticks} ticks")
