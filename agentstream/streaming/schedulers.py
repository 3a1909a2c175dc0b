"""Per-channel release scheduling.

Each scheduler owns the state of one channel of one session: the pending
buffer, its rate statistics, its timers and its reveal loop. Released text is
handed to an ``emit(text, streaming)`` callback; schedulers never talk to the
conversation store directly.

Answer channel phases::

    IDLE -> BOOSTED -> STEADY -> DRAINING -> IDLE

While BOOSTED (within ``boost_window_ms`` of the first delta of the turn)
every delta is released in full immediately. While STEADY, releases are paced
by the arrival rate, coalesced by soft/hard timers and backed by a fixed
period spooler that accelerates when the backlog grows.
"""

from enum import Enum
from typing import Callable, Optional
import logging

from agentstream.config import PacingConfig
from agentstream.streaming.buffer import ChannelBuffer
from agentstream.streaming.clock import Clock
from agentstream.streaming.pacer import AdaptivePacer, backlog_multiplier
from agentstream.streaming.rate import RateEstimator, RateStats
from agentstream.streaming.ticker import RevealLoop, TimerSet

logger = logging.getLogger(__name__)

EmitFn = Callable[[str, bool], None]

SOFT_TIMER = "soft"
HARD_TIMER = "hard"
INTERVAL_TIMER = "interval"


class Channel(Enum):
    ANSWER = "answer"
    REASONING = "reasoning"
    TOOL_OUTPUT = "tool_output"


class ChannelPhase(Enum):
    IDLE = "idle"
    BOOSTED = "boosted"
    STEADY = "steady"
    DRAINING = "draining"


class ChannelScheduler:
    """Shared state and lifecycle for one channel."""

    channel: Channel

    def __init__(
        self,
        clock: Clock,
        emit: EmitFn,
        config: Optional[PacingConfig] = None,
        pacer: Optional[AdaptivePacer] = None,
    ):
        self.config = config or PacingConfig()
        self.clock = clock
        self.pacer = pacer or AdaptivePacer(self.config)
        self.buffer = ChannelBuffer()
        self.estimator = RateEstimator(weight=self.config.ewma_weight)
        self.timers = TimerSet(clock)
        self.turn_started_at: Optional[float] = None
        self.last_release_at: Optional[float] = None
        self.active = False
        self.closed = False
        self.generation = 0
        self.releases = 0
        self._phase = ChannelPhase.IDLE
        self._emit = emit

    # --- Properties ---

    @property
    def rate_stats(self) -> RateStats:
        return self.estimator.stats

    @property
    def phase(self) -> ChannelPhase:
        return self._phase

    @property
    def pending(self) -> str:
        return self.buffer.pending

    # --- Lifecycle ---

    def on_delta(self, text: str) -> None:
        raise NotImplementedError

    def drain(self) -> str:
        """Forced final release of everything pending, then back to IDLE.

        The final release is emitted with ``streaming=False`` (possibly empty)
        when the channel saw any text this turn.
        """
        self._phase = ChannelPhase.DRAINING
        self.cancel_all()
        text = self.buffer.drain()
        if self.active:
            self._deliver(text, streaming=False)
        self.reset()
        return text

    def settle(self) -> str:
        """Release everything pending while streaming, without ending the turn."""
        self.cancel_all()
        text = self.buffer.drain()
        if text:
            self._deliver(text, streaming=True)
        return text

    def reset(self) -> None:
        """Drop pending text, rate stats and scheduled work. Safe to call repeatedly."""
        self.cancel_all()
        self.buffer.clear()
        self.estimator.reset()
        self.turn_started_at = None
        self.last_release_at = None
        self.active = False
        self.releases = 0
        self.generation += 1
        self._phase = ChannelPhase.IDLE

    def close(self) -> None:
        self.reset()
        self.closed = True

    def cancel_all(self) -> None:
        self.timers.cancel_all()
        for loop in self._loops():
            loop.stop()

    def _loops(self):
        return ()

    # --- Helpers ---

    def _accept(self, text: str) -> Optional[float]:
        """Record an arriving delta. Returns the arrival time, or None to ignore it."""
        if self.closed or not text:
            return None
        now = self.clock.now()
        if self.turn_started_at is None:
            self.turn_started_at = now
        self.active = True
        self.buffer.append(text)
        self.estimator.observe(len(text), now)
        return now

    def _guarded(self, callback: Callable[[], None]) -> Callable[[], None]:
        generation = self.generation

        def run() -> None:
            if self.closed or generation != self.generation:
                logger.debug(f"Dropping stale {self.channel.value} callback")
                return
            callback()

        return run

    def _take(self, size: int) -> str:
        text = self.buffer.take(size)
        if text:
            self._deliver(text, streaming=True)
        return text

    def _deliver(self, text: str, streaming: bool) -> None:
        self.last_release_at = self.clock.now()
        self.releases += 1
        self._emit(text, streaming)


class AnswerScheduler(ChannelScheduler):
    """Boosted, then rate-paced release of answer text."""

    channel = Channel.ANSWER

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.spooler = RevealLoop(
            self.clock,
            self.config.spooler_period_ms,
            backlog=lambda: len(self.buffer),
            slice_size=self._spool_slice,
            release=self._release,
            persistent=True,
            name="answer spooler",
        )

    @property
    def phase(self) -> ChannelPhase:
        if self._phase is ChannelPhase.BOOSTED and not self.in_boost_window():
            return ChannelPhase.STEADY
        return self._phase

    def in_boost_window(self, now: Optional[float] = None) -> bool:
        if self.turn_started_at is None:
            return False
        now = self.clock.now() if now is None else now
        return now - self.turn_started_at < self.config.boost_window_ms

    def _loops(self):
        return (self.spooler,)

    def on_delta(self, text: str) -> None:
        now = self._accept(text)
        if now is None:
            return
        if not self.spooler.running:
            self.spooler.start()

        if self.in_boost_window(now):
            self._phase = ChannelPhase.BOOSTED
            self.flush(force=True)
            return

        if self._phase is not ChannelPhase.STEADY:
            logger.debug("Answer channel leaving boost window")
        self._phase = ChannelPhase.STEADY
        self._plan(now, allow_immediate=True)

    def flush(self, force: bool = False) -> str:
        """Release pending text.

        A forced flush releases everything. Otherwise something is released only
        when the backlog reaches the desired chunk size or contains a word
        boundary; the slice is the chunk size scaled by the backlog multiplier.
        """
        if not self.buffer:
            self.timers.cancel(SOFT_TIMER)
            self.timers.cancel(HARD_TIMER)
            return ""
        if force:
            return self._release(len(self.buffer))
        size = self._paced_slice(len(self.buffer))
        if size <= 0:
            return ""
        return self._release(size)

    def _paced_slice(self, backlog: int) -> int:
        chunk = self.pacer.desired_chunk_size(self.rate_stats)
        if backlog < chunk:
            return backlog if self.buffer.has_word_boundary() else 0
        return chunk * backlog_multiplier(backlog, self.config.spooler_backlog_steps)

    def _spool_slice(self, backlog: int) -> int:
        if self.in_boost_window():
            return backlog
        return self._paced_slice(backlog)

    def _release(self, size: int) -> str:
        if self.closed:
            return ""
        text = self._take(size)
        if not text:
            return ""
        self.timers.cancel(SOFT_TIMER)
        self.timers.cancel(HARD_TIMER)
        self.timers.cancel(INTERVAL_TIMER)
        if self.buffer and self.phase is ChannelPhase.STEADY:
            self._plan(self.clock.now(), allow_immediate=False)
        return text

    def _plan(self, now: float, allow_immediate: bool) -> None:
        stats = self.rate_stats
        chunk = self.pacer.desired_chunk_size(stats)
        if len(self.buffer) >= chunk:
            if self.last_release_at is None:
                wait = 0.0
            else:
                wait = self.config.min_flush_interval_ms - (now - self.last_release_at)
            if wait <= 0 and allow_immediate:
                self.flush()
                return
            self.timers.arm(INTERVAL_TIMER, max(wait, 0.0), self._guarded(self.flush))
            return

        soft, hard = self.pacer.desired_waits(stats)
        self.timers.arm(SOFT_TIMER, soft, self._guarded(self.flush))
        self.timers.arm(HARD_TIMER, hard, self._guarded(lambda: self.flush(force=True)))


class ReasoningScheduler(ChannelScheduler):
    """Frame-driven reveal that speeds up as the backlog grows."""

    channel = Channel.REASONING

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.frames = RevealLoop(
            self.clock,
            self.config.reasoning_frame_ms,
            backlog=lambda: len(self.buffer),
            slice_size=self.frame_slice,
            release=self._release,
            persistent=False,
            name="reasoning frames",
        )

    def _loops(self):
        return (self.frames,)

    def frame_slice(self, backlog: int) -> int:
        base = self.pacer.desired_chunk_size(self.rate_stats)
        return base * backlog_multiplier(backlog, self.config.reasoning_backlog_steps)

    def on_delta(self, text: str) -> None:
        first = self._phase is ChannelPhase.IDLE
        if self._accept(text) is None:
            return
        if first:
            self._phase = ChannelPhase.BOOSTED
            self._release(self.frame_slice(len(self.buffer)))
        else:
            self._phase = ChannelPhase.STEADY
        if self.buffer:
            self.frames.start()

    def _release(self, size: int) -> str:
        if self.closed:
            return ""
        return self._take(size)


class ToolOutputScheduler(ChannelScheduler):
    """Coalesces command output into frame-aligned releases, verbatim."""

    channel = Channel.TOOL_OUTPUT

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.frames = RevealLoop(
            self.clock,
            self.config.tool_frame_ms,
            backlog=lambda: len(self.buffer),
            slice_size=lambda backlog: backlog,
            release=self._release,
            persistent=False,
            name="tool output frames",
        )

    def _loops(self):
        return (self.frames,)

    def on_delta(self, text: str) -> None:
        if self._accept(text) is None:
            return
        self._phase = ChannelPhase.STEADY
        self.frames.start()

    def finish(self) -> str:
        """Release everything now and mark the output as no longer streaming."""
        if not self.active:
            return ""
        self.frames.stop()
        text = self.buffer.drain()
        self._deliver(text, streaming=False)
        self._phase = ChannelPhase.IDLE
        return text

    def _release(self, size: int) -> str:
        if self.closed:
            return ""
        return self._take(size)
