from .buffer import ChannelBuffer
from .clock import Clock, LoopClock, ManualClock
from .coordinator import SessionStreamCoordinator, SessionStreams
from .pacer import AdaptivePacer, backlog_multiplier
from .rate import RateEstimator, RateStats
from .schedulers import (
    AnswerScheduler,
    Channel,
    ChannelPhase,
    ChannelScheduler,
    ReasoningScheduler,
    ToolOutputScheduler,
)
from .ticker import RevealLoop, TimerSet

__all__ = [
    "ChannelBuffer",
    "Clock",
    "LoopClock",
    "ManualClock",
    "SessionStreamCoordinator",
    "SessionStreams",
    "AdaptivePacer",
    "backlog_multiplier",
    "RateEstimator",
    "RateStats",
    "AnswerScheduler",
    "Channel",
    "ChannelPhase",
    "ChannelScheduler",
    "ReasoningScheduler",
    "ToolOutputScheduler",
    "RevealLoop",
    "TimerSet",
]
