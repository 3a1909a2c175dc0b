"""Arrival-rate estimation for a single channel."""

from dataclasses import dataclass
from typing import Optional
import logging

logger = logging.getLogger(__name__)

MIN_INTERVAL_MS = 1.0


@dataclass
class RateStats:
    """Smoothed arrival statistics. Zero averages mean "not yet known"."""
    last_delta_at: Optional[float] = None
    ewma_inter_arrival_ms: float = 0.0
    ewma_rate_chars_per_sec: float = 0.0

    @property
    def has_rate(self) -> bool:
        return self.ewma_rate_chars_per_sec > 0.0

    def reset(self) -> None:
        self.last_delta_at = None
        self.ewma_inter_arrival_ms = 0.0
        self.ewma_rate_chars_per_sec = 0.0


class RateEstimator:
    """Exponentially weighted moving average of inter-arrival time and throughput.

    The first observation only records its timestamp. The first inter-arrival
    gap seeds both averages; later gaps are folded in with ``weight`` for the
    new sample and ``1 - weight`` for history.
    """

    def __init__(self, stats: Optional[RateStats] = None, weight: float = 0.3):
        self.stats = stats if stats is not None else RateStats()
        self.weight = weight

    def observe(self, delta_length: int, now: float) -> RateStats:
        stats = self.stats
        previous = stats.last_delta_at
        stats.last_delta_at = now
        if previous is None:
            return stats

        interval = max(now - previous, MIN_INTERVAL_MS)
        rate = delta_length / interval * 1000.0

        if stats.ewma_inter_arrival_ms == 0.0:
            stats.ewma_inter_arrival_ms = interval
            stats.ewma_rate_chars_per_sec = rate
        else:
            w = self.weight
            stats.ewma_inter_arrival_ms = w * interval + (1.0 - w) * stats.ewma_inter_arrival_ms
            stats.ewma_rate_chars_per_sec = w * rate + (1.0 - w) * stats.ewma_rate_chars_per_sec
        return stats

    def reset(self) -> None:
        self.stats.reset()
