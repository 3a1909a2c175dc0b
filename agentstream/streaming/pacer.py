"""Slice sizing and wait computation from rate statistics."""

from typing import Optional, Sequence, Tuple

from agentstream.config import PacingConfig
from agentstream.streaming.rate import RateStats


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def backlog_multiplier(backlog: int, steps: Sequence[Tuple[int, int]]) -> int:
    """Return the multiplier of the highest ``(threshold, multiplier)`` step exceeded."""
    multiplier = 1
    for threshold, step_multiplier in steps:
        if backlog > threshold:
            multiplier = max(multiplier, step_multiplier)
    return multiplier


class AdaptivePacer:
    """Turns observed arrival rate into a release size and coalescing waits.

    The soft wait lets small bursts coalesce before rendering; the hard wait
    bounds worst-case latency when arrivals stall.
    """

    def __init__(self, config: Optional[PacingConfig] = None):
        self.config = config or PacingConfig()

    def desired_chunk_size(self, stats: RateStats) -> int:
        cfg = self.config
        if not stats.has_rate:
            return cfg.min_chunk_chars
        size = stats.ewma_rate_chars_per_sec * cfg.frame_budget_ms / 1000.0
        return int(clamp(size, cfg.min_chunk_chars, cfg.max_chunk_chars))

    def desired_waits(self, stats: RateStats) -> Tuple[float, float]:
        cfg = self.config
        soft = clamp(
            stats.ewma_inter_arrival_ms * cfg.soft_wait_factor,
            cfg.soft_wait_min_ms,
            cfg.soft_wait_max_ms,
        )
        hard = clamp(soft * cfg.hard_wait_factor, cfg.hard_wait_min_ms, cfg.hard_wait_max_ms)
        return soft, hard
