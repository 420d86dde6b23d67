"""Stride rhythm regularity from vertical bounce."""
from collections import deque
from typing import Optional, Tuple

import numpy as np

from .gait import GaitType

# Expected stride rates per gait (strides per minute)
EXPECTED_STRIDE_RATES = {
    GaitType.WALK: (50.0, 65.0),
    GaitType.TROT: (70.0, 85.0),
    GaitType.CANTER: (90.0, 110.0),
    GaitType.GALLOP: (110.0, 140.0),
}


class RhythmAnalyzer:
    """Score stride regularity as 0-100 from stride interval variability."""

    def __init__(self,
                 analysis_window: float = 6.0,
                 minimum_intervals: int = 4,
                 min_interval: float = 0.25,
                 max_interval: float = 2.0):
        """Initialize rhythm analyzer.

        Args:
            analysis_window: Seconds of stride history considered
            minimum_intervals: Intervals needed before a score is produced
            min_interval: Shortest accepted stride interval (s)
            max_interval: Longest accepted stride interval (s)
        """
        self.analysis_window = analysis_window
        self.minimum_intervals = minimum_intervals
        self.min_interval = min_interval
        self.max_interval = max_interval

        self.stride_times: deque = deque()
        self.rhythm_score = 0.0
        self.stride_rate = 0.0  # strides per minute
        self._previous_value: Optional[float] = None
        self._mean = 0.0

    def process_sample(self, vertical_acceleration: float, timestamp: float) -> float:
        """Feed one vertical sample and return the current rhythm score."""
        # Slowly tracking mean removes sensor offset
        self._mean += 0.01 * (vertical_acceleration - self._mean)
        value = vertical_acceleration - self._mean

        if self._previous_value is not None and self._previous_value <= 0 < value:
            self._add_stride(timestamp)
        self._previous_value = value

        while self.stride_times and timestamp - self.stride_times[0] > self.analysis_window:
            self.stride_times.popleft()

        self.rhythm_score, self.stride_rate = self._score()
        return self.rhythm_score

    def reset(self) -> None:
        self.stride_times.clear()
        self.rhythm_score = 0.0
        self.stride_rate = 0.0
        self._previous_value = None
        self._mean = 0.0

    def gait_appropriateness(self, gait: GaitType) -> float:
        """How well the stride rate fits the gait, 0-100 (50 when no range applies)."""
        expected = EXPECTED_STRIDE_RATES.get(gait)
        if expected is None:
            return 50.0
        low, high = expected
        if low <= self.stride_rate <= high:
            return 100.0
        midpoint = (low + high) / 2
        deviation = abs(self.stride_rate - midpoint)
        return max(0.0, 100.0 - deviation / (high - low) * 50.0)

    def _add_stride(self, timestamp: float) -> None:
        if self.stride_times:
            interval = timestamp - self.stride_times[-1]
            if interval < self.min_interval:
                return
            if interval > self.max_interval:
                self.stride_times.clear()
        self.stride_times.append(timestamp)

    def _score(self) -> Tuple[float, float]:
        if len(self.stride_times) < self.minimum_intervals + 1:
            return 0.0, 0.0

        intervals = np.diff(np.asarray(self.stride_times, dtype=float))
        mean = float(intervals.mean())
        if mean <= 0:
            return 0.0, 0.0

        cv = float(intervals.std()) / mean
        score = max(0.0, 1.0 - min(1.0, cv / 0.2)) * 100
        return score, 60.0 / mean
