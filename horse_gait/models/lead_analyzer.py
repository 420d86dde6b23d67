"""Lead leg detection during canter and gallop."""
import logging
from collections import deque
from typing import List, Optional, Tuple

import numpy as np

from .gait import GaitType, Lead

logger = logging.getLogger(__name__)


class LeadAnalyzer:
    """Detect the leading leg from lateral acceleration asymmetry.

    In canter the horse's body rolls slightly toward the leading leg, biasing
    lateral acceleration: negative peaks dominate on the left lead and
    positive peaks on the right lead.
    """

    def __init__(self,
                 window_size: int = 100,
                 minimum_samples: int = 50,
                 confidence_threshold: float = 0.7,
                 peak_threshold: float = 0.1):
        """Initialize lead analyzer.

        Args:
            window_size: Lateral samples kept (2 s at 50 Hz)
            minimum_samples: Samples needed before analyzing
            confidence_threshold: Confidence required to report a lead
            peak_threshold: Minimum |acceleration| (g) for a peak to count
        """
        if minimum_samples > window_size:
            raise ValueError("minimum_samples cannot exceed window_size")

        self.window_size = window_size
        self.minimum_samples = minimum_samples
        self.confidence_threshold = confidence_threshold
        self.peak_threshold = peak_threshold

        self.lateral_buffer: deque = deque(maxlen=window_size)
        self.current_lead = Lead.UNKNOWN
        self.current_confidence = 0.0
        self.total_left_lead_duration = 0.0
        self.total_right_lead_duration = 0.0
        self.last_update_time: Optional[float] = None
        self.in_lead_gait = False

    def process_sample(self, lateral_acceleration: float, timestamp: float, current_gait: GaitType) -> Lead:
        """Feed one lateral acceleration sample.

        Args:
            lateral_acceleration: Horse-frame lateral acceleration in g
            timestamp: Sample time in seconds
            current_gait: Currently committed gait

        Returns:
            Currently reported lead
        """
        was_in_lead_gait = self.in_lead_gait
        self.in_lead_gait = current_gait.is_lead_applicable

        if not self.in_lead_gait:
            if was_in_lead_gait:
                self._accumulate_duration(timestamp)
            self.lateral_buffer.clear()
            self.current_lead = Lead.UNKNOWN
            self.current_confidence = 0.0
            self.last_update_time = timestamp
            return self.current_lead

        self.lateral_buffer.append(lateral_acceleration)

        if len(self.lateral_buffer) >= self.minimum_samples:
            self._analyze()

        self._accumulate_duration(timestamp)
        self.last_update_time = timestamp
        return self.current_lead

    def reset(self) -> None:
        self.lateral_buffer.clear()
        self.current_lead = Lead.UNKNOWN
        self.current_confidence = 0.0
        self.total_left_lead_duration = 0.0
        self.total_right_lead_duration = 0.0
        self.last_update_time = None
        self.in_lead_gait = False

    def detect_peaks(self, samples: np.ndarray) -> Tuple[List[float], List[float]]:
        """Local maxima above and minima below the peak threshold."""
        positive, negative = [], []
        for prev, curr, nxt in zip(samples[:-2], samples[1:-1], samples[2:]):
            if curr > prev and curr > nxt and curr > self.peak_threshold:
                positive.append(float(curr))
            elif curr < prev and curr < nxt and curr < -self.peak_threshold:
                negative.append(float(curr))
        return positive, negative

    def _analyze(self) -> None:
        previous = self.current_lead
        samples = np.asarray(self.lateral_buffer, dtype=float)
        positive, negative = self.detect_peaks(samples)

        if not positive and not negative:
            self.current_confidence = 0.0
            self.current_lead = Lead.UNKNOWN
            return

        positive_avg = float(np.mean(positive)) if positive else 0.0
        negative_avg = abs(float(np.mean(negative))) if negative else 0.0

        # -1 strong left, +1 strong right
        score = 0.4 * float(samples.mean()) + 0.6 * (positive_avg - negative_avg)
        magnitude = abs(score)

        if magnitude < 0.05:
            detected = Lead.UNKNOWN
            self.current_confidence = magnitude / 0.05 * 0.5
        else:
            detected = Lead.LEFT if score < 0 else Lead.RIGHT
            self.current_confidence = min(1.0, 0.5 + (magnitude - 0.05) / 0.25 * 0.5)

        self.current_lead = detected if self.current_confidence >= self.confidence_threshold else Lead.UNKNOWN
        if self.current_lead != previous:
            logger.debug(f"Lead {previous.value} -> {self.current_lead.value} "
                         f"(confidence {self.current_confidence:.2f})")

    def _accumulate_duration(self, timestamp: float) -> None:
        if self.last_update_time is None or self.current_confidence < self.confidence_threshold:
            return

        elapsed = max(0.0, timestamp - self.last_update_time)
        if self.current_lead == Lead.LEFT:
            self.total_left_lead_duration += elapsed
        elif self.current_lead == Lead.RIGHT:
            self.total_right_lead_duration += elapsed
