"""Hilbert-transform phase analysis and signal coupling measures.

Used for coherence features that separate gaits with similar stride
frequency but different left-right symmetry: trot shows strong left-right
symmetry, canter and gallop show vertical/yaw coupling instead.
"""
from typing import Optional, Sequence

import numpy as np
from scipy.signal import coherence as welch_coherence, hilbert

EPSILON = 1e-10


def next_power_of_two(n: int) -> int:
    power = 1
    while power < n:
        power *= 2
    return power


def wrap_phase(phase: np.ndarray) -> np.ndarray:
    """Wrap angles to (-pi, pi]."""
    wrapped = np.mod(np.asarray(phase, dtype=float) + np.pi, 2 * np.pi) - np.pi
    # np.mod lands on -pi; the interval is closed at +pi
    wrapped[np.isclose(wrapped, -np.pi)] = np.pi
    return wrapped


class PhaseCoherenceAnalyzer:
    """Analytic-signal phase, envelope and coupling between paired signals."""

    def __init__(self,
                 sample_rate: float = 100.0,
                 segment_length: int = 128,
                 overlap: int = 64):
        """Initialize phase coherence analyzer.

        Args:
            sample_rate: Sample rate in Hz
            segment_length: Welch segment length for spectral coherence
            overlap: Overlapping samples between Welch segments

        Raises:
            ValueError: If overlap is not smaller than segment_length
        """
        if segment_length <= 0:
            raise ValueError(f"Segment length must be positive, got {segment_length}")
        if not 0 <= overlap < segment_length:
            raise ValueError(
                f"Overlap must be in [0, {segment_length}), got {overlap}"
            )

        self.sample_rate = sample_rate
        self.segment_length = segment_length
        self.overlap = overlap

    def analytic_signal(self, signal: Sequence[float]) -> np.ndarray:
        """Compute the analytic signal.

        The mean is removed first since a DC offset biases the phase. The
        signal is zero padded to the next power of two, positive-frequency
        bins are doubled (DC and Nyquist unchanged) and the inverse transform
        is truncated back to the input length.

        Args:
            signal: Real-valued input signal

        Returns:
            Complex array: real part is the DC-removed signal, imaginary part
            its Hilbert transform
        """
        x = np.asarray(signal, dtype=float)
        n = len(x)
        if n <= 1:
            return x.astype(complex)

        padded_size = next_power_of_two(n)
        analytic = hilbert(x - x.mean(), N=padded_size)
        return analytic[:n]

    def instantaneous_phase(self, signal: Sequence[float]) -> np.ndarray:
        """Instantaneous phase in radians (-pi to pi)."""
        return np.angle(self.analytic_signal(signal))

    def unwrapped_phase(self, signal: Sequence[float]) -> np.ndarray:
        """Continuous phase with 2*pi discontinuities removed."""
        phase = self.instantaneous_phase(signal)
        if len(phase) == 0:
            return phase

        steps = wrap_phase(np.diff(phase))
        return np.concatenate(([phase[0]], phase[0] + np.cumsum(steps)))

    def envelope(self, signal: Sequence[float]) -> np.ndarray:
        """Instantaneous amplitude of the signal."""
        return np.abs(self.analytic_signal(signal))

    def phase_difference(self,
                         signal1: Sequence[float],
                         signal2: Sequence[float]) -> np.ndarray:
        """Per-sample phase difference wrapped to (-pi, pi].

        Signals of different length are compared over the shorter one.
        """
        phase1 = self.instantaneous_phase(signal1)
        phase2 = self.instantaneous_phase(signal2)

        length = min(len(phase1), len(phase2))
        return wrap_phase(phase1[:length] - phase2[:length])

    def mean_phase_difference(self,
                              signal1: Sequence[float],
                              signal2: Sequence[float]) -> float:
        """Circular mean of the phase difference in radians."""
        diff = self.phase_difference(signal1, signal2)
        if len(diff) == 0:
            return 0.0

        return float(np.arctan2(np.sum(np.sin(diff)), np.sum(np.cos(diff))))

    def mean_phase_difference_degrees(self,
                                      signal1: Sequence[float],
                                      signal2: Sequence[float]) -> float:
        return float(np.degrees(self.mean_phase_difference(signal1, signal2)))

    def instantaneous_frequency(self,
                                signal: Sequence[float],
                                sample_rate: Optional[float] = None) -> np.ndarray:
        """Instantaneous frequency in Hz from the unwrapped phase.

        Returns:
            Array one shorter than the input
        """
        rate = sample_rate or self.sample_rate
        phase = self.unwrapped_phase(signal)
        if len(phase) < 2:
            return np.array([])

        dt = 1.0 / rate
        return np.diff(phase) / (2 * np.pi * dt)

    def phase_locking_value(self,
                            signal1: Sequence[float],
                            signal2: Sequence[float]) -> float:
        """Consistency of the phase relationship between two signals.

        Returns:
            0 for unrelated phases up to 1 for a constant phase offset
        """
        diff = self.phase_difference(signal1, signal2)
        if len(diff) == 0:
            return 0.0

        # Flat signals carry no phase information
        if (np.ptp(np.asarray(signal1, dtype=float)) < EPSILON
                or np.ptp(np.asarray(signal2, dtype=float)) < EPSILON):
            return 0.0

        return float(np.abs(np.mean(np.exp(1j * diff))))

    def spectral_coherence(self,
                           signal1: Sequence[float],
                           signal2: Sequence[float],
                           frequency: float) -> float:
        """Welch magnitude-squared coherence at a frequency.

        Returns:
            Coherence in 0-1, or 0 when the signals are shorter than one
            segment or the frequency falls outside the spectrum
        """
        length = min(len(signal1), len(signal2))
        if length < self.segment_length or frequency <= 0:
            return 0.0

        x = np.asarray(signal1, dtype=float)[:length]
        y = np.asarray(signal2, dtype=float)[:length]
        if np.var(x) < EPSILON or np.var(y) < EPSILON:
            return 0.0

        frequencies, cxy = welch_coherence(
            x, y,
            fs=self.sample_rate,
            window="hann",
            nperseg=self.segment_length,
            noverlap=self.overlap,
        )

        resolution = self.sample_rate / self.segment_length
        bin_index = int(frequency / resolution)
        if not 0 < bin_index < len(frequencies):
            return 0.0

        return float(np.clip(cxy[bin_index], 0.0, 1.0))
