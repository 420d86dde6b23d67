"""FFT-based spectral analysis of motion signals for stride detection."""
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
from scipy.signal import get_window

logger = logging.getLogger(__name__)

EPSILON = 1e-10
GAIT_BAND: Tuple[float, float] = (0.5, 6.0)


@dataclass(frozen=True)
class SpectralFeatures:
    """Result of spectral analysis on one signal window."""
    dominant_frequency: float
    power_at_f0: float
    h2_ratio: float
    h3_ratio: float
    spectral_entropy: float
    frequency_resolution: float

    @classmethod
    def empty(cls, frequency_resolution: float) -> "SpectralFeatures":
        return cls(
            dominant_frequency=0.0,
            power_at_f0=0.0,
            h2_ratio=0.0,
            h3_ratio=0.0,
            spectral_entropy=0.0,
            frequency_resolution=frequency_resolution,
        )


class SpectralAnalyzer:
    """Windowed power spectrum with stride-frequency and harmonic extraction."""

    def __init__(self, window_size: int = 256, sample_rate: float = 100.0):
        """Initialize spectral analyzer.

        Args:
            window_size: Samples per window, must be a power of two
            sample_rate: Sample rate in Hz

        Raises:
            ValueError: If window_size is not a power of two or sample_rate
                is not positive
        """
        if window_size <= 0 or window_size & (window_size - 1):
            raise ValueError(f"Window size must be a power of 2, got {window_size}")
        if sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {sample_rate}")

        self.window_size = window_size
        self.sample_rate = sample_rate
        self.frequency_resolution = sample_rate / window_size

        self.window = get_window("hann", window_size)
        self.power = np.zeros(window_size // 2)

    def process_window(self,
                       samples: Sequence[float],
                       frequency_band: Tuple[float, float] = GAIT_BAND) -> SpectralFeatures:
        """Analyze the most recent window of samples.

        Args:
            samples: Signal samples, at least window_size of them
            frequency_band: (low, high) Hz range searched for the stride frequency

        Returns:
            Spectral features, zeroed if too few samples were supplied
        """
        if len(samples) < self.window_size:
            logger.debug(f"Spectral window short: {len(samples)} < {self.window_size}")
            self.power = np.zeros(self.window_size // 2)
            return SpectralFeatures.empty(self.frequency_resolution)

        segment = np.asarray(samples, dtype=float)[-self.window_size:]
        spectrum = np.fft.rfft(segment * self.window)

        # Scaled power over the positive-frequency bins below Nyquist
        self.power = (np.abs(spectrum[: self.window_size // 2]) ** 2) / (self.window_size ** 2)

        f0, power_at_f0 = self.find_dominant_frequency(frequency_band)

        return SpectralFeatures(
            dominant_frequency=f0,
            power_at_f0=power_at_f0,
            h2_ratio=self.harmonic_ratio(f0, 2),
            h3_ratio=self.harmonic_ratio(f0, 3),
            spectral_entropy=self.spectral_entropy(),
            frequency_resolution=self.frequency_resolution,
        )

    def find_dominant_frequency(self, frequency_band: Tuple[float, float]) -> Tuple[float, float]:
        """Find the peak frequency within a band of the last power spectrum.

        Returns:
            Tuple of (frequency in Hz, power at the peak bin)
        """
        low, high = frequency_band
        min_bin = max(1, int(low / self.frequency_resolution))
        max_bin = min(len(self.power) - 1, int(high / self.frequency_resolution))

        if min_bin >= max_bin:
            return 0.0, 0.0

        band = self.power[min_bin:max_bin + 1]
        peak_bin = min_bin + int(np.argmax(band))
        peak_power = float(self.power[peak_bin])

        if peak_power <= 0.0:
            return 0.0, 0.0

        return self._interpolate_peak(peak_bin), peak_power

    def harmonic_ratio(self, fundamental: float, harmonic: int) -> float:
        """Power at harmonic * f0 relative to power at f0."""
        if fundamental <= 0:
            return 0.0

        fundamental_bin = int(fundamental / self.frequency_resolution)
        harmonic_bin = int(harmonic * fundamental / self.frequency_resolution)

        bins = len(self.power)
        if not (0 < fundamental_bin < bins and 0 < harmonic_bin < bins):
            return 0.0

        fundamental_power = float(self.power[fundamental_bin])
        if fundamental_power < EPSILON:
            return 0.0

        return float(self.power[harmonic_bin]) / fundamental_power

    def spectral_entropy(self) -> float:
        """Normalized Shannon entropy of the power spectrum.

        Returns:
            0 for a pure tone up to 1 for white noise
        """
        total = float(np.sum(self.power))
        if total < EPSILON:
            return 0.0

        p = self.power / total
        p = p[p > EPSILON]
        entropy = -float(np.sum(p * np.log2(p)))

        return entropy / np.log2(len(self.power))

    def power_spectrum(self) -> Tuple[np.ndarray, np.ndarray]:
        """Frequencies and powers of the last processed window."""
        frequencies = np.arange(len(self.power)) * self.frequency_resolution
        return frequencies, self.power.copy()

    def process_with_overlap(self,
                             samples: Sequence[float],
                             overlap: float = 0.8,
                             frequency_band: Tuple[float, float] = GAIT_BAND) -> List[SpectralFeatures]:
        """Analyze a long buffer with overlapping windows.

        Args:
            samples: Complete sample buffer
            overlap: Fraction of each window shared with the next (0.8 = 80%)
            frequency_band: Stride frequency search band

        Returns:
            One result per window, oldest first
        """
        hop = max(1, int(self.window_size * (1.0 - overlap)))
        data = np.asarray(samples, dtype=float)

        results = []
        start = 0
        while start + self.window_size <= len(data):
            results.append(self.process_window(data[start:start + self.window_size], frequency_band))
            start += hop

        return results

    def _interpolate_peak(self, index: int) -> float:
        """Quadratic interpolation around a peak for sub-bin accuracy."""
        if index <= 0 or index >= len(self.power) - 1:
            return index * self.frequency_resolution

        alpha = self.power[index - 1]
        beta = self.power[index]
        gamma = self.power[index + 1]

        denominator = alpha - 2 * beta + gamma
        if abs(denominator) < EPSILON:
            return index * self.frequency_resolution

        delta = 0.5 * (alpha - gamma) / denominator
        return float((index + delta) * self.frequency_resolution)
