"""Hidden Markov Model over gait states with breed-configurable priors."""
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Optional, Tuple

import numpy as np

from .breed_priors import DEFAULT_PRIORS, FrequencyRange, HorseBreed, widen_range
from .gait import GaitFeatureVector, GaitType

logger = logging.getLogger(__name__)

EPSILON = 1e-10

STATES: Tuple[GaitType, ...] = (
    GaitType.STATIONARY,
    GaitType.WALK,
    GaitType.TROT,
    GaitType.CANTER,
    GaitType.GALLOP,
)

# Hard GPS speed bounds (m/s) per state; violations attenuate, never eliminate
SPEED_BOUNDS: Dict[GaitType, Tuple[float, float]] = {
    GaitType.STATIONARY: (0.0, 0.5),
    GaitType.WALK: (0.3, 2.5),
    GaitType.TROT: (1.5, 5.0),
    GaitType.CANTER: (3.0, 8.0),
    GaitType.GALLOP: (6.0, 20.0),
}
SPEED_PENALTY = 0.1


class Feature(IntEnum):
    STRIDE_FREQUENCY = 0
    H2_RATIO = 1
    H3_RATIO = 2
    SPECTRAL_ENTROPY = 3
    XY_COHERENCE = 4
    Z_YAW_COHERENCE = 5
    NORMALIZED_VERTICAL_RMS = 6
    YAW_RATE_RMS = 7
    WATCH_ARM_SYMMETRY = 8
    WATCH_YAW_ENERGY = 9


# Feature ranges per state other than stride frequency:
# (h2, h3, entropy, xy coherence, z-yaw coherence, vertical rms, yaw rms)
_FEATURE_RANGES: Dict[GaitType, Tuple[FrequencyRange, ...]] = {
    GaitType.STATIONARY: ((0, 0.3), (0, 0.3), (0, 0.3), (0, 0.3), (0, 0.3), (0, 0.05), (0, 0.1)),
    # Low coherence, low entropy
    GaitType.WALK: ((0.3, 0.7), (0.2, 0.5), (0.2, 0.5), (0.2, 0.5), (0.2, 0.4), (0.05, 0.15), (0.1, 0.3)),
    # 2-beat: strong H2, very high XY coherence, low Z-yaw coherence
    GaitType.TROT: ((1.2, 2.5), (0.3, 0.8), (0.3, 0.6), (0.7, 1.0), (0.1, 0.4), (0.15, 0.35), (0.2, 0.5)),
    # 3-beat: strong H3, low XY coherence, high Z-yaw coherence
    GaitType.CANTER: ((0.4, 1.0), (1.0, 2.0), (0.4, 0.7), (0.2, 0.5), (0.6, 0.9), (0.25, 0.45), (0.4, 0.8)),
    # Weak harmonics, high entropy, strong yaw coupling
    GaitType.GALLOP: ((0.2, 0.8), (0.3, 0.9), (0.6, 0.9), (0.1, 0.4), (0.7, 1.0), (0.35, 0.6), (0.6, 1.2)),
}
_WATCH_ARM_RANGE = (0.3, 0.7)
_WATCH_YAW_RANGE = (0.1, 0.5)


@dataclass
class GaussianEmission:
    """Gaussian emission parameters for one feature."""
    mean: float
    variance: float

    @classmethod
    def from_range(cls, value_range: FrequencyRange) -> "GaussianEmission":
        """Mean at the midpoint, two standard deviations to each bound."""
        low, high = value_range
        stddev = (high - low) / 4
        return cls(mean=(low + high) / 2, variance=stddev * stddev)

    def probability(self, value: float) -> float:
        """Probability density at value; point mass for zero variance."""
        if self.variance <= EPSILON:
            return 1.0 if value == self.mean else 0.0
        return float(np.exp(self.log_probability(value)))

    def log_probability(self, value: float) -> float:
        if self.variance <= EPSILON:
            return 0.0 if value == self.mean else -np.inf
        return float(
            -((value - self.mean) ** 2) / (2 * self.variance)
            - 0.5 * np.log(2 * np.pi * self.variance)
        )


def default_transition_matrix(self_probability: float = 0.95) -> np.ndarray:
    """Row-stochastic matrix allowing only adjacent gait transitions."""
    move = 1.0 - self_probability
    n = len(STATES)
    matrix = np.zeros((n, n))
    for i in range(n):
        matrix[i, i] = self_probability
        neighbours = [j for j in (i - 1, i + 1) if 0 <= j < n]
        for j in neighbours:
            matrix[i, j] = move / len(neighbours)
    return matrix


def build_emissions(frequency_ranges: Dict[GaitType, FrequencyRange]) -> List[List[GaussianEmission]]:
    """Emission table [state][feature] from per-state stride frequency ranges."""
    emissions = []
    for state in STATES:
        ranges = (frequency_ranges[state],) + _FEATURE_RANGES[state] + (_WATCH_ARM_RANGE, _WATCH_YAW_RANGE)
        emissions.append([GaussianEmission.from_range(r) for r in ranges])
    return emissions


class GaitStateEstimator:
    """Forward-algorithm gait estimator with constrained transitions.

    Features are treated as independent, so the joint emission is the product
    of per-feature Gaussian densities. After each Bayesian step the belief is
    gated against GPS speed.
    """

    def __init__(self, transition_matrix: Optional[np.ndarray] = None):
        self.transition_matrix = (
            default_transition_matrix() if transition_matrix is None else np.asarray(transition_matrix, dtype=float)
        )
        if self.transition_matrix.shape != (len(STATES), len(STATES)):
            raise ValueError(f"Transition matrix must be {len(STATES)}x{len(STATES)}")
        if not np.allclose(self.transition_matrix.sum(axis=1), 1.0):
            raise ValueError("Transition matrix rows must sum to 1")

        self.emissions = build_emissions(self._frequency_ranges(DEFAULT_PRIORS, 1.0))
        self.breed = HorseBreed.UNKNOWN
        self.age_adjustment = 1.0
        self._belief = self._initial_belief()

    @staticmethod
    def _initial_belief() -> np.ndarray:
        belief = np.zeros(len(STATES))
        belief[0] = 1.0
        return belief

    @staticmethod
    def _frequency_ranges(priors, age_adjustment: float) -> Dict[GaitType, FrequencyRange]:
        return {
            state: (priors.frequency_range(state) if state == GaitType.STATIONARY
                    else widen_range(priors.frequency_range(state), age_adjustment))
            for state in STATES
        }

    def configure(self, breed: HorseBreed, age_adjustment: float = 1.0) -> None:
        """Rebuild emission models for a breed.

        Args:
            breed: Horse breed supplying stride frequency priors
            age_adjustment: Range widening factor (1.0 normal, 1.15 young,
                1.1 senior)
        """
        self.breed = breed
        self.age_adjustment = age_adjustment
        self.emissions = build_emissions(
            self._frequency_ranges(breed.biomechanical_priors, age_adjustment)
        )
        logger.info(f"Gait estimator configured for {breed.value} (age factor {age_adjustment:.2f})")

    def reset(self) -> None:
        """Reset to a certain stationary belief."""
        self._belief = self._initial_belief()

    @property
    def belief(self) -> np.ndarray:
        return self._belief.copy()

    @property
    def current_state(self) -> GaitType:
        return STATES[int(np.argmax(self._belief))]

    @property
    def state_confidence(self) -> float:
        return float(np.max(self._belief))

    def probability(self, state: GaitType) -> float:
        return float(self._belief[state.index])

    def update(self, features: GaitFeatureVector) -> GaitType:
        """Advance the belief by one observation.

        Args:
            features: Feature vector for this update cycle

        Returns:
            Most likely state after the update
        """
        emission = self.emission_likelihoods(features)

        # alpha_t(j) = sum_i alpha_{t-1}(i) * A(i, j) * B(j, obs)
        predicted = self._belief @ self.transition_matrix
        updated = predicted * emission

        total = updated.sum()
        if total > EPSILON:
            updated = updated / total
        else:
            logger.debug("Forward step collapsed, keeping previous belief")
            updated = self._belief.copy()

        self._belief = self.apply_speed_constraints(updated, features.gps_speed)
        return self.current_state

    def emission_likelihoods(self, features: GaitFeatureVector) -> np.ndarray:
        """Joint emission likelihood per state, scaled so the largest is 1.

        Scaling by a common factor leaves the normalized posterior unchanged
        and keeps products of many small densities from underflowing.
        """
        values = {
            Feature.STRIDE_FREQUENCY: features.stride_frequency,
            Feature.H2_RATIO: features.h2_ratio,
            Feature.H3_RATIO: features.h3_ratio,
            Feature.SPECTRAL_ENTROPY: features.spectral_entropy,
            Feature.XY_COHERENCE: features.xy_coherence,
            Feature.Z_YAW_COHERENCE: features.z_yaw_coherence,
            Feature.NORMALIZED_VERTICAL_RMS: features.normalized_vertical_rms,
            Feature.YAW_RATE_RMS: features.yaw_rate_rms,
        }
        # Secondary device features only count when present
        if features.watch_arm_symmetry > 0:
            values[Feature.WATCH_ARM_SYMMETRY] = features.watch_arm_symmetry
        if features.watch_yaw_energy > 0:
            values[Feature.WATCH_YAW_ENERGY] = features.watch_yaw_energy

        log_likelihood = np.array([
            sum(self.emissions[s][f].log_probability(v) for f, v in values.items())
            for s in range(len(STATES))
        ])

        if not np.isfinite(log_likelihood).any():
            return np.zeros(len(STATES))

        return np.exp(log_likelihood - np.max(log_likelihood))

    @staticmethod
    def apply_speed_constraints(probabilities: np.ndarray, gps_speed: float) -> np.ndarray:
        """Attenuate states whose speed bounds exclude the GPS speed."""
        constrained = probabilities.copy()
        for i, state in enumerate(STATES):
            low, high = SPEED_BOUNDS[state]
            if gps_speed < low or gps_speed > high:
                constrained[i] *= SPEED_PENALTY

        total = constrained.sum()
        if total > EPSILON:
            constrained /= total
        return constrained
