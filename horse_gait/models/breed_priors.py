"""Breed biomechanical priors and per-horse profile."""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from .gait import GaitType

FrequencyRange = Tuple[float, float]

HAND_TO_METERS = 0.1016
REFERENCE_WEIGHT_KG = 500.0
DEFAULT_HEIGHT_HANDS = 15.2


@dataclass(frozen=True)
class StrideCoefficients:
    """Coefficients k for stride = k * height * (Az / g) ** 0.25."""
    walk: float
    trot: float
    canter: float
    gallop: float

    def for_gait(self, gait: GaitType) -> float:
        return {
            GaitType.STATIONARY: 0.0,
            GaitType.WALK: self.walk,
            GaitType.TROT: self.trot,
            GaitType.CANTER: self.canter,
            GaitType.GALLOP: self.gallop,
        }[gait]


@dataclass(frozen=True)
class BiomechanicalPriors:
    """Expected stride frequency ranges (Hz) and body size for a breed type."""
    walk_frequency_range: FrequencyRange
    trot_frequency_range: FrequencyRange
    canter_frequency_range: FrequencyRange
    gallop_frequency_range: FrequencyRange
    stride_coefficients: StrideCoefficients
    typical_weight: float  # kg
    typical_height: float  # hands

    def frequency_range(self, gait: GaitType) -> FrequencyRange:
        if gait == GaitType.STATIONARY:
            return (0.0, 0.5)
        return {
            GaitType.WALK: self.walk_frequency_range,
            GaitType.TROT: self.trot_frequency_range,
            GaitType.CANTER: self.canter_frequency_range,
            GaitType.GALLOP: self.gallop_frequency_range,
        }[gait]


# Standard 15.2hh horse
DEFAULT_PRIORS = BiomechanicalPriors(
    walk_frequency_range=(1.0, 2.2),
    trot_frequency_range=(2.0, 3.8),
    canter_frequency_range=(1.8, 3.0),
    gallop_frequency_range=(3.0, 6.0),
    stride_coefficients=StrideCoefficients(walk=2.2, trot=2.7, canter=3.3, gallop=4.0),
    typical_weight=500,
    typical_height=15.2,
)


class BreedCategory(Enum):
    PONY = "pony"
    SPORT_HORSE = "sport_horse"
    HEAVY_TYPE = "heavy_type"
    OTHER_BREED = "other_breed"
    OTHER = "other"


class HorseBreed(Enum):
    """Breeds with distinct gait biomechanics."""
    # Ponies
    SHETLAND = "shetland"
    WELSH_A = "welsh_a"
    WELSH_B = "welsh_b"
    WELSH_C = "welsh_c"
    WELSH_D = "welsh_d"
    CONNEMARA = "connemara"
    NEW_FOREST = "new_forest"
    DARTMOOR = "dartmoor"
    EXMOOR = "exmoor"
    HIGHLAND = "highland"
    FELL = "fell"
    DALES = "dales"

    # Sport horses
    THOROUGHBRED = "thoroughbred"
    WARMBLOOD = "warmblood"
    IRISH_SPORT_HORSE = "irish_sport_horse"
    HANOVERIAN = "hanoverian"
    HOLSTEINER = "holsteiner"
    OLDENBURG = "oldenburg"
    TRAKEHNER = "trakehner"
    DUTCH_WARMBLOOD = "dutch_warmblood"
    SELLE_FRANCAIS = "selle_francais"
    QUARTER_HORSE = "quarter_horse"

    # Heavy types
    COB = "cob"
    IRISH_DRAUGHT = "irish_draught"
    FRIESIAN = "friesian"

    # Other breeds
    ARABIAN = "arabian"
    ANDALUSIAN = "andalusian"
    LUSITANO = "lusitano"
    APPALOOSA = "appaloosa"
    MORGAN = "morgan"
    TROTTER = "trotter"

    UNKNOWN = "unknown"
    MIXED = "mixed"

    @property
    def biomechanical_priors(self) -> BiomechanicalPriors:
        return _BREED_PRIORS.get(self, DEFAULT_PRIORS)

    @property
    def category(self) -> BreedCategory:
        for category, breeds in _BREED_CATEGORIES.items():
            if self in breeds:
                return category
        return BreedCategory.OTHER


def _priors(walk, trot, canter, gallop, coefficients, weight, height) -> BiomechanicalPriors:
    return BiomechanicalPriors(
        walk_frequency_range=walk,
        trot_frequency_range=trot,
        canter_frequency_range=canter,
        gallop_frequency_range=gallop,
        stride_coefficients=StrideCoefficients(*coefficients),
        typical_weight=weight,
        typical_height=height,
    )


# Small ponies: higher stride frequencies, shorter strides
_SMALL_PONY = _priors((1.3, 2.5), (2.8, 4.5), (2.2, 3.5), (3.5, 6.5), (2.0, 2.4, 2.9, 3.5), 200, 11.5)
_MEDIUM_PONY = _priors((1.2, 2.4), (2.4, 4.2), (2.0, 3.3), (3.2, 6.0), (2.1, 2.5, 3.0, 3.6), 350, 13.5)
_LARGE_PONY = _priors((1.1, 2.3), (2.2, 4.0), (1.9, 3.2), (3.1, 5.8), (2.15, 2.6, 3.1, 3.7), 450, 14.2)
# Warmbloods: lower frequencies, longer strides
_WARMBLOOD = _priors((0.9, 2.0), (1.8, 3.5), (1.6, 2.8), (2.8, 5.5), (2.3, 2.8, 3.4, 4.1), 550, 16.2)
_THOROUGHBRED = _priors((1.0, 2.2), (2.0, 3.8), (1.8, 3.0), (3.0, 6.0), (2.2, 2.7, 3.3, 4.0), 500, 16.0)
_IRISH_SPORT = _priors((0.95, 2.1), (1.9, 3.6), (1.7, 2.9), (2.9, 5.8), (2.25, 2.75, 3.35, 4.05), 530, 16.1)
_QUARTER_HORSE = _priors((1.0, 2.2), (2.0, 3.8), (1.8, 3.0), (3.0, 6.2), (2.1, 2.6, 3.2, 3.9), 480, 15.0)
_HEAVY = _priors((0.9, 2.0), (1.8, 3.2), (1.5, 2.7), (2.6, 5.0), (2.15, 2.6, 3.15, 3.8), 600, 15.3)
_ARABIAN = _priors((1.1, 2.3), (2.2, 4.0), (1.9, 3.2), (3.1, 6.0), (2.1, 2.55, 3.1, 3.8), 450, 15.0)
# Iberian breeds: collected, elevated
_IBERIAN = _priors((1.0, 2.2), (2.0, 3.6), (1.7, 2.9), (2.8, 5.5), (2.15, 2.6, 3.2, 3.85), 500, 15.2)

_BREED_PRIORS: Dict[HorseBreed, BiomechanicalPriors] = {}
for _breeds, _breed_priors in [
    ((HorseBreed.SHETLAND, HorseBreed.WELSH_A, HorseBreed.DARTMOOR, HorseBreed.EXMOOR), _SMALL_PONY),
    ((HorseBreed.WELSH_B, HorseBreed.WELSH_C, HorseBreed.NEW_FOREST, HorseBreed.CONNEMARA), _MEDIUM_PONY),
    ((HorseBreed.WELSH_D, HorseBreed.HIGHLAND, HorseBreed.FELL, HorseBreed.DALES), _LARGE_PONY),
    ((HorseBreed.WARMBLOOD, HorseBreed.HANOVERIAN, HorseBreed.HOLSTEINER, HorseBreed.OLDENBURG,
      HorseBreed.TRAKEHNER, HorseBreed.DUTCH_WARMBLOOD, HorseBreed.SELLE_FRANCAIS), _WARMBLOOD),
    ((HorseBreed.THOROUGHBRED,), _THOROUGHBRED),
    ((HorseBreed.IRISH_SPORT_HORSE,), _IRISH_SPORT),
    ((HorseBreed.QUARTER_HORSE,), _QUARTER_HORSE),
    ((HorseBreed.COB, HorseBreed.IRISH_DRAUGHT, HorseBreed.FRIESIAN), _HEAVY),
    ((HorseBreed.ARABIAN,), _ARABIAN),
    ((HorseBreed.ANDALUSIAN, HorseBreed.LUSITANO), _IBERIAN),
]:
    for _breed in _breeds:
        _BREED_PRIORS[_breed] = _breed_priors

_BREED_CATEGORIES = {
    BreedCategory.PONY: {
        HorseBreed.SHETLAND, HorseBreed.WELSH_A, HorseBreed.WELSH_B, HorseBreed.WELSH_C,
        HorseBreed.WELSH_D, HorseBreed.CONNEMARA, HorseBreed.NEW_FOREST, HorseBreed.DARTMOOR,
        HorseBreed.EXMOOR, HorseBreed.HIGHLAND, HorseBreed.FELL, HorseBreed.DALES,
    },
    BreedCategory.SPORT_HORSE: {
        HorseBreed.THOROUGHBRED, HorseBreed.WARMBLOOD, HorseBreed.IRISH_SPORT_HORSE,
        HorseBreed.HANOVERIAN, HorseBreed.HOLSTEINER, HorseBreed.OLDENBURG,
        HorseBreed.TRAKEHNER, HorseBreed.DUTCH_WARMBLOOD, HorseBreed.SELLE_FRANCAIS,
        HorseBreed.QUARTER_HORSE,
    },
    BreedCategory.HEAVY_TYPE: {HorseBreed.COB, HorseBreed.IRISH_DRAUGHT, HorseBreed.FRIESIAN},
    BreedCategory.OTHER_BREED: {
        HorseBreed.ARABIAN, HorseBreed.ANDALUSIAN, HorseBreed.LUSITANO,
        HorseBreed.APPALOOSA, HorseBreed.MORGAN, HorseBreed.TROTTER,
    },
}


def widen_range(frequency_range: FrequencyRange, factor: float) -> FrequencyRange:
    """Widen a range symmetrically about its centre.

    Args:
        frequency_range: (low, high) range
        factor: Half-width multiplier, > 1 widens

    Returns:
        Widened range with the lower bound clamped at zero
    """
    low, high = frequency_range
    center = (low + high) / 2
    half_width = (high - low) / 2 * factor
    return (max(0.0, center - half_width), center + half_width)


@dataclass
class HorseProfile:
    """The horse being ridden, as far as gait detection cares."""
    breed: HorseBreed = HorseBreed.UNKNOWN
    age: Optional[float] = None  # years
    weight: Optional[float] = None  # kg
    height_hands: Optional[float] = None

    @property
    def priors(self) -> BiomechanicalPriors:
        return self.breed.biomechanical_priors

    @property
    def age_adjustment_factor(self) -> float:
        """Young and old horses have more variable gaits."""
        if self.age is None:
            return 1.0
        if self.age < 4:
            return 1.15
        if self.age < 15:
            return 1.0
        if self.age < 20:
            return 1.05
        return 1.1

    def normalized_vertical_rms(self, raw_rms: float) -> float:
        """Scale vertical RMS to a 500 kg reference horse."""
        if self.weight is None or self.weight <= 0:
            return raw_rms
        return raw_rms * (REFERENCE_WEIGHT_KG / self.weight)

    def stride_length(self, gait: GaitType, vertical_rms: float) -> float:
        """Estimate stride length in meters.

        stride = k * height_m * (Az / g) ** 0.25, with breed coefficients when
        the height is known and the default priors otherwise.
        """
        if self.height_hands is None:
            priors, height = DEFAULT_PRIORS, DEFAULT_HEIGHT_HANDS
        else:
            priors, height = self.priors, self.height_hands

        coefficient = priors.stride_coefficients.for_gait(gait)
        if coefficient == 0.0:
            return 0.0

        g_factor = max(vertical_rms, 0.01) ** 0.25
        return coefficient * height * HAND_TO_METERS * g_factor
