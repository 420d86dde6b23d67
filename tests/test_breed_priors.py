"""Tests for breed priors and horse profiles."""
import pytest

from horse_gait.models.breed_priors import (
    DEFAULT_PRIORS,
    BreedCategory,
    HorseBreed,
    HorseProfile,
    widen_range,
)
from horse_gait.models.gait import GaitType


class TestHorseBreed:
    """Test breed lookup tables."""

    @pytest.mark.parametrize("breed, category", [
        (HorseBreed.SHETLAND, BreedCategory.PONY),
        (HorseBreed.HANOVERIAN, BreedCategory.SPORT_HORSE),
        (HorseBreed.FRIESIAN, BreedCategory.HEAVY_TYPE),
        (HorseBreed.ARABIAN, BreedCategory.OTHER_BREED),
        (HorseBreed.UNKNOWN, BreedCategory.OTHER),
    ])
    def test_category(self, breed, category):
        assert breed.category == category

    def test_unknown_breed_uses_default_priors(self):
        assert HorseBreed.UNKNOWN.biomechanical_priors is DEFAULT_PRIORS
        assert HorseBreed.MIXED.biomechanical_priors is DEFAULT_PRIORS

    def test_ponies_stride_faster_than_warmbloods(self):
        pony = HorseBreed.SHETLAND.biomechanical_priors
        warmblood = HorseBreed.WARMBLOOD.biomechanical_priors
        assert pony.trot_frequency_range[0] > warmblood.trot_frequency_range[0]
        assert pony.typical_height < warmblood.typical_height

    def test_stationary_range(self):
        assert DEFAULT_PRIORS.frequency_range(GaitType.STATIONARY) == (0.0, 0.5)
        assert DEFAULT_PRIORS.frequency_range(GaitType.CANTER) == (1.8, 3.0)


class TestWidenRange:
    """Test symmetric range widening."""

    def test_widen(self):
        low, high = widen_range((2.0, 4.0), 1.5)
        assert low == pytest.approx(1.5)
        assert high == pytest.approx(4.5)

    def test_identity_factor(self):
        assert widen_range((1.0, 2.2), 1.0) == pytest.approx((1.0, 2.2))

    def test_lower_bound_clamped(self):
        low, high = widen_range((0.0, 1.0), 3.0)
        assert low == 0.0
        assert high == pytest.approx(2.0)


class TestHorseProfile:
    """Test per-horse adjustments."""

    @pytest.mark.parametrize("age, factor", [
        (None, 1.0), (2, 1.15), (8, 1.0), (16, 1.05), (25, 1.1),
    ])
    def test_age_adjustment(self, age, factor):
        assert HorseProfile(age=age).age_adjustment_factor == factor

    def test_normalized_vertical_rms(self):
        assert HorseProfile(weight=250).normalized_vertical_rms(0.2) == pytest.approx(0.4)
        assert HorseProfile().normalized_vertical_rms(0.2) == 0.2

    def test_stride_length_with_height(self):
        """Test stride = k * height * 0.1016 * rms ** 0.25."""
        profile = HorseProfile(breed=HorseBreed.THOROUGHBRED, height_hands=16.0)
        expected = 3.3 * 16.0 * 0.1016 * 0.5
        assert profile.stride_length(GaitType.CANTER, 0.0625) == pytest.approx(expected)

    def test_stride_length_without_height(self):
        profile = HorseProfile(breed=HorseBreed.SHETLAND)
        assert profile.stride_length(GaitType.WALK, 1.0) == pytest.approx(2.2 * 15.2 * 0.1016)

    def test_stride_length_stationary(self):
        profile = HorseProfile(height_hands=16.0)
        assert profile.stride_length(GaitType.STATIONARY, 0.3) == 0.0

    def test_stride_length_floors_rms(self):
        profile = HorseProfile(height_hands=15.2)
        assert profile.stride_length(GaitType.TROT, 0.0) == profile.stride_length(GaitType.TROT, 0.01)
