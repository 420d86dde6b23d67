"""Tests for device-to-horse frame transformation."""
import math

import pytest

from horse_gait.models.frame_transformer import (
    IDENTITY,
    FrameTransformer,
    conjugate,
    euler_to_quaternion,
    multiply_quaternions,
    normalize,
    rotate_vector,
)
from horse_gait.models.gait import MotionSample


# 90 degrees about the vertical axis
YAW_90 = (math.cos(math.pi / 4), 0.0, 0.0, math.sin(math.pi / 4))


class TestQuaternionMath:
    """Test the quaternion helpers."""

    def test_rotate_vector_about_z(self):
        """Test 90 degree yaw maps x onto y."""
        x, y, z = rotate_vector((1.0, 0.0, 0.0), YAW_90)
        assert x == pytest.approx(0.0, abs=1e-12)
        assert y == pytest.approx(1.0)
        assert z == pytest.approx(0.0, abs=1e-12)

    def test_conjugate_is_inverse(self):
        """Test q * conj(q) is the identity for unit quaternions."""
        product = multiply_quaternions(YAW_90, conjugate(YAW_90))
        assert product == pytest.approx(IDENTITY)

    def test_normalize(self):
        assert normalize((2.0, 0.0, 0.0, 0.0)) == pytest.approx(IDENTITY)
        assert normalize((0.0, 0.0, 0.0, 0.0)) == IDENTITY

    def test_euler_to_quaternion(self):
        """Test zero angles give identity and pure yaw matches the axis-angle form."""
        assert euler_to_quaternion(0.0, 0.0, 0.0) == pytest.approx(IDENTITY)
        assert euler_to_quaternion(0.0, 0.0, math.pi / 2) == pytest.approx(YAW_90)


class TestFrameTransformer:
    """Test frame transformation and calibration."""

    @pytest.fixture
    def transformer(self):
        return FrameTransformer()

    def test_initial_state(self, transformer):
        assert not transformer.is_calibrated
        assert transformer.calibration_quaternion == IDENTITY

    def test_identity_axis_mapping(self, transformer):
        """Test device y is forward, x is lateral and z is vertical."""
        acceleration = transformer.to_horse_frame_acceleration((0.1, 0.2, 0.3), IDENTITY)
        assert acceleration.forward == pytest.approx(0.2)
        assert acceleration.lateral == pytest.approx(0.1)
        assert acceleration.vertical == pytest.approx(0.3)

    def test_rotation_axis_mapping(self, transformer):
        rotation = transformer.to_horse_frame_rotation((0.1, 0.2, 0.3), IDENTITY)
        assert rotation.pitch == pytest.approx(0.1)
        assert rotation.roll == pytest.approx(0.2)
        assert rotation.yaw == pytest.approx(0.3)

    def test_calibration_cancels_mounting_offset(self, transformer):
        """Test a calibrated attitude behaves like the identity."""
        transformer.calibrate(YAW_90)
        assert transformer.is_calibrated

        acceleration = transformer.to_horse_frame_acceleration((0.1, 0.2, 0.3), YAW_90)
        assert acceleration.forward == pytest.approx(0.2)
        assert acceleration.lateral == pytest.approx(0.1)
        assert acceleration.vertical == pytest.approx(0.3)

    def test_uncalibrated_rotation_applies_attitude(self, transformer):
        acceleration = transformer.to_horse_frame_acceleration((1.0, 0.0, 0.0), YAW_90)
        assert acceleration.forward == pytest.approx(1.0)
        assert acceleration.lateral == pytest.approx(0.0, abs=1e-12)

    def test_reset_calibration(self, transformer):
        transformer.calibrate(YAW_90)
        transformer.reset_calibration()
        assert not transformer.is_calibrated
        assert transformer.calibration_quaternion == IDENTITY

    def test_euler_overload_matches_quaternion(self, transformer):
        from_euler = transformer.to_horse_frame_acceleration_euler((1.0, 0.0, 0.0), 0.0, 0.0, math.pi / 2)
        from_quaternion = transformer.to_horse_frame_acceleration((1.0, 0.0, 0.0), YAW_90)
        assert from_euler.forward == pytest.approx(from_quaternion.forward)
        assert from_euler.lateral == pytest.approx(from_quaternion.lateral, abs=1e-12)

    def test_transform_prefers_sample_quaternion(self, transformer):
        """Test the quaternion wins over Euler angles when both are present."""
        sample = MotionSample(
            timestamp=0.0,
            acceleration_x=1.0,
            yaw=math.pi,
            quaternion=IDENTITY,
        )
        acceleration, rotation = transformer.transform(sample)
        assert acceleration.lateral == pytest.approx(1.0)
        assert acceleration.forward == pytest.approx(0.0)
        assert rotation.magnitude == pytest.approx(0.0)

    def test_transform_falls_back_to_euler(self, transformer):
        sample = MotionSample(timestamp=0.0, acceleration_x=1.0, rotation_z=0.5, yaw=math.pi / 2)
        acceleration, rotation = transformer.transform(sample)
        assert acceleration.forward == pytest.approx(1.0)
        assert rotation.yaw == pytest.approx(0.5)
