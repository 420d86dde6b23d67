"""Transform device motion into the horse-relative reference frame.

Quaternion rotation is used throughout to avoid gimbal lock. Quaternions are
plain ``(w, x, y, z)`` tuples.
"""
import math
import logging
from typing import Tuple

from .gait import (
    HorseFrameAcceleration,
    HorseFrameRotation,
    MotionSample,
    Quaternion,
    Vector3,
)

logger = logging.getLogger(__name__)

IDENTITY: Quaternion = (1.0, 0.0, 0.0, 0.0)


def multiply_quaternions(q1: Quaternion, q2: Quaternion) -> Quaternion:
    """Hamilton product q1 * q2."""
    w1, x1, y1, z1 = q1
    w2, x2, y2, z2 = q2
    return (
        w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
        w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
        w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
        w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
    )


def conjugate(q: Quaternion) -> Quaternion:
    """Conjugate, which is the inverse of a unit quaternion."""
    w, x, y, z = q
    return (w, -x, -y, -z)


def normalize(q: Quaternion) -> Quaternion:
    """Scale to unit norm; a zero quaternion becomes identity."""
    norm = math.sqrt(sum(c * c for c in q))
    if norm < 1e-10:
        return IDENTITY
    return tuple(c / norm for c in q)


def rotate_vector(v: Vector3, q: Quaternion) -> Vector3:
    """Rotate v by q using q * v * q^-1."""
    vq = (0.0, v[0], v[1], v[2])
    result = multiply_quaternions(multiply_quaternions(q, vq), conjugate(q))
    return (result[1], result[2], result[3])


def euler_to_quaternion(pitch: float, roll: float, yaw: float) -> Quaternion:
    """Convert Euler angles (radians) to a quaternion with the half-angle formula."""
    cy, sy = math.cos(yaw * 0.5), math.sin(yaw * 0.5)
    cp, sp = math.cos(pitch * 0.5), math.sin(pitch * 0.5)
    cr, sr = math.cos(roll * 0.5), math.sin(roll * 0.5)

    return (
        cr * cp * cy + sr * sp * sy,
        sr * cp * cy - cr * sp * sy,
        cr * sp * cy + sr * cp * sy,
        cr * cp * sy - sr * sp * cy,
    )


class FrameTransformer:
    """Transforms device sensor data to the horse-relative frame.

    Calibration stores the inverse of the device attitude while the rider sits
    upright on a stationary horse, so later attitudes are relative to the
    mounting position. Gyroscope bias is not corrected.
    """

    def __init__(self):
        self.calibration_quaternion: Quaternion = IDENTITY
        self.is_calibrated = False

    def calibrate(self, attitude: Quaternion) -> None:
        """Calibrate using the current device attitude.

        Args:
            attitude: Device attitude quaternion (w, x, y, z)
        """
        self.calibration_quaternion = conjugate(normalize(attitude))
        self.is_calibrated = True
        logger.debug(f"Frame calibrated with offset {self.calibration_quaternion}")

    def reset_calibration(self) -> None:
        """Reset calibration to identity."""
        self.calibration_quaternion = IDENTITY
        self.is_calibrated = False

    def _effective_attitude(self, attitude: Quaternion) -> Quaternion:
        if self.is_calibrated:
            return multiply_quaternions(self.calibration_quaternion, attitude)
        return attitude

    def to_horse_frame_acceleration(self,
                                    acceleration: Vector3,
                                    attitude: Quaternion) -> HorseFrameAcceleration:
        """Transform device acceleration to the horse frame.

        Args:
            acceleration: Device user acceleration (gravity removed)
            attitude: Device attitude quaternion

        Returns:
            Acceleration in horse frame
        """
        rotated = rotate_vector(acceleration, self._effective_attitude(attitude))

        # Device X (lateral) -> horse lateral, device Y (forward) -> horse forward
        return HorseFrameAcceleration(
            forward=rotated[1],
            lateral=rotated[0],
            vertical=rotated[2],
        )

    def to_horse_frame_rotation(self,
                                rotation: Vector3,
                                attitude: Quaternion) -> HorseFrameRotation:
        """Transform device rotation rates (rad/s) to the horse frame."""
        rotated = rotate_vector(rotation, self._effective_attitude(attitude))

        return HorseFrameRotation(
            pitch=rotated[0],
            roll=rotated[1],
            yaw=rotated[2],
        )

    def to_horse_frame_acceleration_euler(self,
                                          acceleration: Vector3,
                                          pitch: float,
                                          roll: float,
                                          yaw: float) -> HorseFrameAcceleration:
        """Convenience overload for callers with Euler angles only."""
        return self.to_horse_frame_acceleration(
            acceleration, euler_to_quaternion(pitch, roll, yaw)
        )

    def sample_attitude(self, sample: MotionSample) -> Quaternion:
        if sample.quaternion is not None:
            return sample.quaternion
        return euler_to_quaternion(sample.pitch, sample.roll, sample.yaw)

    def transform(self, sample: MotionSample) -> Tuple[HorseFrameAcceleration, HorseFrameRotation]:
        """Transform a complete motion sample.

        Args:
            sample: Raw motion sample

        Returns:
            Tuple of (acceleration, rotation) in horse frame
        """
        attitude = self.sample_attitude(sample)
        return (
            self.to_horse_frame_acceleration(sample.acceleration, attitude),
            self.to_horse_frame_rotation(sample.rotation, attitude),
        )
