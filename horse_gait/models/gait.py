"""Gait types, sensor samples and segment records for horse movement."""
import math
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, Any, Optional, Sequence, Tuple

Quaternion = Tuple[float, float, float, float]  # (w, x, y, z)
Vector3 = Tuple[float, float, float]


class GaitType(Enum):
    """Horse gait types ordered by locomotor intensity."""
    STATIONARY = "stationary"
    WALK = "walk"
    TROT = "trot"
    CANTER = "canter"
    GALLOP = "gallop"

    @property
    def index(self) -> int:
        return _GAIT_ORDER.index(self)

    @property
    def is_lead_applicable(self) -> bool:
        """Lead legs only exist in the asymmetric gaits."""
        return self in (GaitType.CANTER, GaitType.GALLOP)

    @classmethod
    def from_index(cls, index: int) -> "GaitType":
        return _GAIT_ORDER[index]

    def is_adjacent(self, other: "GaitType") -> bool:
        return abs(self.index - other.index) == 1

    def step_towards(self, target: "GaitType") -> "GaitType":
        """Move at most one gait towards target."""
        if target.index > self.index:
            return _GAIT_ORDER[self.index + 1]
        if target.index < self.index:
            return _GAIT_ORDER[self.index - 1]
        return self

    @classmethod
    def from_speed(cls,
                   speed: float,
                   bounds: Sequence[float] = (0.4, 1.7, 3.5, 5.5)) -> "GaitType":
        """Classify gait from ground speed alone.

        Args:
            speed: Smoothed GPS speed in m/s
            bounds: Upper speed bounds for stationary, walk, trot and canter.
                Defaults are tuned for arena and schooling work.

        Returns:
            Gait implied by the speed
        """
        for gait, upper in zip(_GAIT_ORDER, bounds):
            if speed < upper:
                return gait
        return cls.GALLOP


_GAIT_ORDER = (
    GaitType.STATIONARY,
    GaitType.WALK,
    GaitType.TROT,
    GaitType.CANTER,
    GaitType.GALLOP,
)


class Lead(Enum):
    """Leading leg in canter and gallop."""
    LEFT = "left"
    RIGHT = "right"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class MotionSample:
    """One reading from the rider-mounted inertial sensor.

    Acceleration is gravity-removed and in g, rotation rates in rad/s and
    attitude angles in radians. ``quaternion`` is the device attitude as
    (w, x, y, z) when the sensor provides it.
    """
    timestamp: float
    acceleration_x: float = 0.0
    acceleration_y: float = 0.0
    acceleration_z: float = 0.0
    rotation_x: float = 0.0
    rotation_y: float = 0.0
    rotation_z: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0
    yaw: float = 0.0
    quaternion: Optional[Quaternion] = None

    @property
    def acceleration(self) -> Vector3:
        return (self.acceleration_x, self.acceleration_y, self.acceleration_z)

    @property
    def rotation(self) -> Vector3:
        return (self.rotation_x, self.rotation_y, self.rotation_z)

    @property
    def vertical_acceleration(self) -> float:
        return self.acceleration_z

    @property
    def lateral_acceleration(self) -> float:
        return self.acceleration_x

    @property
    def yaw_rate(self) -> float:
        return self.rotation_z


@dataclass(frozen=True)
class HorseFrameAcceleration:
    """Acceleration in the horse frame (forward, right, up positive)."""
    forward: float
    lateral: float
    vertical: float

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.forward ** 2 + self.lateral ** 2 + self.vertical ** 2)


@dataclass(frozen=True)
class HorseFrameRotation:
    """Rotation rates in the horse frame."""
    pitch: float
    roll: float
    yaw: float

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.pitch ** 2 + self.roll ** 2 + self.yaw ** 2)


@dataclass(frozen=True)
class GaitFeatureVector:
    """Features consumed by one estimator update."""
    stride_frequency: float = 0.0  # f0 in Hz
    h2_ratio: float = 0.0
    h3_ratio: float = 0.0
    spectral_entropy: float = 0.0  # 0-1
    xy_coherence: float = 0.0  # Left-right symmetry, 0-1
    z_yaw_coherence: float = 0.0  # Vertical-rotational coupling, 0-1
    normalized_vertical_rms: float = 0.0
    yaw_rate_rms: float = 0.0  # rad/s
    gps_speed: float = 0.0  # m/s
    # Secondary device (wrist); zero when unavailable
    watch_arm_symmetry: float = 0.0
    watch_yaw_energy: float = 0.0

    @classmethod
    def zero(cls) -> "GaitFeatureVector":
        return cls()


@dataclass
class GaitSegment:
    """A continuous stretch of one gait within a session."""
    gait: GaitType
    start_time: float
    end_time: Optional[float] = None
    distance: float = 0.0  # meters
    average_speed: float = 0.0  # m/s
    lead: Optional[Lead] = None
    lead_confidence: float = 0.0  # 0-1
    rhythm_score: float = 0.0  # 0-100

    # Spectral snapshot
    stride_frequency: float = 0.0
    h2_ratio: float = 0.0
    h3_ratio: float = 0.0
    spectral_entropy: float = 0.0
    vertical_yaw_coherence: float = 0.0
    stride_length: Optional[float] = None  # meters

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def duration(self) -> float:
        if self.end_time is None:
            return 0.0
        return self.end_time - self.start_time

    @property
    def is_lead_applicable(self) -> bool:
        return self.gait.is_lead_applicable

    @property
    def has_known_lead(self) -> bool:
        return (self.is_lead_applicable
                and self.lead not in (None, Lead.UNKNOWN)
                and self.lead_confidence >= 0.7)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['gait'] = self.gait.value
        data['lead'] = self.lead.value if self.lead is not None else None
        data['duration'] = self.duration
        return data
