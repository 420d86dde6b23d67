"""Gait segment tracking for a ride session.

Fuses a motion-based and a speed-based gait estimate, applies a confirmation
policy so noisy transitions do not flicker, and manages the lifecycle of gait
segments (open, accumulate distance, close).
"""
import math
import time
from collections import deque
from typing import Callable, Deque, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from ..config.settings import Settings, settings as default_settings
from ..models.breed_priors import HorseProfile
from ..models.frame_transformer import FrameTransformer
from ..models.gait import (
    GaitFeatureVector,
    GaitSegment,
    GaitType,
    HorseFrameAcceleration,
    Lead,
    MotionSample,
    Quaternion,
)
from ..models.gait_hmm import GaitStateEstimator
from ..models.phase_coherence import PhaseCoherenceAnalyzer
from ..models.spectral_analyzer import SpectralAnalyzer, SpectralFeatures

GaitChangeCallback = Callable[[GaitType, GaitType], None]
SegmentCallback = Callable[[GaitSegment], None]


class TransitionConfirmer:
    """Require consecutive agreeing detections before a gait change."""

    def __init__(self, threshold: int = 3):
        if threshold < 1:
            raise ValueError(f"Confirmation threshold must be >= 1, got {threshold}")
        self.threshold = threshold
        self.pending_gait: Optional[GaitType] = None
        self.pending_count = 0

    def observe(self, detected: GaitType, current: GaitType) -> Optional[GaitType]:
        """Record one detection.

        Args:
            detected: Gait detected by this evaluation
            current: Currently committed gait

        Returns:
            The detected gait once it has been seen threshold times in a row,
            otherwise None
        """
        if detected == current:
            self.reset()
            return None

        if detected == self.pending_gait:
            self.pending_count += 1
        else:
            self.pending_gait = detected
            self.pending_count = 1

        if self.pending_count >= self.threshold:
            self.reset()
            return detected
        return None

    def reset(self) -> None:
        self.pending_gait = None
        self.pending_count = 0


def classify_bounce(frequency: float, amplitude: float, config: Settings) -> GaitType:
    """Classify gait from zero-crossing bounce frequency and RMS amplitude.

    Checked in order:
        amplitude < stationary_max_amplitude                    -> stationary
        frequency < walk_max_frequency or
            amplitude < walk_max_amplitude                      -> walk
        frequency >= gallop_min_frequency and
            amplitude >= gallop_min_amplitude                   -> gallop
        frequency <= canter_max_frequency and
            amplitude >= canter_min_amplitude                   -> canter
        otherwise                                               -> trot
    """
    if amplitude < config.stationary_max_amplitude:
        return GaitType.STATIONARY
    if frequency < config.walk_max_frequency or amplitude < config.walk_max_amplitude:
        return GaitType.WALK
    if frequency >= config.gallop_min_frequency and amplitude >= config.gallop_min_amplitude:
        return GaitType.GALLOP
    if frequency <= config.canter_max_frequency and amplitude >= config.canter_min_amplitude:
        return GaitType.CANTER
    return GaitType.TROT


def resolve_gait(motion_gait: Optional[GaitType],
                 speed_gait: GaitType,
                 speed: float,
                 config: Settings) -> Tuple[GaitType, float]:
    """Combine motion and speed estimates with a fixed decision table.

    Rules, first match wins:
        1. no motion estimate                           -> speed
        2. motion == speed                              -> agreed gait
        3. motion canter/gallop, speed < canter_min     -> speed
        4. motion stationary while GPS reports movement -> speed
        5. motion and speed both trot or canter         -> motion
        6. motion and speed adjacent gaits              -> motion
        7. otherwise                                    -> speed

    Returns:
        Tuple of (gait, confidence)
    """
    speed_only = (speed_gait, config.speed_only_confidence)

    if motion_gait is None:
        return speed_only
    if motion_gait == speed_gait:
        return motion_gait, config.agreement_confidence
    if motion_gait in (GaitType.CANTER, GaitType.GALLOP) and speed < config.canter_min_speed:
        return speed_only
    if motion_gait == GaitType.STATIONARY:
        return speed_only

    trot_or_canter = (GaitType.TROT, GaitType.CANTER)
    if motion_gait in trot_or_canter and speed_gait in trot_or_canter:
        return motion_gait, config.motion_override_confidence
    if motion_gait.is_adjacent(speed_gait):
        return motion_gait, config.motion_override_confidence
    return speed_only


def zero_crossing_frequency(values: Sequence[float], timestamps: Sequence[float]) -> float:
    """Oscillation frequency in Hz from mean-removed zero crossings."""
    if len(values) < 2:
        return 0.0

    duration = timestamps[-1] - timestamps[0]
    if duration <= 0:
        return 0.0

    x = np.asarray(values, dtype=float)
    positive = (x - x.mean()) >= 0
    crossings = int(np.count_nonzero(positive[1:] != positive[:-1]))
    return crossings / (2.0 * duration)


def rms(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    x = np.asarray(values, dtype=float)
    return float(np.sqrt(np.mean(x * x)))


class GaitSegmentTracker:
    """Streams motion and location samples into committed gait segments.

    Not thread-safe: all calls for one session must come from a single
    writer (see GaitSessionProcessor).
    """

    def __init__(self,
                 config: Optional[Settings] = None,
                 frame_transformer: Optional[FrameTransformer] = None,
                 spectral_analyzer: Optional[SpectralAnalyzer] = None,
                 phase_analyzer: Optional[PhaseCoherenceAnalyzer] = None,
                 estimator: Optional[GaitStateEstimator] = None,
                 on_gait_change: Optional[GaitChangeCallback] = None,
                 on_segment_closed: Optional[SegmentCallback] = None,
                 clock: Callable[[], float] = time.time):
        """Initialize gait segment tracker.

        Args:
            config: Settings, defaults to the module-level instance
            frame_transformer: Device-to-horse frame rotation
            spectral_analyzer: FFT analyzer for the vertical channel
            phase_analyzer: Coherence analyzer for paired channels
            estimator: HMM gait estimator
            on_gait_change: Called with (previous, new) on committed changes
            on_segment_closed: Called with each finalized segment
            clock: Time source for segment boundaries

        Raises:
            ValueError: If analyzer sample rates disagree or the coherence
                segment does not fit in the spectral window
        """
        self.config = config or default_settings
        self.frame_transformer = frame_transformer or FrameTransformer()
        self.spectral_analyzer = spectral_analyzer or SpectralAnalyzer(
            window_size=self.config.spectral_window_size,
            sample_rate=self.config.motion_sample_rate,
        )
        self.phase_analyzer = phase_analyzer or PhaseCoherenceAnalyzer(
            sample_rate=self.config.motion_sample_rate,
            segment_length=self.config.coherence_segment_length,
            overlap=self.config.coherence_overlap,
        )
        self.estimator = estimator or GaitStateEstimator()
        self.on_gait_change = on_gait_change
        self.on_segment_closed = on_segment_closed
        self.clock = clock

        if self.spectral_analyzer.sample_rate != self.phase_analyzer.sample_rate:
            raise ValueError("Spectral and phase analyzers must share a sample rate")
        if self.phase_analyzer.segment_length > self.spectral_analyzer.window_size:
            raise ValueError("Coherence segment length exceeds the spectral window")

        self.confirmer = TransitionConfirmer(self.config.confirmation_threshold)
        self.profile: Optional[HorseProfile] = None

        window = self.spectral_analyzer.window_size
        self.vertical_buffer: Deque[float] = deque(maxlen=window)
        self.lateral_buffer: Deque[float] = deque(maxlen=window)
        self.forward_buffer: Deque[float] = deque(maxlen=window)
        self.yaw_rate_buffer: Deque[float] = deque(maxlen=window)
        self.bounce_samples: Deque[float] = deque(maxlen=self.config.motion_buffer_size)
        self.bounce_timestamps: Deque[float] = deque(maxlen=self.config.motion_buffer_size)
        self.speed_samples: Deque[float] = deque(maxlen=self.config.speed_window_size)

        self.is_analyzing = False
        self.current_segment: Optional[GaitSegment] = None
        self.completed_segments: List[GaitSegment] = []
        self.last_acceleration: Optional[HorseFrameAcceleration] = None
        self._last_spectral_time: Optional[float] = None
        self._reset_live_values()

    def _reset_live_values(self) -> None:
        self.current_gait = GaitType.STATIONARY
        self.detected_gait = GaitType.STATIONARY
        self.gait_confidence = 0.0
        self.smoothed_speed = 0.0
        self.bounce_frequency = 0.0
        self.bounce_amplitude = 0.0
        self.spectral = SpectralFeatures.empty(self.spectral_analyzer.frequency_resolution)
        self.left_right_symmetry = 0.0
        self.vertical_yaw_coherence = 0.0
        self.lateral_yaw_phase = 0.0
        self.spectral_updates = 0
        self.watch_arm_symmetry = 0.0
        self.watch_yaw_energy = 0.0

    # Live introspection

    @property
    def stride_frequency(self) -> float:
        return self.spectral.dominant_frequency

    @property
    def harmonic_ratios(self) -> Tuple[float, float]:
        return self.spectral.h2_ratio, self.spectral.h3_ratio

    @property
    def spectral_entropy(self) -> float:
        return self.spectral.spectral_entropy

    @property
    def estimator_state(self) -> GaitType:
        return self.estimator.current_state

    @property
    def estimator_confidence(self) -> float:
        return self.estimator.state_confidence

    @property
    def segments(self) -> List[GaitSegment]:
        """Closed segments followed by the open one, if any."""
        if self.current_segment is None:
            return list(self.completed_segments)
        return self.completed_segments + [self.current_segment]

    @property
    def total_distance(self) -> float:
        return sum(segment.distance for segment in self.segments)

    # Configuration

    def configure(self, profile: Optional[HorseProfile]) -> None:
        """Apply breed and age priors for the horse being ridden."""
        self.profile = profile
        if profile is not None:
            self.estimator.configure(profile.breed, profile.age_adjustment_factor)

    def calibrate(self, attitude: Quaternion) -> None:
        """Calibrate the mounting offset; call with rider upright and horse still."""
        self.frame_transformer.calibrate(attitude)

    # Lifecycle

    def start_analyzing(self) -> None:
        if self.is_analyzing:
            return

        self._clear_buffers()
        self._reset_live_values()
        self.estimator.reset()
        self.confirmer.reset()
        self.completed_segments = []
        self.is_analyzing = True
        self._open_segment(GaitType.STATIONARY, self.clock())
        logger.info("Gait analysis started")

    def stop_analyzing(self) -> Optional[GaitSegment]:
        """Finalize the open segment and clear all buffers.

        Returns:
            The segment closed by stopping, or None if not analyzing
        """
        if not self.is_analyzing:
            return None

        closed = self._finalize_segment(self.clock())
        self.is_analyzing = False
        self.current_segment = None
        self._clear_buffers()
        self.confirmer.reset()
        self.frame_transformer.reset_calibration()

        logger.info(f"Gait analysis stopped: {len(self.completed_segments)} segments, "
                    f"{self.total_distance:.1f} m")
        if closed is not None and self.on_segment_closed:
            self.on_segment_closed(closed)
        return closed

    def reset(self) -> None:
        self.stop_analyzing()
        self._reset_live_values()
        self.estimator.reset()
        self.completed_segments = []

    def _clear_buffers(self) -> None:
        for buffer in (self.vertical_buffer, self.lateral_buffer, self.forward_buffer,
                       self.yaw_rate_buffer, self.bounce_samples, self.bounce_timestamps,
                       self.speed_samples):
            buffer.clear()
        self.last_acceleration = None
        self._last_spectral_time = None

    # Streaming input

    def process_location(self, speed: float, distance_delta: float) -> GaitType:
        """Handle a location update (~1 Hz).

        Args:
            speed: Pre-filtered GPS speed in m/s
            distance_delta: Distance since the previous update in meters

        Returns:
            Committed gait after re-evaluation

        Raises:
            ValueError: If speed or distance_delta is not a finite number
        """
        if not self.is_analyzing:
            return self.current_gait

        try:
            speed = float(speed)
            distance_delta = float(distance_delta)
        except (TypeError, ValueError) as error:
            raise ValueError(f"Invalid location update: {error}") from error
        if not (math.isfinite(speed) and math.isfinite(distance_delta)):
            raise ValueError(f"Invalid location update: speed={speed}, distance={distance_delta}")

        self.speed_samples.append(speed)
        self.smoothed_speed = float(np.mean(self.speed_samples))

        if self.current_segment is not None:
            self.current_segment.distance += distance_delta

        self._evaluate()
        return self.current_gait

    def process_motion(self, sample: MotionSample) -> None:
        """Handle a motion sample (~50 Hz)."""
        if not self.is_analyzing:
            return

        acceleration, rotation = self.frame_transformer.transform(sample)
        self.last_acceleration = acceleration

        self.vertical_buffer.append(acceleration.vertical)
        self.lateral_buffer.append(acceleration.lateral)
        self.forward_buffer.append(acceleration.forward)
        self.yaw_rate_buffer.append(rotation.yaw)
        self.bounce_samples.append(acceleration.vertical)
        self.bounce_timestamps.append(sample.timestamp)

        window = self.config.amplitude_window
        if len(self.bounce_samples) >= window:
            self.bounce_amplitude = rms(list(self.bounce_samples)[-window:])

        if len(self.bounce_samples) >= self.config.min_motion_samples:
            self.bounce_frequency = zero_crossing_frequency(self.bounce_samples, self.bounce_timestamps)

        if len(self.vertical_buffer) == self.spectral_analyzer.window_size and self._spectral_due(sample.timestamp):
            self._update_spectral_estimate()
            self._last_spectral_time = sample.timestamp

    def _spectral_due(self, timestamp: float) -> bool:
        if self._last_spectral_time is None:
            return True
        return timestamp - self._last_spectral_time >= self.config.spectral_update_interval

    def _update_spectral_estimate(self) -> None:
        self.spectral = self.spectral_analyzer.process_window(
            self.vertical_buffer, self.config.gait_frequency_band
        )

        forward = np.asarray(self.forward_buffer)
        lateral = np.asarray(self.lateral_buffer)
        vertical = np.asarray(self.vertical_buffer)
        yaw = np.asarray(self.yaw_rate_buffer)

        self.left_right_symmetry = self.phase_analyzer.phase_locking_value(forward, lateral)
        self.vertical_yaw_coherence = self.phase_analyzer.phase_locking_value(vertical, yaw)
        self.lateral_yaw_phase = self.phase_analyzer.mean_phase_difference(lateral, yaw)

        normalized_rms = (self.profile.normalized_vertical_rms(self.bounce_amplitude)
                          if self.profile is not None else self.bounce_amplitude)

        features = GaitFeatureVector(
            stride_frequency=self.spectral.dominant_frequency,
            h2_ratio=self.spectral.h2_ratio,
            h3_ratio=self.spectral.h3_ratio,
            spectral_entropy=self.spectral.spectral_entropy,
            xy_coherence=self.left_right_symmetry,
            z_yaw_coherence=self.vertical_yaw_coherence,
            normalized_vertical_rms=normalized_rms,
            yaw_rate_rms=rms(list(yaw)[-self.config.yaw_rms_window:]),
            gps_speed=self.smoothed_speed,
            watch_arm_symmetry=self.watch_arm_symmetry,
            watch_yaw_energy=self.watch_yaw_energy,
        )
        self.estimator.update(features)
        self.spectral_updates += 1

    # Gait decision

    def motion_estimate(self) -> Optional[GaitType]:
        """Motion-based gait, or None while motion data is not usable."""
        if len(self.bounce_samples) < self.config.min_motion_samples:
            return None
        if self.smoothed_speed <= self.config.motion_min_speed:
            return None

        # A stationary belief while GPS reports movement means the estimator
        # has not caught up yet
        state = self.estimator.current_state
        if (self.spectral_updates > 0
                and state != GaitType.STATIONARY
                and self.estimator.state_confidence >= self.config.hmm_confidence_threshold):
            return state

        return classify_bounce(self.bounce_frequency, self.bounce_amplitude, self.config)

    def _evaluate(self) -> None:
        speed_gait = GaitType.from_speed(self.smoothed_speed, self.config.speed_bounds)
        detected, confidence = resolve_gait(
            self.motion_estimate(), speed_gait, self.smoothed_speed, self.config
        )
        self.detected_gait = detected

        target = self.confirmer.observe(detected, self.current_gait)
        if target is None:
            if detected == self.current_gait:
                self.gait_confidence = confidence
            return

        # Physically a horse passes through intermediate gaits
        self._commit(self.current_gait.step_towards(target), confidence)

    def _commit(self, new_gait: GaitType, confidence: float) -> None:
        now = self.clock()
        previous = self.current_gait

        closed = self._finalize_segment(now)
        self.current_gait = new_gait
        self.gait_confidence = confidence
        self._open_segment(new_gait, now)

        logger.info(f"Gait change {previous.value} -> {new_gait.value} "
                    f"(speed {self.smoothed_speed:.2f} m/s, confidence {confidence:.2f})")

        if closed is not None and self.on_segment_closed:
            self.on_segment_closed(closed)
        if self.on_gait_change:
            self.on_gait_change(previous, new_gait)

    # Segment management

    def _open_segment(self, gait: GaitType, now: float) -> None:
        self.current_segment = GaitSegment(
            gait=gait,
            start_time=now,
            stride_frequency=self.spectral.dominant_frequency,
            h2_ratio=self.spectral.h2_ratio,
            h3_ratio=self.spectral.h3_ratio,
            spectral_entropy=self.spectral.spectral_entropy,
        )

    def _finalize_segment(self, now: float) -> Optional[GaitSegment]:
        segment = self.current_segment
        if segment is None:
            return None

        segment.end_time = now
        if segment.duration > 0:
            segment.average_speed = segment.distance / segment.duration

        segment.stride_frequency = self.spectral.dominant_frequency
        segment.h2_ratio = self.spectral.h2_ratio
        segment.h3_ratio = self.spectral.h3_ratio
        segment.spectral_entropy = self.spectral.spectral_entropy
        segment.vertical_yaw_coherence = self.vertical_yaw_coherence

        if self.profile is not None:
            segment.stride_length = self.profile.stride_length(segment.gait, self.bounce_amplitude)

        self.completed_segments.append(segment)
        self.current_segment = None
        return segment

    # Annotations from external analyzers

    def update_lead(self, lead: Lead, confidence: float) -> None:
        segment = self.current_segment
        if segment is None or not segment.is_lead_applicable:
            return
        segment.lead = lead
        segment.lead_confidence = confidence

    def update_rhythm(self, score: float) -> None:
        if self.current_segment is not None:
            self.current_segment.rhythm_score = score

    def update_watch_data(self, arm_symmetry: float, yaw_energy: float) -> None:
        """Secondary device features; pass zeros when the device disconnects."""
        self.watch_arm_symmetry = arm_symmetry
        self.watch_yaw_energy = yaw_energy
