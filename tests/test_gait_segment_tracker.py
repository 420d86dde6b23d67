"""Tests for gait decision logic and segment tracking."""
import math

import pytest

from horse_gait.config.settings import Settings
from horse_gait.models.breed_priors import HorseBreed, HorseProfile
from horse_gait.models.gait import GaitType, Lead, MotionSample
from horse_gait.models.phase_coherence import PhaseCoherenceAnalyzer
from horse_gait.models.spectral_analyzer import SpectralAnalyzer
from horse_gait.services.gait_segment_tracker import (
    GaitSegmentTracker,
    TransitionConfirmer,
    classify_bounce,
    resolve_gait,
    rms,
    zero_crossing_frequency,
)


class FakeClock:
    """Manually advanced time source."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def advance(self, seconds=1.0):
        self.now += seconds


def bounce_samples(count, frequency=2.5, amplitude=0.3, rate=50.0, start=0):
    """Vertical-only motion samples of a sinusoidal bounce."""
    samples = []
    for i in range(start, start + count):
        t = i / rate
        samples.append(MotionSample(
            timestamp=t,
            acceleration_z=amplitude * math.sin(2 * math.pi * frequency * t),
        ))
    return samples


@pytest.fixture
def config():
    return Settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(config, clock):
    return GaitSegmentTracker(config, clock=clock)


class TestTransitionConfirmer:
    """Test hysteresis on gait changes."""

    def test_confirms_after_threshold(self):
        confirmer = TransitionConfirmer(3)
        assert confirmer.observe(GaitType.WALK, GaitType.STATIONARY) is None
        assert confirmer.observe(GaitType.WALK, GaitType.STATIONARY) is None
        assert confirmer.observe(GaitType.WALK, GaitType.STATIONARY) == GaitType.WALK
        assert confirmer.pending_count == 0

    def test_alternating_detections_never_confirm(self):
        confirmer = TransitionConfirmer(3)
        for i in range(30):
            detected = GaitType.WALK if i % 2 == 0 else GaitType.TROT
            assert confirmer.observe(detected, GaitType.STATIONARY) is None

    def test_current_gait_resets_pending(self):
        confirmer = TransitionConfirmer(3)
        confirmer.observe(GaitType.TROT, GaitType.WALK)
        confirmer.observe(GaitType.TROT, GaitType.WALK)
        assert confirmer.observe(GaitType.WALK, GaitType.WALK) is None
        assert confirmer.pending_gait is None
        assert confirmer.observe(GaitType.TROT, GaitType.WALK) is None

    def test_rejects_zero_threshold(self):
        with pytest.raises(ValueError):
            TransitionConfirmer(0)


class TestClassifyBounce:
    """Test bounce frequency/amplitude classification."""

    @pytest.mark.parametrize("frequency, amplitude, expected", [
        (2.0, 0.01, GaitType.STATIONARY),
        (1.2, 0.2, GaitType.WALK),
        (2.0, 0.08, GaitType.WALK),
        (4.0, 0.4, GaitType.GALLOP),
        (2.5, 0.2, GaitType.CANTER),
        (2.5, 0.15, GaitType.TROT),
        (3.0, 0.25, GaitType.TROT),
        (4.0, 0.2, GaitType.TROT),
    ])
    def test_classification(self, config, frequency, amplitude, expected):
        assert classify_bounce(frequency, amplitude, config) == expected


class TestResolveGait:
    """Test the motion/speed decision table."""

    def test_no_motion_uses_speed(self, config):
        assert resolve_gait(None, GaitType.TROT, 3.0, config) == (GaitType.TROT, config.speed_only_confidence)

    def test_agreement(self, config):
        assert resolve_gait(GaitType.CANTER, GaitType.CANTER, 4.0, config) == (
            GaitType.CANTER, config.agreement_confidence)

    def test_fast_gait_at_low_speed_uses_speed(self, config):
        assert resolve_gait(GaitType.CANTER, GaitType.WALK, 1.5, config)[0] == GaitType.WALK
        assert resolve_gait(GaitType.GALLOP, GaitType.WALK, 1.0, config)[0] == GaitType.WALK

    def test_stationary_motion_uses_speed(self, config):
        assert resolve_gait(GaitType.STATIONARY, GaitType.WALK, 1.0, config) == (
            GaitType.WALK, config.speed_only_confidence)

    def test_trot_canter_disagreement_uses_motion(self, config):
        assert resolve_gait(GaitType.CANTER, GaitType.TROT, 3.0, config) == (
            GaitType.CANTER, config.motion_override_confidence)
        assert resolve_gait(GaitType.TROT, GaitType.CANTER, 4.0, config)[0] == GaitType.TROT

    def test_adjacent_uses_motion(self, config):
        assert resolve_gait(GaitType.WALK, GaitType.TROT, 2.0, config)[0] == GaitType.WALK
        assert resolve_gait(GaitType.GALLOP, GaitType.CANTER, 5.0, config)[0] == GaitType.GALLOP

    def test_distant_disagreement_uses_speed(self, config):
        assert resolve_gait(GaitType.WALK, GaitType.CANTER, 4.0, config) == (
            GaitType.CANTER, config.speed_only_confidence)


class TestSignalHelpers:
    """Test bounce signal helpers."""

    def test_zero_crossing_frequency(self):
        timestamps = [i * 0.01 for i in range(200)]
        values = [math.sin(2 * math.pi * 2.0 * t + 0.3) for t in timestamps]
        assert zero_crossing_frequency(values, timestamps) == pytest.approx(2.0, abs=0.1)

    def test_zero_crossing_degenerate(self):
        assert zero_crossing_frequency([1.0], [0.0]) == 0.0
        assert zero_crossing_frequency([1.0, -1.0], [1.0, 1.0]) == 0.0

    def test_rms(self):
        assert rms([]) == 0.0
        assert rms([3.0, -3.0]) == pytest.approx(3.0)


class TestGaitSegmentTracker:
    """Test streaming gait tracking."""

    def test_initial_state(self, tracker):
        assert not tracker.is_analyzing
        assert tracker.current_gait == GaitType.STATIONARY
        assert tracker.current_segment is None
        assert tracker.total_distance == 0.0

    def test_rejects_mismatched_sample_rates(self, config):
        with pytest.raises(ValueError):
            GaitSegmentTracker(config, spectral_analyzer=SpectralAnalyzer(128, 100.0))

    def test_rejects_coherence_segment_longer_than_window(self, config):
        with pytest.raises(ValueError):
            GaitSegmentTracker(
                config,
                spectral_analyzer=SpectralAnalyzer(64, 50.0),
                phase_analyzer=PhaseCoherenceAnalyzer(50.0, segment_length=128, overlap=64),
            )

    def test_ignores_input_before_start(self, tracker):
        for sample in bounce_samples(10):
            tracker.process_motion(sample)
        assert tracker.process_location(4.0, 4.0) == GaitType.STATIONARY
        assert len(tracker.vertical_buffer) == 0
        assert tracker.total_distance == 0.0

    def test_start_opens_stationary_segment(self, tracker, clock):
        clock.now = 10.0
        tracker.start_analyzing()
        assert tracker.is_analyzing
        assert tracker.current_segment.gait == GaitType.STATIONARY
        assert tracker.current_segment.start_time == 10.0

    def test_bounce_features(self, tracker):
        tracker.start_analyzing()
        for sample in bounce_samples(50):
            tracker.process_motion(sample)

        assert tracker.bounce_amplitude == pytest.approx(0.3 / math.sqrt(2), rel=0.01)
        assert tracker.bounce_frequency == pytest.approx(2.5, abs=0.2)
        assert tracker.motion_estimate() is None  # no GPS speed yet

    def test_canter_scenario(self, tracker, clock):
        """Test 2.5 Hz / 0.3 g bounce at 4 m/s confirms canter via walk and trot."""
        changes = []
        tracker.on_gait_change = lambda previous, new: changes.append((previous, new))
        tracker.start_analyzing()

        for sample in bounce_samples(50):
            tracker.process_motion(sample)
        for _ in range(12):
            clock.advance()
            tracker.process_location(4.0, 4.0)

        assert tracker.current_gait == GaitType.CANTER
        assert tracker.gait_confidence > 0.5
        assert changes == [
            (GaitType.STATIONARY, GaitType.WALK),
            (GaitType.WALK, GaitType.TROT),
            (GaitType.TROT, GaitType.CANTER),
        ]
        for previous, new in changes:
            assert previous.is_adjacent(new)

    def test_confirmation_required(self, tracker, clock):
        tracker.start_analyzing()
        for _ in range(2):
            clock.advance()
            tracker.process_location(1.0, 1.0)
        assert tracker.current_gait == GaitType.STATIONARY
        assert tracker.detected_gait == GaitType.WALK

        clock.advance()
        tracker.process_location(1.0, 1.0)
        assert tracker.current_gait == GaitType.WALK
        assert tracker.gait_confidence == pytest.approx(0.6)

    def test_alternating_detections_do_not_flicker(self, clock):
        """Test speeds flipping between two gaits never commit either one."""
        tracker = GaitSegmentTracker(Settings(speed_window_size=1), clock=clock)
        changes = []
        tracker.on_gait_change = lambda previous, new: changes.append((previous, new))
        tracker.start_analyzing()

        for _ in range(3):
            clock.advance()
            tracker.process_location(1.0, 1.0)
        assert tracker.current_gait == GaitType.WALK

        for i in range(20):
            clock.advance()
            tracker.process_location(3.0 if i % 2 == 0 else 4.0, 3.0)

        assert changes == [(GaitType.STATIONARY, GaitType.WALK)]
        assert tracker.current_gait == GaitType.WALK
        assert len(tracker.completed_segments) == 1

    @pytest.mark.parametrize("speed, distance", [
        (None, 1.0),
        (float("nan"), 1.0),
        (1.0, float("inf")),
        ("fast", 1.0),
    ])
    def test_invalid_location_leaves_state_untouched(self, tracker, clock, speed, distance):
        tracker.start_analyzing()
        with pytest.raises(ValueError):
            tracker.process_location(speed, distance)
        assert len(tracker.speed_samples) == 0
        assert tracker.total_distance == 0.0

        for _ in range(4):
            clock.advance()
            tracker.process_location(1.0, 1.0)
        assert tracker.current_gait == GaitType.WALK
        assert tracker.total_distance == pytest.approx(4.0)

    def test_segment_distance_accounting(self, tracker, clock):
        """Test closed plus open segment distances equal the distance fed."""
        tracker.start_analyzing()
        deltas = [0.5, 1.2, 0.9, 1.4, 3.1, 2.7, 3.3, 2.9, 0.2, 0.1, 0.0, 0.3]
        speeds = [1.0, 1.0, 1.0, 1.2, 3.0, 3.0, 3.0, 3.0, 0.1, 0.1, 0.1, 0.1]
        for speed, delta in zip(speeds, deltas):
            clock.advance()
            tracker.process_location(speed, delta)

        assert len(tracker.completed_segments) >= 1
        assert tracker.total_distance == pytest.approx(sum(deltas))

        closed = tracker.stop_analyzing()
        assert closed is not None
        assert sum(s.distance for s in tracker.completed_segments) == pytest.approx(sum(deltas))

    def test_stop_finalizes_segment(self, tracker, clock):
        closed_segments = []
        tracker.on_segment_closed = closed_segments.append
        tracker.start_analyzing()

        for _ in range(5):
            clock.advance()
            tracker.process_location(1.0, 1.0)

        closed = tracker.stop_analyzing()

        assert closed.gait == GaitType.WALK
        assert closed.start_time == 3.0
        assert closed.end_time == 5.0
        assert closed.distance == pytest.approx(2.0)
        assert closed.average_speed == pytest.approx(1.0)
        assert closed.to_dict()["gait"] == "walk"
        assert closed.to_dict()["duration"] == pytest.approx(2.0)
        assert [s.gait for s in closed_segments] == [GaitType.STATIONARY, GaitType.WALK]
        assert closed_segments[0].distance == pytest.approx(3.0)

        assert not tracker.is_analyzing
        assert tracker.current_segment is None
        assert len(tracker.vertical_buffer) == 0

    def test_stop_when_idle(self, tracker):
        assert tracker.stop_analyzing() is None

    def test_stop_resets_calibration(self, tracker):
        tracker.calibrate((0.0, 0.0, 0.0, 1.0))
        tracker.start_analyzing()
        assert tracker.frame_transformer.is_calibrated
        tracker.stop_analyzing()
        assert not tracker.frame_transformer.is_calibrated

    def test_restart_clears_segments(self, tracker, clock):
        tracker.start_analyzing()
        for _ in range(4):
            clock.advance()
            tracker.process_location(1.0, 1.0)
        tracker.stop_analyzing()

        tracker.start_analyzing()
        assert tracker.completed_segments == []
        assert tracker.current_gait == GaitType.STATIONARY
        assert tracker.total_distance == 0.0

    def test_spectral_update(self, tracker):
        """Test a full window triggers spectral analysis and the estimator."""
        tracker.start_analyzing()
        for sample in bounce_samples(150):
            tracker.process_motion(sample)

        resolution = tracker.spectral_analyzer.frequency_resolution
        assert tracker.spectral_updates == 2
        assert tracker.stride_frequency == pytest.approx(2.5, abs=resolution)
        assert 0.0 <= tracker.spectral_entropy <= 1.0

    def test_lead_only_recorded_in_canter(self, tracker, clock):
        tracker.start_analyzing()
        tracker.update_lead(Lead.LEFT, 0.9)
        assert tracker.current_segment.lead is None

        for sample in bounce_samples(50):
            tracker.process_motion(sample)
        for _ in range(9):
            clock.advance()
            tracker.process_location(4.0, 4.0)
        assert tracker.current_gait == GaitType.CANTER

        tracker.update_lead(Lead.LEFT, 0.9)
        assert tracker.current_segment.lead == Lead.LEFT
        assert tracker.current_segment.has_known_lead

    def test_update_rhythm(self, tracker):
        tracker.start_analyzing()
        tracker.update_rhythm(85.0)
        assert tracker.current_segment.rhythm_score == 85.0

    def test_profile_sets_stride_length(self, tracker, clock):
        tracker.configure(HorseProfile(breed=HorseBreed.THOROUGHBRED, age=8, height_hands=16.0))
        assert tracker.estimator.breed == HorseBreed.THOROUGHBRED

        tracker.start_analyzing()
        for _ in range(3):
            clock.advance()
            tracker.process_location(1.0, 1.0)

        stationary = tracker.completed_segments[0]
        assert stationary.stride_length == 0.0

        walk = tracker.stop_analyzing()
        assert walk.stride_length == pytest.approx(2.2 * 16.0 * 0.1016 * 0.01 ** 0.25)

    def test_watch_data(self, tracker):
        tracker.update_watch_data(0.5, 0.3)
        assert tracker.watch_arm_symmetry == 0.5
        assert tracker.watch_yaw_energy == 0.3
