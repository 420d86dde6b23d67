"""Serialized processing of one ride session.

Sensor callbacks arrive on arbitrary threads. GaitSessionProcessor funnels
every command through one queue drained by a single worker thread, so the
tracker and its analyzers only ever see one writer.
"""
import queue
import threading
from typing import Any, Callable, Dict, Optional, Tuple

from loguru import logger

from ..config.settings import Settings, settings as default_settings
from ..models.breed_priors import HorseProfile
from ..models.gait import GaitSegment, Lead, MotionSample, Quaternion
from ..models.lead_analyzer import LeadAnalyzer
from ..models.rhythm_analyzer import RhythmAnalyzer
from .gait_segment_tracker import GaitSegmentTracker

Command = Tuple[str, Tuple[Any, ...]]

_SHUTDOWN = "shutdown"


class GaitSessionProcessor:
    """Single-writer front end for a GaitSegmentTracker."""

    def __init__(self,
                 tracker: Optional[GaitSegmentTracker] = None,
                 lead_analyzer: Optional[LeadAnalyzer] = None,
                 rhythm_analyzer: Optional[RhythmAnalyzer] = None,
                 config: Optional[Settings] = None):
        self.config = config or default_settings
        self.tracker = tracker or GaitSegmentTracker(self.config)
        self.lead_analyzer = lead_analyzer or LeadAnalyzer()
        self.rhythm_analyzer = rhythm_analyzer or RhythmAnalyzer()

        self._queue: "queue.Queue[Command]" = queue.Queue(maxsize=self.config.max_queue_size)
        # Reentrant so callbacks fired by a handler can take a snapshot
        self._lock = threading.RLock()
        self._drop_lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None
        self._stopped_segment: Optional[GaitSegment] = None
        self._stop_requested = False

        self.dropped_samples = 0
        self.failed_commands = 0

        self._handlers: Dict[str, Callable[..., None]] = {
            "configure": self._handle_configure,
            "calibrate": self._handle_calibrate,
            "start": self._handle_start,
            "motion": self._handle_motion,
            "location": self._handle_location,
            "watch": self._handle_watch,
            "stop": self._handle_stop,
        }

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self, profile: Optional[HorseProfile] = None) -> None:
        """Start the worker thread and begin analyzing."""
        if self.is_running:
            logger.warning("Gait session already running")
            return

        self._stopped_segment = None
        self._stop_requested = False
        self._worker = threading.Thread(target=self._run, name="gait-session", daemon=True)
        self._worker.start()

        if profile is not None:
            self._put("configure", profile)
        self._put("start")
        logger.info("Gait session started")

    def calibrate(self, attitude: Quaternion) -> None:
        self._put("calibrate", attitude)

    def submit_motion(self, sample: MotionSample) -> bool:
        """Queue a motion sample; returns False if it was dropped."""
        try:
            self._queue.put_nowait(("motion", (sample,)))
            return True
        except queue.Full:
            with self._drop_lock:
                self.dropped_samples += 1
                dropped = self.dropped_samples
            if dropped % 100 == 1:
                logger.warning(f"Motion queue full, dropped {dropped} samples")
            return False

    def submit_location(self, speed: float, distance_delta: float) -> None:
        # Location updates carry distance, so they block rather than drop
        self._put("location", speed, distance_delta)

    def submit_watch_data(self, arm_symmetry: float, yaw_energy: float) -> None:
        self._put("watch", arm_symmetry, yaw_energy)

    def stop(self, timeout: Optional[float] = None) -> Optional[GaitSegment]:
        """Drain pending commands, close the open segment and stop the worker.

        If the worker does not finish within the timeout it stays registered,
        start() refuses to launch a second one, and stop() may be called
        again to keep waiting.

        Returns:
            The segment closed by stopping, or None if nothing was open or
            the worker is still busy
        """
        if self._worker is None:
            return None

        if not self._stop_requested:
            self._put("stop")
            self._put(_SHUTDOWN)
            self._stop_requested = True

        self._worker.join(timeout if timeout is not None else self.config.stop_timeout)
        if self._worker.is_alive():
            logger.error("Gait session worker did not stop in time")
            return None
        self._worker = None
        self._stop_requested = False

        logger.info(f"Gait session stopped ({self.dropped_samples} dropped samples, "
                    f"{self.failed_commands} failed commands)")
        return self._stopped_segment

    def snapshot(self) -> Dict[str, Any]:
        """Consistent view of the live tracker values."""
        with self._lock:
            tracker = self.tracker
            h2, h3 = tracker.harmonic_ratios
            return {
                "gait": tracker.current_gait.value,
                "confidence": tracker.gait_confidence,
                "speed": tracker.smoothed_speed,
                "bounce_frequency": tracker.bounce_frequency,
                "bounce_amplitude": tracker.bounce_amplitude,
                "stride_frequency": tracker.stride_frequency,
                "h2_ratio": h2,
                "h3_ratio": h3,
                "spectral_entropy": tracker.spectral_entropy,
                "left_right_symmetry": tracker.left_right_symmetry,
                "vertical_yaw_coherence": tracker.vertical_yaw_coherence,
                "lead": self.lead_analyzer.current_lead.value,
                "rhythm_score": self.rhythm_analyzer.rhythm_score,
                "total_distance": tracker.total_distance,
                "segments": len(tracker.segments),
            }

    def _put(self, name: str, *args: Any) -> None:
        self._queue.put((name, args))

    def _run(self) -> None:
        while True:
            name, args = self._queue.get()
            try:
                if name == _SHUTDOWN:
                    return
                with self._lock:
                    self._handlers[name](*args)
            except Exception as error:
                self.failed_commands += 1
                logger.exception(f"Failed to process {name} command: {error}")
            finally:
                self._queue.task_done()

    # Handlers run on the worker thread only

    def _handle_configure(self, profile: HorseProfile) -> None:
        self.tracker.configure(profile)

    def _handle_calibrate(self, attitude: Quaternion) -> None:
        self.tracker.calibrate(attitude)

    def _handle_start(self) -> None:
        self.lead_analyzer.reset()
        self.rhythm_analyzer.reset()
        self.tracker.start_analyzing()

    def _handle_motion(self, sample: MotionSample) -> None:
        tracker = self.tracker
        tracker.process_motion(sample)

        acceleration = tracker.last_acceleration
        if acceleration is None:
            return

        lead = self.lead_analyzer.process_sample(acceleration.lateral, sample.timestamp, tracker.current_gait)
        if lead != Lead.UNKNOWN:
            tracker.update_lead(lead, self.lead_analyzer.current_confidence)

        score = self.rhythm_analyzer.process_sample(acceleration.vertical, sample.timestamp)
        if score > 0:
            tracker.update_rhythm(score)

    def _handle_location(self, speed: float, distance_delta: float) -> None:
        self.tracker.process_location(speed, distance_delta)

    def _handle_watch(self, arm_symmetry: float, yaw_energy: float) -> None:
        self.tracker.update_watch_data(arm_symmetry, yaw_energy)

    def _handle_stop(self) -> None:
        self._stopped_segment = self.tracker.stop_analyzing()
