"""Configuration settings for the gait analysis core using Pydantic."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator
from typing import Literal, Optional, Tuple


class Settings(BaseSettings):
    """Gait analysis settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="HORSE_GAIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Environment"
    )

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Optional[str] = Field(
        default=None, description="Optional JSON log file for ride sessions"
    )
    log_rotation: str = Field(
        default="10 MB", description="Log file rotation threshold"
    )
    log_retention: int = Field(
        default=5, ge=1, description="Rotated log files kept"
    )

    # Sensor Configuration
    motion_sample_rate: float = Field(
        default=50.0, gt=0.0, description="Declared motion sample rate in Hz"
    )
    motion_buffer_size: int = Field(
        default=100, ge=2, description="Vertical bounce ring buffer (~2 s at 50 Hz)"
    )
    amplitude_window: int = Field(
        default=20, ge=1, description="Samples used for the RMS bounce amplitude"
    )
    min_motion_samples: int = Field(
        default=50, ge=2, description="Samples required before motion estimates are used"
    )
    yaw_rms_window: int = Field(
        default=50, ge=1, description="Samples used for the yaw-rate RMS feature"
    )

    # Spectral Configuration
    spectral_window_size: int = Field(
        default=128, description="FFT window for the tracker (power of two)"
    )
    spectral_update_interval: float = Field(
        default=0.25, ge=0.0, description="Seconds between spectral/HMM updates"
    )
    gait_frequency_band: Tuple[float, float] = Field(
        default=(0.5, 6.0), description="Stride frequency search band in Hz"
    )
    coherence_segment_length: int = Field(
        default=64, ge=4, description="Welch segment length for spectral coherence"
    )
    coherence_overlap: int = Field(
        default=32, ge=0, description="Welch segment overlap in samples"
    )

    # Session Processing Configuration
    max_queue_size: int = Field(
        default=1000, ge=1, description="Maximum pending commands per session"
    )
    stop_timeout: float = Field(
        default=5.0, gt=0.0, description="Seconds to wait for a session to drain on stop"
    )

    # Gait Decision Configuration
    speed_window_size: int = Field(
        default=5, ge=1, description="Rolling GPS speed window"
    )
    confirmation_threshold: int = Field(
        default=3, ge=1, description="Consecutive detections required to commit a gait change"
    )
    hmm_confidence_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0, description="HMM confidence needed to replace bounce classification"
    )
    motion_min_speed: float = Field(
        default=0.5, ge=0.0, description="Smoothed speed above which motion estimates are used (m/s)"
    )
    canter_min_speed: float = Field(
        default=2.0, ge=0.0, description="Below this speed a canter/gallop motion estimate is overruled (m/s)"
    )

    # Speed to gait mapping (upper bounds, m/s)
    stationary_max_speed: float = Field(default=0.4, ge=0.0)
    walk_max_speed: float = Field(default=1.7, ge=0.0)
    trot_max_speed: float = Field(default=3.5, ge=0.0)
    canter_max_speed: float = Field(default=5.5, ge=0.0)

    # Bounce classification thresholds
    stationary_max_amplitude: float = Field(
        default=0.05, ge=0.0, description="RMS bounce (g) below which the horse is stationary"
    )
    walk_max_frequency: float = Field(
        default=1.5, ge=0.0, description="Bounce frequency (Hz) below which the gait is walk"
    )
    walk_max_amplitude: float = Field(
        default=0.1, ge=0.0, description="RMS bounce (g) below which the gait is walk"
    )
    canter_max_frequency: float = Field(
        default=2.8, ge=0.0, description="Highest bounce frequency (Hz) still read as canter"
    )
    canter_min_amplitude: float = Field(
        default=0.18, ge=0.0, description="RMS bounce (g) separating canter from trot"
    )
    gallop_min_frequency: float = Field(
        default=3.5, ge=0.0, description="Bounce frequency (Hz) at which gallop is possible"
    )
    gallop_min_amplitude: float = Field(
        default=0.3, ge=0.0, description="RMS bounce (g) required for gallop"
    )

    # Decision confidences
    agreement_confidence: float = Field(default=0.9, ge=0.0, le=1.0)
    motion_override_confidence: float = Field(default=0.75, ge=0.0, le=1.0)
    speed_only_confidence: float = Field(default=0.6, ge=0.0, le=1.0)

    @field_validator("spectral_window_size")
    @classmethod
    def _window_is_power_of_two(cls, value: int) -> int:
        if value <= 0 or value & (value - 1):
            raise ValueError("spectral_window_size must be a power of two")
        return value

    @model_validator(mode="after")
    def _check_buffer_sizes(self) -> "Settings":
        if self.min_motion_samples > self.motion_buffer_size:
            raise ValueError("min_motion_samples cannot exceed motion_buffer_size")
        if self.amplitude_window > self.motion_buffer_size:
            raise ValueError("amplitude_window cannot exceed motion_buffer_size")
        if self.coherence_overlap >= self.coherence_segment_length:
            raise ValueError("coherence_overlap must be smaller than coherence_segment_length")
        low, high = self.gait_frequency_band
        if not 0.0 <= low < high:
            raise ValueError("gait_frequency_band must be an increasing (low, high) pair")
        speeds = [
            self.stationary_max_speed,
            self.walk_max_speed,
            self.trot_max_speed,
            self.canter_max_speed,
        ]
        if speeds != sorted(speeds):
            raise ValueError("speed bounds must increase from stationary to canter")
        return self

    @property
    def speed_bounds(self) -> Tuple[float, float, float, float]:
        """Upper speed bounds for stationary, walk, trot and canter."""
        return (
            self.stationary_max_speed,
            self.walk_max_speed,
            self.trot_max_speed,
            self.canter_max_speed,
        )


# Global settings instance
settings = Settings()

def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
