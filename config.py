# beatlens Configuration
# All default values and constants

import math
from dataclasses import dataclass, field, is_dataclass

from logging_utils import log_event


CURRENT_CONFIG_VERSION = 1

# Runtime sensitivity policy range (applied by the host, not by the analyzer)
SENSITIVITY_LIMITS = (0.05, 10.0)
DEFAULT_SENSITIVITY = 1.0


@dataclass
class SpectrumConfig:
    """FFT layout assumed when mapping bins to Hz"""
    sample_rate: int = 48000
    fft_size: int = 2048              # bin width = (sample_rate/2) / (fft_size/2)
    bass_max_hz: float = 250.0        # bass: 0 - 250Hz
    mid_max_hz: float = 2000.0        # mid: 250 - 2000Hz
    high_max_hz: float = 20000.0      # high: 2000 - 20000Hz
    history_size: int = 43            # ~2 seconds of energy history at ~21fps


@dataclass
class BandThresholds:
    """Beat thresholds for one band"""
    deviation: float = 0.08           # Required rise above baseline (after sensitivity)
    floor: float = 0.20               # Absolute energy floor (ambient noise guard)


@dataclass
class BeatDetectionConfig:
    """Adaptive-baseline beat detection parameters"""
    bass: BandThresholds = field(default_factory=lambda: BandThresholds(0.06, 0.25))
    mid: BandThresholds = field(default_factory=lambda: BandThresholds(0.08, 0.20))
    high: BandThresholds = field(default_factory=lambda: BandThresholds(0.08, 0.20))
    baseline_rate: float = 0.02       # Baseline tracking speed (slow = moving average)
    warmup_rate: float = 0.15         # Fast tracking during warmup
    warmup_frames: int = 30           # ~1 second of calibration, no detection
    cooldown_frames: int = 3          # Calls suppressed after a bass beat


@dataclass
class SmoothingConfig:
    """Dual-rate smoothing and impulse shaping"""
    detection_alpha: float = 0.45     # Fast track (beat detection), 45% new data
    visual_alpha: float = 0.30        # Visual track (smooth motion), 30% new data
    noise_floor: float = 0.06         # Visual values below this decay quadratically
    impulse_decay: float = 0.65       # Impulse multiplier per call without a beat


@dataclass
class LimiterConfig:
    """Soft-knee limiter"""
    threshold: float = 0.85           # Knee start; output asymptotes to 1.0
    release_rate: float = 0.05        # Gain recovery per call (slow release)


@dataclass
class TempoConfig:
    """Beat-interval BPM estimation"""
    max_beats: int = 16               # Ring size of recorded beat frames
    min_beats: int = 3                # Beats required before estimating
    min_fps: float = 10.0             # Low fps clamp (gentle degradation)
    default_fps: float = 30.0
    min_bpm: int = 40
    max_bpm: int = 240


@dataclass
class Config:
    """Master configuration"""
    version: int = 1                  # Schema version for persisted configs
    spectrum: SpectrumConfig = field(default_factory=SpectrumConfig)
    beat: BeatDetectionConfig = field(default_factory=BeatDetectionConfig)
    smoothing: SmoothingConfig = field(default_factory=SmoothingConfig)
    limiter: LimiterConfig = field(default_factory=LimiterConfig)
    tempo: TempoConfig = field(default_factory=TempoConfig)

    # Global
    sensitivity: float = DEFAULT_SENSITIVITY
    log_level: str = "INFO"           # Logging level (DEBUG/INFO/WARNING/ERROR)


def clamp_sensitivity(value) -> float:
    """Clamp a sensitivity value into SENSITIVITY_LIMITS (invalid -> default)."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return DEFAULT_SENSITIVITY
    if math.isnan(value):
        return DEFAULT_SENSITIVITY
    low, high = SENSITIVITY_LIMITS
    return max(low, min(high, value))


def apply_dict_to_dataclass(target, data) -> None:
    """Recursively apply values from a dict onto a dataclass instance.
    Unknown keys are ignored; values whose type does not match the default are
    skipped (ints are accepted for float fields)."""
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if not hasattr(target, key):
            continue

        current = getattr(target, key)

        if is_dataclass(current):
            if isinstance(value, dict):
                apply_dict_to_dataclass(current, value)
            continue

        if value is None:
            setattr(target, key, value)
            continue

        if isinstance(current, bool) or isinstance(value, bool):
            if type(current) is not type(value):
                log_event("WARNING", "Config", "Ignoring mistyped value, keeping default", key=key)
                continue
        elif isinstance(current, float) and isinstance(value, int):
            value = float(value)
        elif not isinstance(value, type(current)):
            log_event("WARNING", "Config", "Ignoring mistyped value, keeping default", key=key)
            continue

        setattr(target, key, value)


def _restore_none(target, defaults) -> None:
    """Replace None fields with the matching default, recursing into sections."""
    for key, default in vars(defaults).items():
        current = getattr(target, key, None)
        if is_dataclass(default):
            if is_dataclass(current):
                _restore_none(current, default)
            else:
                setattr(target, key, default)
        elif current is None:
            setattr(target, key, default)


def _clamp_field(section, name: str, low: float, high: float) -> None:
    value = getattr(section, name)
    setattr(section, name, type(value)(max(low, min(high, value))))


def migrate_config(config: Config, loaded_version) -> None:
    """Upgrade older config structures to the current schema.
    Restores defaults for missing values, clamps ranges and bumps version."""
    try:
        version = int(loaded_version) if loaded_version is not None else 0
    except (TypeError, ValueError):
        version = 0

    if version < CURRENT_CONFIG_VERSION:
        log_event("INFO", "Config", "Migrating config", from_version=version, to_version=CURRENT_CONFIG_VERSION)

    _restore_none(config, Config())

    # Always clamp safety ranges
    config.sensitivity = clamp_sensitivity(config.sensitivity)
    _clamp_field(config.limiter, "threshold", 0.01, 1.0)
    _clamp_field(config.limiter, "release_rate", 0.0, 1.0)
    _clamp_field(config.smoothing, "detection_alpha", 0.0, 1.0)
    _clamp_field(config.smoothing, "visual_alpha", 0.0, 1.0)
    _clamp_field(config.smoothing, "impulse_decay", 0.0, 1.0)
    _clamp_field(config.beat, "warmup_frames", 0, 10_000)
    _clamp_field(config.beat, "cooldown_frames", 0, 10_000)
    _clamp_field(config.tempo, "max_beats", 2, 1024)
    _clamp_field(config.tempo, "min_beats", 2, config.tempo.max_beats)
    if config.spectrum.fft_size < 2:
        config.spectrum.fft_size = SpectrumConfig.fft_size
    if config.spectrum.sample_rate <= 0:
        config.spectrum.sample_rate = SpectrumConfig.sample_rate

    config.version = CURRENT_CONFIG_VERSION


# Default config instance
DEFAULT_CONFIG = Config()
