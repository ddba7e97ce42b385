"""
beatlens - Audio Analyzer
Turns one FFT magnitude frame per call into smoothed band energies,
beat flags and decaying impulses.

Beat detection compares a fast-smoothed energy against a slowly adapting
per-band baseline. A fixed warmup window calibrates the baseline before
detection starts, and every bass beat opens a short cooldown window.
"""

import math
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from config import Config
from frequency_mapper import BandSplit, FrequencyMapper, as_spectrum, dominant_frequency
from logging_utils import log_event


BANDS = ('bass', 'mid', 'high')
TRACKS = ('overall',) + BANDS


class DetectorPhase(Enum):
    """Beat detector state. Exactly one is active; the analyzer keeps the
    calls remaining for WARMUP and COOLDOWN."""
    WARMUP = "warmup"        # Baseline calibration, no detection
    ACTIVE = "active"        # Detection enabled
    COOLDOWN = "cooldown"    # Post-beat suppression


@dataclass
class BeatFlags:
    """Per-call beat flags. overall mirrors bass; mid/high are informational."""
    overall: bool = False
    bass: bool = False
    mid: bool = False
    high: bool = False


@dataclass
class Impulses:
    """Per-band impulse levels: 1.0 on a beat, decaying geometrically after."""
    overall: float = 0.0
    bass: float = 0.0
    mid: float = 0.0
    high: float = 0.0


def quantize_level(value: float) -> int:
    """Scale a 0.0-1.0 level to a byte: round(value * 255) clamped to 0-255.
    NaN maps to 0."""
    if math.isnan(value):
        return 0
    scaled = value * 255.0
    if scaled <= 0.0:
        return 0
    if scaled >= 255.0:
        return 255
    return int(math.floor(scaled + 0.5))


@dataclass
class AnalysisResult:
    """Output of one AudioAnalyzer.analyze() call"""
    bass: float = 0.0                 # Visual-track energies
    mid: float = 0.0
    high: float = 0.0
    overall_energy: float = 0.0
    dominant_frequency: float = 0.0   # Hz of the strongest bin
    beat: BeatFlags = field(default_factory=BeatFlags)
    impulse: Impulses = field(default_factory=Impulses)
    bands: BandSplit = field(default_factory=BandSplit)

    def levels(self) -> dict[str, float]:
        """Band levels in the shape AudioLimiter.process_bands() expects."""
        return {
            'bass': self.bass,
            'mid': self.mid,
            'high': self.high,
            'overall': self.overall_energy,
        }

    def quantized_levels(self) -> dict[str, int]:
        return {name: quantize_level(value) for name, value in self.levels().items()}

    def as_dict(self) -> dict:
        return {
            'bass': self.bass,
            'mid': self.mid,
            'high': self.high,
            'overall_energy': self.overall_energy,
            'dominant_frequency': self.dominant_frequency,
            'beat': {
                'overall': self.beat.overall,
                'bass': self.beat.bass,
                'mid': self.beat.mid,
                'high': self.beat.high,
            },
            'impulse': {
                'overall': self.impulse.overall,
                'bass': self.impulse.bass,
                'mid': self.impulse.mid,
                'high': self.impulse.high,
            },
            'bands': self.bands.as_dict(),
        }


def calculate_energy(values: np.ndarray) -> float:
    """RMS of byte-scale magnitudes normalized to 0-1; 0.0 for an empty band."""
    if len(values) == 0:
        return 0.0
    with np.errstate(all='ignore'):
        normalized = values / 255.0
        return float(np.sqrt(np.mean(normalized * normalized)))


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


class _BandTrack:
    """Smoothing, baseline and beat state for one band."""
    __slots__ = ('fast', 'visual', 'baseline', 'impulse', 'beat')

    def __init__(self):
        self.fast: float = 0.0        # Detection track
        self.visual: float = 0.0      # Display track
        self.baseline: float = 0.0    # Ambient level (bands only)
        self.impulse: float = 0.0
        self.beat: bool = False


class AudioAnalyzer:
    """Stateful per-frame analyzer. One instance per audio source; build a new
    instance for a full reset."""

    def __init__(self, config: Config | None = None):
        self.config = config or Config()
        self.frequency_mapper = FrequencyMapper(self.config.spectrum)

        beat_cfg = self.config.beat
        self.thresholds = {
            'bass': beat_cfg.bass,
            'mid': beat_cfg.mid,
            'high': beat_cfg.high,
        }
        self._tracks = {name: _BandTrack() for name in TRACKS}

        warmup = max(0, int(beat_cfg.warmup_frames))
        self.phase = DetectorPhase.WARMUP if warmup > 0 else DetectorPhase.ACTIVE
        self.phase_remaining = warmup

        # Rotating energy history (overall, bass, mid, high) - not read by any output
        self._history = np.zeros((len(TRACKS), max(0, int(self.config.spectrum.history_size))))
        self._history_index = 0

    def analyze(self, frequency_data, sensitivity: float = 1.0) -> AnalysisResult:
        """Analyze one magnitude frame (values 0-255, any length).

        sensitivity scales the deviation from baseline before it is compared
        to each band's threshold; it does not affect the reported energies.
        """
        spectrum = as_spectrum(frequency_data)
        if len(spectrum) == 0:
            return AnalysisResult()

        bands = self.frequency_mapper.split_bands(spectrum)
        energies = {
            'overall': calculate_energy(spectrum),
            'bass': calculate_energy(bands.bass),
            'mid': calculate_energy(bands.mid),
            'high': calculate_energy(bands.high),
        }

        smoothing = self.config.smoothing
        for name, energy in energies.items():
            track = self._tracks[name]
            track.fast = lerp(track.fast, energy, smoothing.detection_alpha)
            track.visual = self._decay_near_zero(lerp(track.visual, energy, smoothing.visual_alpha))

        self._detect_beats(sensitivity)
        self._update_impulses()
        self._record_history(energies)

        tracks = self._tracks
        return AnalysisResult(
            bass=tracks['bass'].visual,
            mid=tracks['mid'].visual,
            high=tracks['high'].visual,
            overall_energy=tracks['overall'].visual,
            dominant_frequency=dominant_frequency(spectrum, self.frequency_mapper),
            beat=BeatFlags(**{name: tracks[name].beat for name in TRACKS}),
            impulse=Impulses(**{name: tracks[name].impulse for name in TRACKS}),
            bands=bands,
        )

    def baseline(self, band: str) -> float:
        return self._tracks[band].baseline

    # ------------------------------------------------------------------
    # Smoothing
    # ------------------------------------------------------------------
    def _decay_near_zero(self, value: float) -> float:
        """Quadratic roll-off below the noise floor, continuous at the floor.
        Kills low-level flicker on the visual track without a hard gate."""
        floor = self.config.smoothing.noise_floor
        if floor > 0 and value < floor:
            return value * value / floor
        return value

    # ------------------------------------------------------------------
    # Beat detection
    # ------------------------------------------------------------------
    def _detect_beats(self, sensitivity: float) -> None:
        beat_cfg = self.config.beat

        if self.phase is DetectorPhase.COOLDOWN:
            self._advance_phase()
            self._clear_beats()
            self._update_baselines(beat_cfg.baseline_rate)
            return

        if self.phase is DetectorPhase.WARMUP:
            self._advance_phase()
            self._update_baselines(beat_cfg.warmup_rate)
            self._clear_beats()
            if self.phase is DetectorPhase.ACTIVE:
                log_event("INFO", "Analyzer", "Baseline calibrated, beat detection enabled",
                          bass=f"{self._tracks['bass'].baseline:.4f}",
                          mid=f"{self._tracks['mid'].baseline:.4f}",
                          high=f"{self._tracks['high'].baseline:.4f}")
            return

        # A band that fired on the previous call keeps its baseline so the
        # beat peak does not drag the ambient estimate upward.
        self._update_baselines(beat_cfg.baseline_rate, skip_beating=True)

        for name in BANDS:
            track = self._tracks[name]
            thresholds = self.thresholds[name]
            deviation = (track.fast - track.baseline) * sensitivity
            track.beat = bool(deviation > thresholds.deviation and track.fast > thresholds.floor)

        bass = self._tracks['bass']
        self._tracks['overall'].beat = bass.beat

        if bass.beat:
            log_event("DEBUG", "BEAT", "Bass beat detected",
                      energy=f"{bass.fast:.4f}",
                      baseline=f"{bass.baseline:.4f}",
                      mid=self._tracks['mid'].beat,
                      high=self._tracks['high'].beat)
            if beat_cfg.cooldown_frames > 0:
                self.phase = DetectorPhase.COOLDOWN
                self.phase_remaining = int(beat_cfg.cooldown_frames)

    def _advance_phase(self) -> None:
        self.phase_remaining -= 1
        if self.phase_remaining <= 0:
            self.phase_remaining = 0
            self.phase = DetectorPhase.ACTIVE

    def _update_baselines(self, rate: float, skip_beating: bool = False) -> None:
        for name in BANDS:
            track = self._tracks[name]
            if skip_beating and track.beat:
                continue
            track.baseline = lerp(track.baseline, track.fast, rate)

    def _clear_beats(self) -> None:
        for track in self._tracks.values():
            track.beat = False

    def _update_impulses(self) -> None:
        decay = self.config.smoothing.impulse_decay
        for track in self._tracks.values():
            if track.beat:
                track.impulse = 1.0
            else:
                track.impulse *= decay

    def _record_history(self, energies: dict[str, float]) -> None:
        size = self._history.shape[1]
        if size == 0:
            return
        self._history[:, self._history_index] = [energies[name] for name in TRACKS]
        self._history_index = (self._history_index + 1) % size
