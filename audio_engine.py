"""
beatlens - Audio Engine
Per-frame host loop: analyzes a magnitude frame, limits the band levels,
advances the frame clock and feeds bass beats to the tempo estimator.
The host supplies FFT frames and timestamps; capture happens elsewhere.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

from audio_analyzer import AnalysisResult, AudioAnalyzer, quantize_level
from audio_limiter import AudioLimiter
from bpm_estimator import BPMEstimator
from config import Config, clamp_sensitivity
from frame_counter import FrameCounter
from logging_utils import log_event, set_log_level


@dataclass
class BeatEvent:
    """Represents a detected bass beat"""
    frame_number: int         # Host frame counter value at the beat
    intensity: float          # Visual-track bass energy at beat time
    frequency: float          # Dominant frequency at beat time (Hz)
    bpm: int = 0              # Tempo estimate after recording this beat (0 = unknown)
    fps: int = 0              # Frame rate used for the estimate
    mid: bool = False         # Mid band fired on the same call
    high: bool = False        # High band fired on the same call


@dataclass
class FrameReport:
    """Everything the engine produced for one frame"""
    frame_number: int
    analysis: AnalysisResult
    limited: dict[str, float] = field(default_factory=dict)   # bass/mid/high/overall after limiting
    bpm: int = 0
    fps: int = 0

    def quantized_levels(self) -> dict[str, int]:
        """Limited levels as device bytes (0-255)."""
        return {name: quantize_level(value) for name, value in self.limited.items()}


class AudioEngine:
    """
    Owns one analyzer, limiter, tempo estimator and frame counter and runs
    them in a fixed order for every frame handed in by the host.
    """

    def __init__(self, config: Optional[Config] = None,
                 beat_callback: Optional[Callable[[BeatEvent], None]] = None):
        self.config = config or Config()
        self.beat_callback = beat_callback
        self.sensitivity = clamp_sensitivity(self.config.sensitivity)
        set_log_level(self.config.log_level)
        self._build_components()
        self._reset_session_stats()

    def _build_components(self) -> None:
        self.analyzer = AudioAnalyzer(self.config)
        self.limiter = AudioLimiter.from_config(self.config.limiter)
        self.bpm_estimator = BPMEstimator(self.config.tempo)
        self.frame_counter = FrameCounter()

    def reset(self) -> None:
        """Discard all detector, limiter and tempo state."""
        self._build_components()
        self._reset_session_stats()
        log_event("INFO", "AudioEngine", "State reset")

    def set_sensitivity(self, value: float) -> float:
        self.sensitivity = clamp_sensitivity(value)
        log_event("INFO", "AudioEngine", "Sensitivity updated", sensitivity=f"{self.sensitivity:.2f}")
        return self.sensitivity

    @property
    def bpm(self) -> int:
        return self.bpm_estimator.estimated_bpm

    def process_frame(self, frequency_data, timestamp_ms: Optional[float] = None) -> FrameReport:
        """Run one frame through the pipeline.

        timestamp_ms drives the FPS estimate; frames without a positive
        timestamp still advance the frame clock.
        """
        analysis = self.analyzer.analyze(frequency_data, self.sensitivity)
        limited = self.limiter.process_bands(analysis.levels())

        self.bpm_estimator.tick()
        if timestamp_ms is not None and timestamp_ms > 0:
            self.frame_counter.tick(timestamp_ms)
        frame_number = self.bpm_estimator.frame_count
        fps = self.frame_counter.current_fps

        if analysis.beat.bass:
            bpm = self.bpm_estimator.record_beat(frame_number, fps=float(fps))
            self._session_beat_count += 1
            if self.beat_callback is not None:
                self.beat_callback(BeatEvent(
                    frame_number=frame_number,
                    intensity=analysis.bass,
                    frequency=analysis.dominant_frequency,
                    bpm=bpm,
                    fps=fps,
                    mid=analysis.beat.mid,
                    high=analysis.beat.high,
                ))

        if self.frame_counter.report_ready:
            log_event("DEBUG", "AudioEngine", "Frame rate", fps=fps, bpm=self.bpm)
            self.frame_counter.clear_report()

        self._update_session_stats(analysis.overall_energy, self.limiter.gain_reduction)

        return FrameReport(
            frame_number=frame_number,
            analysis=analysis,
            limited=limited,
            bpm=self.bpm,
            fps=fps,
        )

    # ------------------------------------------------------------------
    # Session summary
    # ------------------------------------------------------------------
    def _reset_session_stats(self) -> None:
        self._session_frame_count = 0
        self._session_beat_count = 0
        self._session_energy_min: float | None = None
        self._session_energy_max: float | None = None
        self._session_energy_sum = 0.0
        self._session_gain_min = 1.0

    def _update_session_stats(self, energy: float, gain_reduction: float) -> None:
        self._session_frame_count += 1
        self._session_energy_sum += energy
        if self._session_energy_min is None or energy < self._session_energy_min:
            self._session_energy_min = energy
        if self._session_energy_max is None or energy > self._session_energy_max:
            self._session_energy_max = energy
        self._session_gain_min = min(self._session_gain_min, gain_reduction)

    def log_session_summary(self) -> None:
        """Log frame/beat counts and energy ranges for the session so far."""
        frames = self._session_frame_count
        if frames <= 0 or self._session_energy_min is None or self._session_energy_max is None:
            return

        mean_energy = self._session_energy_sum / frames
        log_event(
            "INFO",
            "Session",
            "Session summary",
            frames=str(frames),
            beats=str(self._session_beat_count),
            bpm=str(self.bpm),
            energy_min=f"{self._session_energy_min:.6f}",
            energy_max=f"{self._session_energy_max:.6f}",
            energy_mean=f"{mean_energy:.6f}",
            gain_min=f"{self._session_gain_min:.4f}",
        )
