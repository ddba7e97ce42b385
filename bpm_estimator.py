import math
from collections import deque

import numpy as np

from config import TempoConfig
from logging_utils import log_event


class BPMEstimator:
    """Estimates tempo from the frame numbers of recorded beats.

    The frame counter is advanced by the host with tick() and is independent
    of how often the analyzer runs. BPM is derived from the mean spacing of
    the retained beats and the latest fps estimate; anything outside the
    plausible tempo range is reported as 0 (unknown).
    """

    def __init__(self, tempo: TempoConfig | None = None):
        self.tempo = tempo or TempoConfig()
        self._beat_frames: deque[float] = deque(maxlen=max(2, int(self.tempo.max_beats)))
        self.estimated_bpm: int = 0
        self.frame_count: int = 0

    @property
    def beat_frames(self) -> list[float]:
        return list(self._beat_frames)

    def tick(self) -> None:
        self.frame_count += 1

    def record_beat(self, frame_number: float, fps: float | None = None) -> int:
        """Record a beat at frame_number and return the updated estimate."""
        self._beat_frames.append(frame_number)
        self._recalculate(self.tempo.default_fps if fps is None else fps)
        return self.estimated_bpm

    def _recalculate(self, fps: float) -> None:
        if len(self._beat_frames) < self.tempo.min_beats:
            return

        # Clamp very low (or unknown) fps instead of falling back to a nominal rate
        if not fps >= self.tempo.min_fps:
            fps = self.tempo.min_fps

        intervals = np.diff(np.asarray(self._beat_frames, dtype=np.float64))
        avg_interval = float(np.mean(intervals))
        if avg_interval <= 0:
            return

        raw_bpm = 60.0 * fps / avg_interval
        if not math.isfinite(raw_bpm):
            self.estimated_bpm = 0
            return

        bpm = int(math.floor(raw_bpm + 0.5))
        if self.tempo.min_bpm <= bpm <= self.tempo.max_bpm:
            if bpm != self.estimated_bpm:
                log_event("DEBUG", "Tempo", "BPM updated", bpm=bpm,
                          interval=f"{avg_interval:.2f}f", fps=f"{fps:.1f}")
            self.estimated_bpm = bpm
        else:
            log_event("DEBUG", "Tempo", "Implausible tempo rejected", bpm=bpm,
                      interval=f"{avg_interval:.2f}f", fps=f"{fps:.1f}")
            self.estimated_bpm = 0
