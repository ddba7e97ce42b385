"""
beatlens - Audio Limiter
Soft-knee peak limiter that keeps sudden loud transients (hand claps, drops)
from driving visuals to whiteout.

- Below threshold: pass through, scaled by the current gain reduction
- Above threshold: tanh compression maps the excess into (0, headroom) where
  headroom = 1.0 - threshold, so output approaches but never reaches 1.0
- Gain reduction tightens instantly (fast attack) and recovers by a fixed
  step per call (slow release)
"""

import math
from typing import Mapping

from config import LimiterConfig
from logging_utils import log_event


LIMITED_BANDS = ('bass', 'mid', 'high', 'overall')
MIN_THRESHOLD = 0.01

# Largest float below 1.0; tanh saturates to exactly 1.0 for large inputs
_CEILING = math.nextafter(1.0, 0.0)


class AudioLimiter:
    def __init__(self, threshold: float = LimiterConfig.threshold,
                 release_rate: float = LimiterConfig.release_rate):
        self.threshold = max(threshold, MIN_THRESHOLD)
        self.release_rate = release_rate
        self.gain_reduction = 1.0

    @classmethod
    def from_config(cls, config: LimiterConfig) -> "AudioLimiter":
        return cls(threshold=config.threshold, release_rate=config.release_rate)

    def process(self, energy: float) -> float:
        """Limit a single energy value."""
        if energy <= 0.0:
            self._release()
            return 0.0

        if energy > self.threshold:
            compressed = self._compress(energy)
            self._attack(compressed / energy)
            return compressed

        self._release()
        return energy * self.gain_reduction

    def process_bands(self, bands: Mapping[str, float]) -> dict[str, float]:
        """Limit bass/mid/high/overall together.

        One gain reduction, driven by the loudest band, is applied to every
        band so a transient in one band ducks them all and keeps the balance
        between bands.
        """
        values = {name: float(bands.get(name, 0.0)) for name in LIMITED_BANDS}
        peak = max(values.values())

        if peak > self.threshold:
            self._attack(self._compress(peak) / peak)
        else:
            self._release()

        return {name: max(value * self.gain_reduction, 0.0) for name, value in values.items()}

    def reset(self) -> None:
        self.gain_reduction = 1.0

    def _compress(self, energy: float) -> float:
        headroom = 1.0 - self.threshold
        excess = energy - self.threshold
        compressed = self.threshold + math.tanh(excess / self.threshold) * headroom
        return min(compressed, _CEILING)

    def _attack(self, gain: float) -> None:
        if gain < self.gain_reduction:
            if self.gain_reduction >= 1.0:
                log_event("DEBUG", "Limiter", "Engaged", gain=f"{gain:.3f}")
            self.gain_reduction = gain

    def _release(self) -> None:
        self.gain_reduction = min(self.gain_reduction + self.release_rate, 1.0)
