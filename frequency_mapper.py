import math
from dataclasses import dataclass, field

import numpy as np

from config import SpectrumConfig


def _empty() -> np.ndarray:
    return np.zeros(0, dtype=np.float64)


@dataclass
class BandSplit:
    """Bins grouped into bass/mid/high. Neighbouring bands may share edge bins."""
    bass: np.ndarray = field(default_factory=_empty)
    mid: np.ndarray = field(default_factory=_empty)
    high: np.ndarray = field(default_factory=_empty)

    def as_dict(self) -> dict[str, list[float]]:
        return {
            'bass': self.bass.tolist(),
            'mid': self.mid.tolist(),
            'high': self.high.tolist(),
        }


def as_spectrum(frequency_data) -> np.ndarray:
    """Copy a magnitude frame (list, tuple, array) into a new 1-D float64 array.
    Band slices taken from it never alias the host's capture buffer."""
    if frequency_data is None:
        return _empty()
    return np.array(frequency_data, dtype=np.float64).ravel()


class FrequencyMapper:
    """Partitions a magnitude spectrum into bass/mid/high bin ranges.

    The bin width comes from the configured sample rate and FFT size, not from
    the length of the frame being split, so a short frame simply yields short
    (or empty) upper bands.
    """

    def __init__(self, spectrum: SpectrumConfig | None = None):
        self.spectrum = spectrum or SpectrumConfig()
        self.bin_size = (self.spectrum.sample_rate / 2.0) / (self.spectrum.fft_size / 2.0)
        self._ranges = (
            ('bass', 0.0, self.spectrum.bass_max_hz),
            ('mid', self.spectrum.bass_max_hz, self.spectrum.mid_max_hz),
            ('high', self.spectrum.mid_max_hz, self.spectrum.high_max_hz),
        )

    def split_bands(self, frequency_data) -> BandSplit:
        data = as_spectrum(frequency_data)
        return BandSplit(**{
            name: self._extract_range(data, low_hz, high_hz)
            for name, low_hz, high_hz in self._ranges
        })

    def bin_to_hz(self, index: int) -> float:
        return index * self.bin_size

    def _extract_range(self, data: np.ndarray, low_hz: float, high_hz: float) -> np.ndarray:
        n_bins = len(data)
        start_bin = math.floor(low_hz / self.bin_size)
        end_bin = min(math.ceil(high_hz / self.bin_size), n_bins - 1)
        if start_bin < n_bins and end_bin >= start_bin:
            return data[start_bin:end_bin + 1]
        return _empty()


def dominant_frequency(spectrum: np.ndarray, mapper: FrequencyMapper) -> float:
    """Hz of the strongest bin (first one on ties); 0.0 for an empty frame."""
    if len(spectrum) == 0:
        return 0.0
    return mapper.bin_to_hz(int(np.argmax(spectrum)))
