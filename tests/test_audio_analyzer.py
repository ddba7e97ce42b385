import math
import unittest

import numpy as np

from audio_analyzer import AnalysisResult, AudioAnalyzer, DetectorPhase, quantize_level
from config import Config


N_BINS = 128
WARMUP_FRAMES = 30


def silence():
    return np.zeros(N_BINS)


def bass_hit():
    frame = np.zeros(N_BINS)
    frame[0:16] = 255
    return frame


def mid_only():
    # Bins 20..80 sit inside the mid band (10..86) and outside bass/high
    frame = np.zeros(N_BINS)
    frame[20:81] = 255
    return frame


class TestAudioAnalyzerShape(unittest.TestCase):
    def setUp(self):
        self.analyzer = AudioAnalyzer()

    def test_analyze_returns_result(self):
        result = self.analyzer.analyze([100, 150, 200])
        self.assertIsInstance(result, AnalysisResult)

    def test_as_dict_has_required_keys(self):
        result = self.analyzer.analyze([100, 150, 200]).as_dict()
        for key in ("bass", "mid", "high", "overall_energy", "dominant_frequency", "beat", "impulse", "bands"):
            self.assertIn(key, result)
        self.assertEqual(set(result["beat"]), {"overall", "bass", "mid", "high"})
        self.assertEqual(set(result["impulse"]), {"overall", "bass", "mid", "high"})
        self.assertEqual(set(result["bands"]), {"bass", "mid", "high"})

    def test_empty_frame_returns_zeroed_result(self):
        result = self.analyzer.analyze([])
        self.assertEqual(result.bass, 0.0)
        self.assertEqual(result.mid, 0.0)
        self.assertEqual(result.high, 0.0)
        self.assertEqual(result.overall_energy, 0.0)
        self.assertEqual(result.dominant_frequency, 0.0)
        self.assertFalse(any([result.beat.overall, result.beat.bass, result.beat.mid, result.beat.high]))
        self.assertEqual(
            [result.impulse.overall, result.impulse.bass, result.impulse.mid, result.impulse.high],
            [0.0, 0.0, 0.0, 0.0],
        )
        self.assertEqual(len(result.bands.bass), 0)

    def test_empty_frame_does_not_advance_warmup(self):
        self.analyzer.analyze([])
        self.assertEqual(self.analyzer.phase_remaining, WARMUP_FRAMES)

    def test_bands_contain_frequency_data(self):
        result = self.analyzer.analyze(np.full(N_BINS, 100))
        self.assertGreater(len(result.bands.bass), 0)
        self.assertGreater(len(result.bands.mid), 0)
        self.assertGreater(len(result.bands.high), 0)

    def test_bands_survive_reused_capture_buffer(self):
        buffer = np.full(N_BINS, 100.0)
        result = self.analyzer.analyze(buffer)
        buffer[:] = 0.0
        self.assertEqual(result.bands.bass.tolist(), [100.0] * 12)
        self.assertEqual(result.as_dict()["bands"]["mid"], [100.0] * len(result.bands.mid))

    def test_dominant_frequency_single_peak(self):
        frame = np.full(N_BINS, 10)
        frame[10] = 255
        result = self.analyzer.analyze(frame)
        self.assertAlmostEqual(result.dominant_frequency, 10 * 24000.0 / 1024.0, places=6)


class TestAudioAnalyzerEnergy(unittest.TestCase):
    def setUp(self):
        self.analyzer = AudioAnalyzer()

    def test_zero_input_produces_zero_energy(self):
        for _ in range(5):
            result = self.analyzer.analyze(np.zeros(256))
        self.assertEqual(result.overall_energy, 0.0)
        self.assertFalse(math.isnan(result.overall_energy))

    def test_full_scale_input_stays_bounded(self):
        for _ in range(60):
            result = self.analyzer.analyze(np.full(256, 255))
            self.assertFalse(math.isnan(result.overall_energy))
            self.assertGreaterEqual(result.overall_energy, 0.0)
            self.assertLessEqual(result.overall_energy, 1.6)
        self.assertAlmostEqual(result.overall_energy, 1.0, places=3)

    def test_constant_input_converges(self):
        frame = np.full(256, 100)
        previous = None
        deltas = []
        for _ in range(40):
            energy = self.analyzer.analyze(frame).overall_energy
            if previous is not None:
                deltas.append(abs(energy - previous))
            previous = energy
        self.assertLess(deltas[-1], 0.05)
        self.assertTrue(all(d < 0.05 for d in deltas[30:]))
        self.assertAlmostEqual(previous, 100 / 255.0, places=3)

    def test_visual_track_rises_gradually(self):
        frame = np.full(256, 255)
        first = self.analyzer.analyze(frame).overall_energy
        second = self.analyzer.analyze(frame).overall_energy
        # 30% of the way on the first call, 51% on the second
        self.assertAlmostEqual(first, 0.30, places=6)
        self.assertAlmostEqual(second, 0.51, places=6)

    def test_visual_track_decays_quadratically_near_zero(self):
        config = Config()
        config.smoothing.visual_alpha = 1.0
        analyzer = AudioAnalyzer(config)
        level = 0.03 * 255  # energy 0.03, under the 0.06 noise floor
        result = analyzer.analyze(np.full(64, level))
        self.assertAlmostEqual(result.overall_energy, 0.03 * 0.03 / 0.06, places=6)

    def test_high_frequency_input_raises_high_band(self):
        frame = np.zeros(N_BINS)
        frame[90:128] = 200
        for _ in range(10):
            result = self.analyzer.analyze(frame)
        self.assertGreater(result.high, result.bass)

    def test_low_frequency_input_raises_bass_band(self):
        for _ in range(10):
            result = self.analyzer.analyze(bass_hit())
        self.assertGreater(result.bass, result.high)

    def test_nan_input_propagates_without_raising(self):
        frame = np.full(N_BINS, 100.0)
        frame[5] = float("nan")
        result = self.analyzer.analyze(frame)
        self.assertTrue(math.isnan(result.overall_energy))
        self.assertFalse(result.beat.overall)

    def test_infinite_input_does_not_raise(self):
        frame = np.full(N_BINS, 100.0)
        frame[3] = float("inf")
        result = self.analyzer.analyze(frame)
        self.assertTrue(math.isinf(result.overall_energy))
        result = self.analyzer.analyze(frame)
        self.assertIsInstance(result.overall_energy, float)

    def test_history_buffer_rotates(self):
        for _ in range(44):
            self.analyzer.analyze(silence())
        self.assertEqual(self.analyzer._history_index, 1)
        self.assertEqual(self.analyzer._history.shape, (4, 43))


class TestAudioAnalyzerBeats(unittest.TestCase):
    def setUp(self):
        self.analyzer = AudioAnalyzer()

    def _warm_up(self, frames: int = 40):
        for _ in range(frames):
            self.analyzer.analyze(silence())

    def test_no_beats_during_warmup(self):
        self.assertIs(self.analyzer.phase, DetectorPhase.WARMUP)
        for i in range(WARMUP_FRAMES):
            frame = bass_hit() if i % 2 else silence()
            result = self.analyzer.analyze(frame)
            self.assertFalse(result.beat.overall)
            self.assertFalse(result.beat.bass)
        self.assertIs(self.analyzer.phase, DetectorPhase.ACTIVE)

    def test_bass_hit_after_silence_fires_beat(self):
        self._warm_up()
        fired_at = None
        for i in range(5):
            result = self.analyzer.analyze(bass_hit())
            if result.beat.bass:
                fired_at = i
                break
        self.assertIsNotNone(fired_at)
        self.assertTrue(result.beat.overall)
        self.assertEqual(result.impulse.bass, 1.0)
        self.assertEqual(result.impulse.overall, 1.0)

    def test_cooldown_blocks_refire(self):
        self._warm_up()
        result = self.analyzer.analyze(bass_hit())
        self.assertTrue(result.beat.overall)
        self.assertIs(self.analyzer.phase, DetectorPhase.COOLDOWN)

        for _ in range(3):
            result = self.analyzer.analyze(bass_hit())
            self.assertFalse(result.beat.overall)
            self.assertFalse(result.beat.bass)

        self.assertIs(self.analyzer.phase, DetectorPhase.ACTIVE)
        result = self.analyzer.analyze(bass_hit())
        self.assertTrue(result.beat.overall)

    def test_impulse_decays_after_beat(self):
        self._warm_up()
        self.analyzer.analyze(bass_hit())
        previous = 1.0
        for _ in range(6):
            impulse = self.analyzer.analyze(silence()).impulse.bass
            self.assertAlmostEqual(impulse, previous * 0.65, places=9)
            previous = impulse

    def test_overall_beat_follows_bass(self):
        self._warm_up()
        for i in range(30):
            frame = bass_hit() if i % 7 == 0 else silence()
            result = self.analyzer.analyze(frame)
            self.assertEqual(result.beat.overall, result.beat.bass)

    def test_mid_beat_does_not_start_cooldown(self):
        self._warm_up()
        result = self.analyzer.analyze(mid_only())
        self.assertTrue(result.beat.mid)
        self.assertFalse(result.beat.bass)
        self.assertFalse(result.beat.overall)
        self.assertEqual(result.impulse.mid, 1.0)
        self.assertEqual(result.impulse.overall, 0.0)
        self.assertIs(self.analyzer.phase, DetectorPhase.ACTIVE)

    def test_baseline_held_on_call_after_band_beat(self):
        self._warm_up()
        self.analyzer.analyze(mid_only())
        baseline_after_beat = self.analyzer.baseline("mid")
        self.analyzer.analyze(mid_only())
        self.assertEqual(self.analyzer.baseline("mid"), baseline_after_beat)

    def test_baseline_tracks_during_cooldown(self):
        self._warm_up()
        self.analyzer.analyze(bass_hit())
        before = self.analyzer.baseline("bass")
        self.analyzer.analyze(bass_hit())
        self.assertGreater(self.analyzer.baseline("bass"), before)

    def test_warmup_baseline_uses_warmup_rate(self):
        self.analyzer.analyze(bass_hit())
        fast = self.analyzer._tracks["bass"].fast
        self.assertAlmostEqual(fast, 0.45, places=9)
        self.assertAlmostEqual(self.analyzer.baseline("bass"), fast * 0.15, places=12)

    def test_active_baseline_uses_slow_rate(self):
        self._warm_up()
        before = self.analyzer.baseline("mid")
        self.analyzer.analyze(mid_only())
        fast = self.analyzer._tracks["mid"].fast
        self.assertAlmostEqual(self.analyzer.baseline("mid"), before + (fast - before) * 0.02, places=12)

    def test_cooldown_baseline_uses_slow_rate(self):
        self._warm_up()
        self.analyzer.analyze(bass_hit())
        self.assertIs(self.analyzer.phase, DetectorPhase.COOLDOWN)
        before = self.analyzer.baseline("bass")
        self.analyzer.analyze(bass_hit())
        fast = self.analyzer._tracks["bass"].fast
        self.assertAlmostEqual(self.analyzer.baseline("bass"), before + (fast - before) * 0.02, places=12)

    def test_low_sensitivity_suppresses_beat(self):
        self._warm_up()
        result = self.analyzer.analyze(bass_hit(), sensitivity=0.05)
        self.assertFalse(result.beat.bass)

    def test_floor_blocks_quiet_rise(self):
        self._warm_up()
        frame = np.zeros(N_BINS)
        frame[0:16] = 100  # bass energy ~0.39, fast track ~0.18 < 0.25 floor
        result = self.analyzer.analyze(frame)
        self.assertFalse(result.beat.bass)

    def test_zero_warmup_detects_immediately(self):
        config = Config()
        config.beat.warmup_frames = 0
        analyzer = AudioAnalyzer(config)
        self.assertIs(analyzer.phase, DetectorPhase.ACTIVE)
        self.assertTrue(analyzer.analyze(bass_hit()).beat.bass)

    def test_custom_thresholds_are_used(self):
        config = Config()
        config.beat.warmup_frames = 0
        config.beat.bass.floor = 0.9
        analyzer = AudioAnalyzer(config)
        self.assertFalse(analyzer.analyze(bass_hit()).beat.bass)


class TestQuantizeLevel(unittest.TestCase):
    def test_scales_and_rounds(self):
        self.assertEqual(quantize_level(0.0), 0)
        self.assertEqual(quantize_level(0.5), 128)
        self.assertEqual(quantize_level(1.0), 255)

    def test_clamps_out_of_range(self):
        self.assertEqual(quantize_level(1.4), 255)
        self.assertEqual(quantize_level(-0.2), 0)
        self.assertEqual(quantize_level(float("inf")), 255)

    def test_nan_is_zero(self):
        self.assertEqual(quantize_level(float("nan")), 0)

    def test_result_quantized_levels(self):
        result = AnalysisResult(bass=1.0, mid=0.5, high=0.0, overall_energy=2.0)
        self.assertEqual(result.quantized_levels(), {"bass": 255, "mid": 128, "high": 0, "overall": 255})


if __name__ == "__main__":
    unittest.main()
