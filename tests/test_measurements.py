"""
Tests for the measurement registry, SNR, PESQ and STOI.
"""

import numpy as np
import pytest

from listening_study.audio import AudioBuffer
from listening_study.measurements import MEASUREMENTS, get_measurements, pesq_score, snr, stoi_score


def buffer(samples, sample_rate=16000):
    return AudioBuffer(sample_rate=sample_rate, samples=samples)


def voiced(sample_rate, seconds=3.0):
    """Harmonic tone with a gliding pitch and a syllable-rate envelope."""
    t = np.arange(int(sample_rate * seconds)) / sample_rate
    f0 = 150 + 30 * np.sin(2 * np.pi * 0.7 * t)
    phase = 2 * np.pi * np.cumsum(f0) / sample_rate
    tone = sum(np.sin(k * phase) / k for k in range(1, 20))
    signal = tone * 0.5 * (1 + np.sin(2 * np.pi * 4 * t))
    return 0.5 * signal / np.max(np.abs(signal))


def with_noise(samples, level, seed=7):
    rng = np.random.default_rng(seed)
    return samples + rng.normal(0, level, len(samples))


class TestSNR:
    """Test global SNR."""

    def test_identical_signals_capped(self):
        """Test identical signals hit the upper cap."""
        ref = buffer(np.sin(np.linspace(0, 20, 1000)))
        assert snr(16000, ref, buffer(ref.samples.copy())) == 100.0

    def test_known_ratio(self):
        """Test a 10% constant offset on a unit signal is 20dB."""
        ref = buffer(np.ones(1000))
        deg = buffer(np.full(1000, 1.1))
        assert snr(16000, ref, deg) == pytest.approx(20.0, abs=1e-3)

    def test_lower_clip(self):
        """Test very noisy signals are clipped at -20dB."""
        ref = buffer(np.full(100, 0.001))
        deg = buffer(np.full(100, 0.9))
        assert snr(16000, ref, deg) == -20.0

    def test_trims_to_common_length(self):
        """Test the longer signal is truncated."""
        ref = buffer(np.ones(100))
        deg = buffer(np.concatenate([np.ones(100), np.full(50, 5.0)]))
        assert snr(16000, ref, deg) == 100.0

    def test_mono_mix(self):
        """Test multi-channel buffers are mixed down before measuring."""
        ref = buffer([[1.0, 1.0], [1.0, 1.0]])
        deg = buffer([[1.2, 1.2], [1.0, 1.0]])
        assert snr(16000, ref, deg) == pytest.approx(20.0, abs=1e-3)

    def test_silent_reference_raises(self):
        """Test a silent reference is an error."""
        with pytest.raises(ValueError):
            snr(16000, buffer(np.zeros(100)), buffer(np.ones(100)))

    def test_does_not_mutate(self):
        """Test inputs are left untouched."""
        ref = buffer(np.ones(10))
        deg = buffer(np.full(10, 0.5))
        snr(16000, ref, deg)
        np.testing.assert_array_equal(ref.samples, np.ones((1, 10)))
        np.testing.assert_array_equal(deg.samples, np.full((1, 10), 0.5))


class TestPESQ:
    """Test wide-band PESQ."""

    def test_resamples_and_ranks_quality(self):
        """Test 48kHz input is scored and clean beats noisy."""
        clean = voiced(48000)
        ref = buffer(clean, 48000)

        identical = pesq_score(48000, ref, buffer(clean.copy(), 48000))
        noisy = pesq_score(48000, ref, buffer(with_noise(clean, 0.05), 48000))

        assert 1.0 <= noisy < identical <= 4.65
        assert identical > 4.0

    def test_native_rate(self):
        """Test 16kHz input needs no resampling."""
        clean = voiced(16000)
        value = pesq_score(16000, buffer(clean), buffer(with_noise(clean, 0.01)))
        assert 1.0 <= value <= 4.65


class TestSTOI:
    """Test short-time objective intelligibility."""

    def test_range_and_ranking(self):
        """Test STOI lies in [0, 1] and identical input scores highest."""
        clean = voiced(48000)
        ref = buffer(clean, 48000)

        identical = stoi_score(48000, ref, buffer(clean.copy(), 48000))
        noisy = stoi_score(48000, ref, buffer(with_noise(clean, 0.2), 48000))

        assert 0.0 <= noisy < identical <= 1.0 + 1e-6
        assert identical > 0.99


class TestRegistry:
    """Test measurement selection."""

    def test_registered_names(self):
        """Test the built-in measurements."""
        assert set(MEASUREMENTS) == {"SNR", "PESQ", "STOI"}

    def test_select(self):
        """Test selection keeps the requested order."""
        selected = get_measurements(["STOI", "SNR"])
        assert list(selected) == ["STOI", "SNR"]
        assert selected["SNR"] is snr

    def test_unknown(self):
        """Test unknown names are rejected."""
        with pytest.raises(KeyError):
            get_measurements(["SNR", "ViSQOL"])
