"""
Tests for offline window-by-window analysis.
"""
import numpy as np
import pytest

from vocalforge.audio_io import AudioBuffer
from vocalforge.engine import analyze_buffer
from vocalforge.errors import InvalidBufferError
from vocalforge.settings import AdvancedSettings


def test_default_hop_is_half_window(mono_buffer):
    report = analyze_buffer(mono_buffer, AdvancedSettings(spectral_resolution=1024), seed=0)
    assert report["fft_size"] == 1024
    assert len(report["windows"]) == int(np.ceil(mono_buffer.frames / 512))


def test_counts_match_window_anomalies(sr):
    x = np.random.default_rng(1).uniform(-2.0, 2.0, size=(1, sr // 2)).astype(np.float32)
    report = analyze_buffer(AudioBuffer(samples=x, sample_rate=sr), AdvancedSettings(spectral_resolution=512), seed=0)
    kinds = [a["kind"] for w in report["windows"] for a in w["anomalies"]]
    assert report["click_count"] == kinds.count("click")
    assert report["sibilance_count"] == kinds.count("sibilance")


def test_history_size_bounds_recent(sr):
    x = np.zeros((1, sr // 2), dtype=np.float32)
    x[0, 100::256] = 0.9
    report = analyze_buffer(
        AudioBuffer(samples=x, sample_rate=sr), AdvancedSettings(spectral_resolution=512), history_size=2, seed=0
    )
    assert len(report["recent_anomalies"]) <= 2


def test_seeded_analysis_is_repeatable(stereo_buffer):
    a = analyze_buffer(stereo_buffer, seed=4)
    b = analyze_buffer(stereo_buffer, seed=4)
    assert [w["vocal_characteristics"] for w in a["windows"]] == [w["vocal_characteristics"] for w in b["windows"]]


def test_empty_buffer_rejected(sr):
    with pytest.raises(InvalidBufferError):
        analyze_buffer(AudioBuffer(samples=np.zeros((1, 0), dtype=np.float32), sample_rate=sr))
