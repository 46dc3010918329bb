"""
Tests for vocal feature extraction from byte spectra.
"""
import numpy as np
import pytest

from vocalforge.dsp_engine.features import (
    VocalFeatures,
    band_edges,
    bin_frequency,
    extract_vocal_features,
)


def test_fundamental_from_single_peak():
    f = np.zeros(2048, dtype=np.uint8)
    f[40] = 200
    features = extract_vocal_features(f, 44100, 4096)
    assert features.fundamental_frequency_hz == pytest.approx(40 * 44100 / (2 * 4096))
    assert features.fundamental_frequency_hz == pytest.approx(215.33, abs=0.01)


def test_fundamental_search_stays_in_vocal_band():
    f = np.zeros(2048, dtype=np.uint8)
    f[3] = 255
    f[150] = 255
    f[60] = 10
    assert extract_vocal_features(f, 44100, 4096).fundamental_frequency_hz == pytest.approx(
        bin_frequency(60, 44100, 4096)
    )


def test_first_maximum_wins_ties():
    f = np.zeros(2048, dtype=np.uint8)
    f[20] = 90
    f[70] = 90
    assert extract_vocal_features(f, 48000, 4096).fundamental_frequency_hz == pytest.approx(
        bin_frequency(20, 48000, 4096)
    )


def test_centroid_uses_every_bin():
    f = np.zeros(1024, dtype=np.uint8)
    f[10] = 100
    f[500] = 100
    features = extract_vocal_features(f, 44100, 2048)
    expected = (bin_frequency(10, 44100, 2048) + bin_frequency(500, 44100, 2048)) / 2.0
    assert features.spectral_centroid_hz == pytest.approx(expected)
    assert features.brightness == pytest.approx(expected / 1000.0)


def test_presence_and_air_bands():
    f = np.zeros(1024, dtype=np.uint8)
    f[80:120] = 100
    f[200:256] = 50
    features = extract_vocal_features(f, 44100, 2048)
    assert features.presence == pytest.approx(100.0)
    assert features.air == pytest.approx(50.0)


def test_silent_spectrum_is_all_zero():
    features = extract_vocal_features(np.zeros(1024, dtype=np.uint8), 44100, 2048)
    assert features == VocalFeatures()


def test_short_spectrum_scales_bands():
    f = np.zeros(128, dtype=np.uint8)
    f[40:60] = 80  # presence band scaled by 0.5
    assert extract_vocal_features(f, 8000, 256).presence == pytest.approx(80.0)


@pytest.mark.parametrize("bad", [None, "not a spectrum", [], [[1, 2], [3]]])
def test_malformed_input_gives_zeroed_features(bad):
    assert extract_vocal_features(bad, 44100, 2048) == VocalFeatures()


def test_invalid_rates_give_zeroed_features():
    f = np.full(1024, 100, dtype=np.uint8)
    assert extract_vocal_features(f, 0, 2048) == VocalFeatures()
    assert extract_vocal_features(f, 44100, 0) == VocalFeatures()


class TestBandEdges:

    def test_absolute_for_long_spectra(self):
        assert band_edges(1024, 120, 200) == (120, 200)

    def test_clipped_to_length(self):
        assert band_edges(256, 200, 300) == (200, 256)

    def test_scaled_for_short_spectra(self):
        assert band_edges(64, 80, 120) == (20, 30)
