"""
Tests for impulse and waveshaper curve synthesis.
"""
import numpy as np
import pytest

from vocalforge.dsp_engine.impulses import (
    CURVE_SAMPLES,
    ambience_impulse,
    decaying_noise_impulse,
    dereverb_impulse,
    humanized_curve,
    saturation_curve,
)


class TestDecayingNoiseImpulse:

    def test_ambience_length_and_channels(self):
        ir = ambience_impulse(44100, np.random.default_rng(0))
        assert ir.shape == (2, 22050)
        assert ir.dtype == np.float32

    def test_squared_ramp_envelope_bounds_values(self):
        n = 22050
        ir = decaying_noise_impulse(0.5, 44100, 0.1, "squared", np.random.default_rng(1))
        env = (1.0 - np.arange(n) / n) ** 2 * 0.1
        assert np.all(np.abs(ir) <= env[np.newaxis, :] + 1e-7)
        # tail has decayed to almost nothing
        assert np.max(np.abs(ir[:, -100:])) < 1e-5

    def test_dereverb_matches_formula(self):
        intensity = 0.5
        sr = 44100
        n = int(0.2 * sr)
        ir = dereverb_impulse(intensity, sr, np.random.default_rng(3))

        noise = np.random.default_rng(3).uniform(-1.0, 1.0, size=(2, n))
        env = np.exp(-np.arange(n) / (n * 0.1))
        expected = (noise * env * intensity * -0.3).astype(np.float32)

        assert ir.shape == (2, 8820)
        np.testing.assert_allclose(ir, expected, rtol=1e-6, atol=1e-9)

    def test_dereverb_zero_intensity_allocates_nothing(self):
        assert dereverb_impulse(0.0, 44100, np.random.default_rng(0)) is None

    def test_same_seed_same_impulse(self):
        a = ambience_impulse(8000, np.random.default_rng(42))
        b = ambience_impulse(8000, np.random.default_rng(42))
        assert np.array_equal(a, b)

    def test_unknown_decay_law_rejected(self):
        with pytest.raises(ValueError):
            decaying_noise_impulse(0.1, 8000, 1.0, "linear", np.random.default_rng(0))


class TestSaturationCurve:

    def test_default_curve_shape(self):
        curve = saturation_curve()
        assert curve.shape == (CURVE_SAMPLES,)
        # x = 0 sits exactly at N/2
        assert curve[CURVE_SAMPLES // 2] == 0.0
        assert curve[0] == pytest.approx(np.tanh(-0.7) * 0.95, rel=1e-6)
        assert np.max(np.abs(curve)) < 0.95

    def test_curve_is_monotonic(self):
        assert np.all(np.diff(saturation_curve()) >= 0.0)

    @pytest.mark.parametrize("h", [0.0, 0.5, 1.0])
    def test_humanized_curve_formula(self, h):
        curve = humanized_curve(h)
        drive = 0.3 + h * 0.4
        ceiling = 0.9 + h * 0.1
        assert curve[0] == pytest.approx(np.tanh(-drive) * ceiling, rel=1e-6)

    def test_humanization_is_clamped(self):
        assert np.array_equal(humanized_curve(3.0), humanized_curve(1.0))
