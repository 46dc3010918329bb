"""
Tests for settings snapshots and environment configuration.
"""
import dataclasses

import pytest

from vocalforge.config import EngineConfig, load_config
from vocalforge.settings import (
    REPAIR_KNOBS,
    AdvancedSettings,
    RepairSettings,
    nearest_power_of_two,
    normalize_knob_name,
)


class TestRepairSettings:

    def test_defaults(self):
        assert RepairSettings().as_dict() == {
            "de_noise": 0.3,
            "de_click": 0.5,
            "de_reverb": 0.2,
            "pitch_correction": 0.1,
            "breath_control": 0.2,
            "vocal_fry": 0.1,
            "humanization": 0.7,
            "ai_intensity": 0.6,
        }

    def test_values_are_clamped(self):
        s = RepairSettings(de_noise=1.5, de_click=-0.2, de_reverb=float("nan"))
        assert s.de_noise == 1.0
        assert s.de_click == 0.0
        assert s.de_reverb == 0.0

    def test_snapshot_is_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            RepairSettings().de_noise = 0.9

    def test_with_value_returns_new_snapshot(self):
        base = RepairSettings()
        moved = base.with_value("deReverb", 2.0)
        assert moved.de_reverb == 1.0
        assert base.de_reverb == 0.2
        assert moved != base

    def test_with_value_unknown_knob(self):
        with pytest.raises(KeyError):
            RepairSettings().with_value("loudness", 0.5)

    def test_from_mapping_accepts_both_spellings(self):
        s = RepairSettings.from_mapping({"deNoise": 0.9, "humanization": 0.1, "bogus": 1.0, "de_click": None})
        assert s.de_noise == 0.9
        assert s.humanization == 0.1
        assert s.de_click == 0.5

    def test_equal_snapshots_hash_equal(self):
        assert hash(RepairSettings(de_noise=0.4)) == hash(RepairSettings(de_noise=0.4))

    def test_knob_names(self):
        assert len(REPAIR_KNOBS) == 8
        assert normalize_knob_name("aiIntensity") == "ai_intensity"
        assert normalize_knob_name("de_noise") == "de_noise"


class TestAdvancedSettings:

    def test_defaults(self):
        a = AdvancedSettings()
        assert a.spectral_resolution == 2048
        assert (a.temporal_precision, a.emotional_alignment, a.context_awareness, a.phase_coherence) == (
            0.95,
            0.8,
            0.7,
            0.9,
        )

    def test_resolution_rounded(self):
        assert AdvancedSettings(spectral_resolution=2500).spectral_resolution == 2048
        assert AdvancedSettings(spectral_resolution=7000).spectral_resolution == 8192

    def test_reserved_knobs_clamped(self):
        assert AdvancedSettings(phase_coherence=3.0).phase_coherence == 1.0

    def test_from_mapping(self):
        a = AdvancedSettings.from_mapping({"spectralResolution": 1024, "temporalPrecision": 0.5})
        assert a.spectral_resolution == 1024
        assert a.temporal_precision == 0.5


@pytest.mark.parametrize(
    "value,expected",
    [(1, 32), (32, 32), (100, 128), (4096, 4096), (5000, 4096), (6200, 8192), (1e9, 32768), ("junk", 2048)],
)
def test_nearest_power_of_two(value, expected):
    assert nearest_power_of_two(value) == expected


class TestLoadConfig:

    @pytest.fixture(autouse=True)
    def _fresh_cache(self):
        load_config.cache_clear()
        yield
        load_config.cache_clear()

    def test_defaults(self, monkeypatch):
        for name in (
            "VOCALFORGE_LIVE_FFT_SIZE",
            "VOCALFORGE_TICK_HZ",
            "VOCALFORGE_ANOMALY_HISTORY",
            "VOCALFORGE_RENDER_SEED",
            "VOCALFORGE_CORS_ORIGINS",
        ):
            monkeypatch.delenv(name, raising=False)
        assert load_config() == EngineConfig()

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("VOCALFORGE_LIVE_FFT_SIZE", "1024")
        monkeypatch.setenv("VOCALFORGE_TICK_HZ", "30")
        monkeypatch.setenv("VOCALFORGE_ANOMALY_HISTORY", "8")
        monkeypatch.setenv("VOCALFORGE_RENDER_SEED", "99")
        monkeypatch.setenv("VOCALFORGE_CORS_ORIGINS", "http://a.test, http://b.test")
        config = load_config()
        assert config.live_fft_size == 1024
        assert config.tick_hz == 30.0
        assert config.anomaly_history == 8
        assert config.render_seed == 99
        assert config.cors_origins == ("http://a.test", "http://b.test")

    def test_bad_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("VOCALFORGE_TICK_HZ", "fast")
        monkeypatch.setenv("VOCALFORGE_RENDER_SEED", "abc")
        monkeypatch.setenv("VOCALFORGE_ANOMALY_HISTORY", "-4")
        config = load_config()
        assert config.tick_hz == 60.0
        assert config.render_seed is None
        assert config.anomaly_history == 1
