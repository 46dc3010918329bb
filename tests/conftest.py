import numpy as np
import pytest

from vocalforge.audio_io import AudioBuffer, encode_wav
from vocalforge.config import EngineConfig


def make_vocal_like(sr: int, seconds: float, channels: int = 1, seed: int = 7) -> np.ndarray:
    """Harmonic tone around 220 Hz with a little noise, shape (channels, frames)."""
    rng = np.random.default_rng(seed)
    n = int(sr * seconds)
    t = np.arange(n) / sr
    tone = 0.3 * np.sin(2 * np.pi * 220.0 * t) + 0.1 * np.sin(2 * np.pi * 440.0 * t)
    tone += 0.05 * np.sin(2 * np.pi * 3300.0 * t)
    out = np.stack([tone + 0.01 * rng.standard_normal(n) for _ in range(channels)], axis=0)
    return out.astype(np.float32)


@pytest.fixture
def sr():
    return 16000


@pytest.fixture
def mono_buffer(sr):
    return AudioBuffer(samples=make_vocal_like(sr, 0.25, channels=1), sample_rate=sr)


@pytest.fixture
def stereo_buffer(sr):
    return AudioBuffer(samples=make_vocal_like(sr, 0.25, channels=2), sample_rate=sr)


@pytest.fixture
def wav_bytes(mono_buffer):
    return encode_wav(mono_buffer)


@pytest.fixture
def live_config():
    return EngineConfig(live_fft_size=256, tick_hz=100.0, anomaly_history=3, render_seed=11)
