"""Vocal descriptors from one byte-magnitude spectrum.

All band edges are absolute bin indices tuned for spectra of at least
256 bins. Shorter spectra get the same bands scaled by ``len / 256`` so
the relative band fractions hold. Nothing here raises: malformed input
produces zeroed features.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict

import numpy as np

REFERENCE_BINS = 256

FUNDAMENTAL_BAND = (5, 100)
PRESENCE_BAND = (80, 120)
AIR_BAND = (200, 256)


@dataclass(frozen=True)
class VocalFeatures:
    fundamental_frequency_hz: float = 0.0
    spectral_centroid_hz: float = 0.0
    brightness: float = 0.0
    presence: float = 0.0
    air: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def _as_magnitudes(freq_data) -> np.ndarray:
    try:
        arr = np.asarray(freq_data, dtype=np.float64).ravel()
    except (TypeError, ValueError):
        return np.zeros(0, dtype=np.float64)
    return np.nan_to_num(arr, nan=0.0, posinf=0.0, neginf=0.0)


def band_edges(length: int, lo: int, hi: int) -> tuple[int, int]:
    """Resolve a reference band onto a spectrum of ``length`` bins."""

    if length >= REFERENCE_BINS:
        return lo, min(hi, length)
    scale = length / float(REFERENCE_BINS)
    return int(round(lo * scale)), int(round(hi * scale))


def band_mean(magnitudes: np.ndarray, lo: int, hi: int) -> float:
    start, stop = band_edges(magnitudes.size, lo, hi)
    if stop <= start:
        return 0.0
    return float(magnitudes[start:stop].mean())


def bin_frequency(index, sample_rate: int, fft_size: int):
    """Frequency label used for every bin: ``i * sr / (2 * fft_size)``."""

    return index * sample_rate / (2.0 * fft_size)


def extract_vocal_features(freq_data, sample_rate: int, fft_size: int) -> VocalFeatures:
    mags = _as_magnitudes(freq_data)
    if mags.size == 0 or sample_rate <= 0 or fft_size <= 0:
        return VocalFeatures()

    # strict '>' scan from zero: an all-zero band reports bin 0 -> 0 Hz
    start, stop = band_edges(mags.size, *FUNDAMENTAL_BAND)
    fundamental_bin = 0
    max_amplitude = 0.0
    if stop > start:
        band = mags[start:stop]
        peak = int(np.argmax(band))
        if band[peak] > max_amplitude:
            max_amplitude = float(band[peak])
            fundamental_bin = start + peak
    fundamental = float(bin_frequency(fundamental_bin, sample_rate, fft_size))

    total = float(mags.sum())
    if total > 0.0:
        freqs = bin_frequency(np.arange(mags.size, dtype=np.float64), sample_rate, fft_size)
        centroid = float(np.dot(freqs, mags) / total)
    else:
        centroid = 0.0

    return VocalFeatures(
        fundamental_frequency_hz=fundamental,
        spectral_centroid_hz=centroid,
        brightness=centroid / 1000.0,
        presence=band_mean(mags, *PRESENCE_BAND),
        air=band_mean(mags, *AIR_BAND),
    )
