"""Spectral acquisition and loudness helpers.

The analyzer keeps the most recent ``fft_size`` mono samples from the
monitor tap and, on capture, returns byte-quantised magnitudes plus the
first (oldest) half of the window as time-domain data. It performs no
classification; detection and feature extraction live next door.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import numpy as np
import pyloudnorm as pyln

from vocalforge.settings import nearest_power_of_two

DEFAULT_FFT_SIZE = 2048
SMOOTHING_TIME_CONSTANT = 0.3
MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0


@dataclass(frozen=True, eq=False)
class AnalysisFrame:
  timestamp: float
  frequency_data: np.ndarray  # uint8, fft_size / 2 bins
  time_data: np.ndarray  # float32 in [-1, 1], oldest fft_size / 2 samples of the window
  sample_rate: int
  fft_size: int


@dataclass
class LoudnessStats:
  integrated_lufs: float
  peak_dbfs: float


def _blackman(n: int) -> np.ndarray:
  a = 0.16
  a0 = (1.0 - a) / 2.0
  a1 = 0.5
  a2 = a / 2.0
  k = np.arange(n, dtype=np.float64) / n
  return a0 - a1 * np.cos(2.0 * np.pi * k) + a2 * np.cos(4.0 * np.pi * k)


class SpectralAnalyzer:
  """Rolling-window FFT analyzer fed from a chain tap."""

  def __init__(
    self,
    sample_rate: int,
    fft_size: int = DEFAULT_FFT_SIZE,
    smoothing: float = SMOOTHING_TIME_CONSTANT,
  ) -> None:
    self.sample_rate = int(sample_rate)
    self.smoothing = float(np.clip(smoothing, 0.0, 1.0))
    self._fft_size = DEFAULT_FFT_SIZE
    self._ring = np.zeros(DEFAULT_FFT_SIZE, dtype=np.float32)
    self._smoothed = np.zeros(DEFAULT_FFT_SIZE // 2, dtype=np.float64)
    self._window = _blackman(DEFAULT_FFT_SIZE)
    self.fft_size = fft_size

  @property
  def fft_size(self) -> int:
    return self._fft_size

  @fft_size.setter
  def fft_size(self, value: int) -> None:
    size = nearest_power_of_two(value)
    if size == self._fft_size and self._ring.size == size:
      return
    self._fft_size = size
    self._ring = np.zeros(size, dtype=np.float32)
    self._smoothed = np.zeros(size // 2, dtype=np.float64)
    self._window = _blackman(size)

  @property
  def frequency_bin_count(self) -> int:
    return self._fft_size // 2

  def reset(self) -> None:
    self._ring[:] = 0.0
    self._smoothed[:] = 0.0

  def push(self, block: np.ndarray) -> None:
    """Append tapped audio (mono or ``(channels, frames)``), down-mixed to mono."""

    x = np.asarray(block, dtype=np.float32)
    mono = x.mean(axis=0) if x.ndim > 1 else x
    n = mono.shape[-1]
    if n == 0:
      return
    size = self._fft_size
    if n >= size:
      self._ring = mono[-size:].astype(np.float32, copy=True)
    else:
      self._ring = np.concatenate([self._ring[n:], mono.astype(np.float32)])

  def capture(self, timestamp: Optional[float] = None) -> AnalysisFrame:
    size = self._fft_size
    bins = size // 2

    spectrum = np.fft.rfft(self._ring.astype(np.float64) * self._window)[:bins]
    magnitude = np.abs(spectrum) / size
    tau = self.smoothing
    self._smoothed = tau * self._smoothed + (1.0 - tau) * magnitude

    with np.errstate(divide="ignore"):
      db = 20.0 * np.log10(self._smoothed)
    scaled = np.floor(255.0 / (MAX_DECIBELS - MIN_DECIBELS) * (db - MIN_DECIBELS))
    freq_bytes = np.clip(np.nan_to_num(scaled, nan=0.0, neginf=0.0), 0, 255).astype(np.uint8)

    return AnalysisFrame(
      timestamp=time.time() if timestamp is None else float(timestamp),
      frequency_data=freq_bytes,
      time_data=self._ring[:bins].copy(),
      sample_rate=self.sample_rate,
      fft_size=size,
    )


@lru_cache(maxsize=64)
def _meter_for_sr(sr: int) -> pyln.Meter:
  return pyln.Meter(sr)


def measure_loudness(x: np.ndarray, sr: int) -> LoudnessStats:
  """Integrated loudness plus sample peak of a ``(channels, frames)`` buffer."""
  mono = x.mean(axis=0) if x.ndim > 1 else x
  mono = mono.astype(np.float64)
  if mono.size == 0:
    return LoudnessStats(integrated_lufs=-120.0, peak_dbfs=-120.0)

  meter = _meter_for_sr(int(sr))
  try:
    integrated = float(meter.integrated_loudness(mono))
  except ValueError:
    # clip shorter than one gating block
    integrated = float("-inf")
  if not np.isfinite(integrated):
    # RMS-based approximation
    rms = float(np.sqrt(np.mean(np.square(mono)) + 1e-12))
    integrated = 20.0 * np.log10(max(rms, 1e-6))

  peak = float(np.max(np.abs(mono)) + 1e-9)
  return LoudnessStats(integrated_lufs=integrated, peak_dbfs=20.0 * np.log10(peak))
