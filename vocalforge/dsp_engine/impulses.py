"""Impulse and transfer-curve synthesis.

Pure helpers, no module state. Noise comes from an injected
``numpy.random.Generator`` so renders are reproducible under a seed.
"""
from __future__ import annotations

from typing import Literal, Optional

import numpy as np

DecayLaw = Literal["squared", "exponential"]

CURVE_SAMPLES = 65536
IMPULSE_CHANNELS = 2

AMBIENCE_DURATION_S = 0.5
AMBIENCE_SCALE = 0.1
DEREVERB_DURATION_S = 0.2
DEREVERB_SCALE = -0.3

DEFAULT_DRIVE = 0.7
DEFAULT_CEILING = 0.95


def decaying_noise_impulse(
  duration_s: float,
  sr: int,
  scale: float,
  decay: DecayLaw = "squared",
  rng: Optional[np.random.Generator] = None,
  channels: int = IMPULSE_CHANNELS,
) -> np.ndarray:
  """Uniform noise shaped by a decay envelope, shape ``(channels, N)``.

  - ``squared``: ``(1 - i/N) ** 2``
  - ``exponential``: ``exp(-i / (N * 0.1))``
  """
  rng = rng if rng is not None else np.random.default_rng()
  n = int(max(duration_s, 0.0) * max(int(sr), 0))
  if n <= 0:
    return np.zeros((channels, 0), dtype=np.float32)

  i = np.arange(n, dtype=np.float64)
  if decay == "squared":
    env = (1.0 - i / n) ** 2
  elif decay == "exponential":
    env = np.exp(-i / (n * 0.1))
  else:
    raise ValueError(f"Unsupported decay law: {decay}")

  noise = rng.uniform(-1.0, 1.0, size=(channels, n))
  return (noise * env[np.newaxis, :] * scale).astype(np.float32)


def ambience_impulse(sr: int, rng: Optional[np.random.Generator] = None) -> np.ndarray:
  """500 ms squared-ramp room tail for the monitor chain."""
  return decaying_noise_impulse(AMBIENCE_DURATION_S, sr, AMBIENCE_SCALE, "squared", rng)


def dereverb_impulse(
  intensity: float,
  sr: int,
  rng: Optional[np.random.Generator] = None,
) -> Optional[np.ndarray]:
  """Inverted 200 ms exponential tail, or None when ``intensity`` is 0.

  The negative scale subtracts ambience instead of adding it.
  """
  intensity = float(np.clip(intensity, 0.0, 1.0))
  if intensity <= 0.0:
    return None
  return decaying_noise_impulse(
    DEREVERB_DURATION_S, sr, intensity * DEREVERB_SCALE, "exponential", rng
  )


def saturation_curve(
  drive: float = DEFAULT_DRIVE,
  ceiling: float = DEFAULT_CEILING,
  samples: int = CURVE_SAMPLES,
) -> np.ndarray:
  """``tanh(x * drive) * ceiling`` sampled over ``x = (i - N/2) / (N/2)``."""
  samples = int(max(samples, 2))
  half = samples / 2.0
  x = (np.arange(samples, dtype=np.float64) - half) / half
  return (np.tanh(x * drive) * ceiling).astype(np.float32)


def humanized_curve(humanization: float, samples: int = CURVE_SAMPLES) -> np.ndarray:
  """Live waveshaper curve driven by the humanization knob."""
  h = float(np.clip(humanization, 0.0, 1.0))
  return saturation_curve(drive=0.3 + h * 0.4, ceiling=0.9 + h * 0.1, samples=samples)
