"""Environment-driven engine configuration.

Values are read once from ``VOCALFORGE_*`` environment variables so the
service can be tuned per deployment without code changes. Anything that
is missing or unparsable falls back to the defaults below.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

logger = logging.getLogger("vocalforge.config")

DEFAULT_LIVE_FFT_SIZE = 4096
DEFAULT_TICK_HZ = 60.0
DEFAULT_ANOMALY_HISTORY = 5
DEFAULT_CORS_ORIGINS = ("http://localhost:3000",)


@dataclass(frozen=True)
class EngineConfig:
    live_fft_size: int = DEFAULT_LIVE_FFT_SIZE
    tick_hz: float = DEFAULT_TICK_HZ
    anomaly_history: int = DEFAULT_ANOMALY_HISTORY
    render_seed: Optional[int] = None
    cors_origins: Tuple[str, ...] = DEFAULT_CORS_ORIGINS


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("[CONFIG] Ignoring non-integer %s=%r", name, raw)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("[CONFIG] Ignoring non-numeric %s=%r", name, raw)
        return default


@lru_cache(maxsize=1)
def load_config() -> EngineConfig:
    """Return the process-wide configuration.

    Tests that tweak the environment should call ``load_config.cache_clear()``.
    """

    origins_raw = os.getenv("VOCALFORGE_CORS_ORIGINS")
    if origins_raw:
        origins = tuple(o.strip() for o in origins_raw.split(",") if o.strip())
    else:
        origins = DEFAULT_CORS_ORIGINS

    fft_size = _env_int("VOCALFORGE_LIVE_FFT_SIZE", DEFAULT_LIVE_FFT_SIZE) or DEFAULT_LIVE_FFT_SIZE
    history = _env_int("VOCALFORGE_ANOMALY_HISTORY", DEFAULT_ANOMALY_HISTORY) or DEFAULT_ANOMALY_HISTORY

    tick_hz = _env_float("VOCALFORGE_TICK_HZ", DEFAULT_TICK_HZ)
    if tick_hz <= 0.0:
        tick_hz = DEFAULT_TICK_HZ

    return EngineConfig(
        live_fft_size=max(int(fft_size), 32),
        tick_hz=tick_hz,
        anomaly_history=max(int(history), 1),
        render_seed=_env_int("VOCALFORGE_RENDER_SEED", None),
        cors_origins=origins,
    )
