"""DSP stage library.

Every stage processes float blocks shaped ``(channels, frames)`` and keeps
whatever running state it needs (filter memories, envelope, convolution
tail) so the same stage works for a one-shot offline render and for
block-by-block live monitoring.

Parameters are clamped to their documented range on every write; a stage
never rejects a value.
"""
from __future__ import annotations

import math
from typing import Dict, List, Literal, Optional

import numpy as np
from pedalboard import PeakFilter
from scipy.signal import fftconvolve, sosfilt

FilterKind = Literal["highpass", "lowpass"]

BUTTERWORTH_Q = 1.0 / math.sqrt(2.0)
_EPS = 1e-9


def _clamp(value: float, lo: float, hi: float) -> float:
    v = float(value)
    if math.isnan(v):
        return lo
    return float(min(max(v, lo), hi))


def _as_block(x: np.ndarray) -> np.ndarray:
    block = np.asarray(x, dtype=np.float32)
    if block.ndim == 1:
        block = block[np.newaxis, :]
    return block


class Stage:
    """Base class: a named DSP unit with one input and one output."""

    kind = "stage"

    def __init__(self, name: str, sr: int) -> None:
        self.name = name
        self.sr = int(sr)

    @property
    def nyquist(self) -> float:
        return self.sr * 0.5

    def process(self, x: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def reset(self) -> None:
        """Clear running state; parameters are left untouched."""

    def params(self) -> Dict[str, float]:
        return {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, params={self.params()})"


class LowFrequencyOscillator:
    """Sine LFO used as a parameter modulation source, not a serial stage."""

    RATE_RANGE = (0.0, 20.0)
    DEPTH_RANGE = (0.0, 1.0)

    def __init__(self, rate_hz: float = 0.2, depth: float = 0.0) -> None:
        self._rate_hz = 0.0
        self._depth = 0.0
        self.rate_hz = rate_hz
        self.depth = depth

    @property
    def rate_hz(self) -> float:
        return self._rate_hz

    @rate_hz.setter
    def rate_hz(self, value: float) -> None:
        self._rate_hz = _clamp(value, *self.RATE_RANGE)

    @property
    def depth(self) -> float:
        return self._depth

    @depth.setter
    def depth(self, value: float) -> None:
        self._depth = _clamp(value, *self.DEPTH_RANGE)

    def values(self, start_frame: int, frames: int, sr: int) -> np.ndarray:
        """Modulation offsets for ``frames`` samples starting at ``start_frame``."""

        if self._depth == 0.0 or frames <= 0:
            return np.zeros(max(frames, 0), dtype=np.float64)
        t = (start_frame + np.arange(frames, dtype=np.float64)) / float(sr)
        return self._depth * np.sin(2.0 * np.pi * self._rate_hz * t)

    def params(self) -> Dict[str, float]:
        return {"rate_hz": self._rate_hz, "depth": self._depth}


class GainStage(Stage):
    """Scalar gain, optionally modulated by registered LFOs."""

    kind = "gain"
    GAIN_RANGE = (0.0, 10.0)

    def __init__(self, name: str, sr: int, gain: float = 1.0) -> None:
        super().__init__(name, sr)
        self._gain = 1.0
        self.gain = gain
        self._modulators: List[LowFrequencyOscillator] = []
        self._position = 0

    @property
    def gain(self) -> float:
        return self._gain

    @gain.setter
    def gain(self, value: float) -> None:
        self._gain = _clamp(value, *self.GAIN_RANGE)

    @property
    def modulators(self) -> List[LowFrequencyOscillator]:
        return list(self._modulators)

    def add_modulator(self, lfo: LowFrequencyOscillator) -> None:
        self._modulators.append(lfo)

    def process(self, x: np.ndarray) -> np.ndarray:
        block = _as_block(x)
        n = block.shape[-1]
        if not self._modulators:
            self._position += n
            if self._gain == 1.0:
                return block
            return (block * self._gain).astype(np.float32)

        # audio-rate gain curve: base value plus every modulation offset
        curve = np.full(n, self._gain, dtype=np.float64)
        for lfo in self._modulators:
            curve += lfo.values(self._position, n, self.sr)
        self._position += n
        return (block * curve[np.newaxis, :]).astype(np.float32)

    def reset(self) -> None:
        self._position = 0

    def params(self) -> Dict[str, float]:
        return {"gain": self._gain}


class BiquadFilterStage(Stage):
    """Second-order Butterworth highpass / lowpass (RBJ cookbook biquad).

    Filter memories survive cutoff changes so live sweeps stay smooth.
    """

    kind = "biquad"
    MIN_CUTOFF_HZ = 10.0

    def __init__(self, name: str, sr: int, filter_type: FilterKind, cutoff_hz: float) -> None:
        super().__init__(name, sr)
        if filter_type not in ("highpass", "lowpass"):
            raise ValueError(f"Unsupported filter type: {filter_type}")
        self.filter_type = filter_type
        self._cutoff_hz = self.MIN_CUTOFF_HZ
        self._sos = np.zeros((1, 6))
        self._zi: Optional[np.ndarray] = None
        self.cutoff_hz = cutoff_hz

    @property
    def cutoff_hz(self) -> float:
        return self._cutoff_hz

    @cutoff_hz.setter
    def cutoff_hz(self, value: float) -> None:
        self._cutoff_hz = _clamp(value, self.MIN_CUTOFF_HZ, self.nyquist * 0.999)
        self._sos = self._design()

    @property
    def sos(self) -> np.ndarray:
        return self._sos

    def _design(self) -> np.ndarray:
        w0 = 2.0 * np.pi * self._cutoff_hz / self.sr
        cos_w0 = np.cos(w0)
        alpha = np.sin(w0) / (2.0 * BUTTERWORTH_Q)

        if self.filter_type == "lowpass":
            b0 = (1.0 - cos_w0) / 2.0
            b1 = 1.0 - cos_w0
            b2 = (1.0 - cos_w0) / 2.0
        else:
            b0 = (1.0 + cos_w0) / 2.0
            b1 = -(1.0 + cos_w0)
            b2 = (1.0 + cos_w0) / 2.0
        a0 = 1.0 + alpha
        a1 = -2.0 * cos_w0
        a2 = 1.0 - alpha

        return np.array([[b0 / a0, b1 / a0, b2 / a0, 1.0, a1 / a0, a2 / a0]], dtype=np.float64)

    def process(self, x: np.ndarray) -> np.ndarray:
        block = _as_block(x)
        channels = block.shape[0]
        if self._zi is None or self._zi.shape[1] != channels:
            self._zi = np.zeros((self._sos.shape[0], channels, 2), dtype=np.float64)
        y, self._zi = sosfilt(self._sos, block.astype(np.float64), axis=-1, zi=self._zi)
        return y.astype(np.float32)

    def reset(self) -> None:
        self._zi = None

    def params(self) -> Dict[str, float]:
        return {"cutoff_hz": self._cutoff_hz}


class PeakingFilterStage(Stage):
    """Peaking EQ bell backed by pedalboard's PeakFilter.

    One plugin per channel, each fed a 1-D mono signal, keeps pedalboard's
    channel layout detection unambiguous even for single-frame blocks.
    """

    kind = "peaking"
    MIN_FREQ_HZ = 10.0
    Q_RANGE = (0.1, 40.0)
    GAIN_DB_RANGE = (-40.0, 40.0)

    def __init__(self, name: str, sr: int, center_hz: float, q: float, gain_db: float) -> None:
        super().__init__(name, sr)
        self._center_hz = _clamp(center_hz, self.MIN_FREQ_HZ, self.nyquist * 0.999)
        self._q = _clamp(q, *self.Q_RANGE)
        self._gain_db = _clamp(gain_db, *self.GAIN_DB_RANGE)
        self._plugins: List[PeakFilter] = []

    def _make_plugin(self) -> PeakFilter:
        return PeakFilter(cutoff_frequency_hz=self._center_hz, gain_db=self._gain_db, q=self._q)

    def _sync(self) -> None:
        for plugin in self._plugins:
            plugin.cutoff_frequency_hz = self._center_hz
            plugin.gain_db = self._gain_db
            plugin.q = self._q

    @property
    def center_hz(self) -> float:
        return self._center_hz

    @center_hz.setter
    def center_hz(self, value: float) -> None:
        self._center_hz = _clamp(value, self.MIN_FREQ_HZ, self.nyquist * 0.999)
        self._sync()

    @property
    def q(self) -> float:
        return self._q

    @q.setter
    def q(self, value: float) -> None:
        self._q = _clamp(value, *self.Q_RANGE)
        self._sync()

    @property
    def gain_db(self) -> float:
        return self._gain_db

    @gain_db.setter
    def gain_db(self, value: float) -> None:
        self._gain_db = _clamp(value, *self.GAIN_DB_RANGE)
        self._sync()

    def process(self, x: np.ndarray) -> np.ndarray:
        block = _as_block(x)
        if block.shape[-1] == 0:
            return block
        while len(self._plugins) < block.shape[0]:
            self._plugins.append(self._make_plugin())

        out = np.empty_like(block, dtype=np.float32)
        for ch in range(block.shape[0]):
            mono = np.ascontiguousarray(block[ch])
            out[ch] = self._plugins[ch].process(mono, float(self.sr), reset=False)
        return out

    def reset(self) -> None:
        for plugin in self._plugins:
            plugin.reset()

    def params(self) -> Dict[str, float]:
        return {"center_hz": self._center_hz, "q": self._q, "gain_db": self._gain_db}


class CompressorStage(Stage):
    """Feed-forward soft-knee compressor with linked-channel peak detection.

    Gain reduction is smoothed with separate attack / release one-pole
    followers. There is no makeup gain: the stage only ever attenuates.
    """

    kind = "compressor"
    THRESHOLD_RANGE = (-100.0, 0.0)
    KNEE_RANGE = (0.0, 40.0)
    RATIO_RANGE = (1.0, 20.0)
    TIME_RANGE = (0.0, 1.0)

    _RANGES = {
        "threshold_db": THRESHOLD_RANGE,
        "knee_db": KNEE_RANGE,
        "ratio": RATIO_RANGE,
        "attack_s": TIME_RANGE,
        "release_s": TIME_RANGE,
    }

    def __init__(
        self,
        name: str,
        sr: int,
        threshold_db: float = -24.0,
        knee_db: float = 30.0,
        ratio: float = 12.0,
        attack_s: float = 0.003,
        release_s: float = 0.25,
    ) -> None:
        super().__init__(name, sr)
        self.threshold_db = threshold_db
        self.knee_db = knee_db
        self.ratio = ratio
        self.attack_s = attack_s
        self.release_s = release_s
        self._env_db = 0.0

    def __setattr__(self, key: str, value) -> None:
        # every parameter write goes through the clamp
        if key in self._RANGES:
            value = _clamp(value, *self._RANGES[key])
        super().__setattr__(key, value)

    def _coeff(self, seconds: float) -> float:
        if seconds <= 0.0:
            return 0.0
        return float(np.exp(-1.0 / (seconds * self.sr)))

    def gain_reduction_db(self, level_db: np.ndarray) -> np.ndarray:
        """Static curve: positive dB of reduction for each input level."""

        slope = 1.0 - 1.0 / self.ratio
        over = level_db - self.threshold_db
        knee = self.knee_db
        if knee <= 0.0:
            return np.maximum(over, 0.0) * slope

        half = knee / 2.0
        return np.where(
            over <= -half,
            0.0,
            np.where(
                over >= half,
                slope * over,
                slope * ((over + half) ** 2) / (2.0 * knee),
            ),
        )

    def process(self, x: np.ndarray) -> np.ndarray:
        block = _as_block(x)
        n = block.shape[-1]
        if n == 0:
            return block

        detector = np.max(np.abs(block), axis=0).astype(np.float64)
        level_db = 20.0 * np.log10(np.maximum(detector, _EPS))
        target = self.gain_reduction_db(level_db)

        attack = self._coeff(self.attack_s)
        release = self._coeff(self.release_s)

        env = np.empty(n, dtype=np.float64)
        prev = self._env_db
        for i, g in enumerate(target):
            coeff = attack if g > prev else release
            prev = coeff * prev + (1.0 - coeff) * g
            env[i] = prev
        self._env_db = float(prev)

        gain = 10.0 ** (-env / 20.0)
        return (block * gain[np.newaxis, :]).astype(np.float32)

    def reset(self) -> None:
        self._env_db = 0.0

    def params(self) -> Dict[str, float]:
        return {
            "threshold_db": self.threshold_db,
            "knee_db": self.knee_db,
            "ratio": self.ratio,
            "attack_s": self.attack_s,
            "release_s": self.release_s,
        }


class ConvolutionStage(Stage):
    """FFT convolution with an impulse, or an exact passthrough without one.

    Output length always equals input length; in streaming use the tail
    beyond each block is carried into the next (overlap-add).
    """

    kind = "convolution"

    def __init__(self, name: str, sr: int, impulse: Optional[np.ndarray] = None) -> None:
        super().__init__(name, sr)
        self._impulse: Optional[np.ndarray] = None
        self._tail: Optional[np.ndarray] = None
        self.impulse = impulse

    @property
    def impulse(self) -> Optional[np.ndarray]:
        return self._impulse

    @impulse.setter
    def impulse(self, value: Optional[np.ndarray]) -> None:
        if value is None:
            self._impulse = None
        else:
            ir = np.asarray(value, dtype=np.float64)
            if ir.ndim == 1:
                ir = ir[np.newaxis, :]
            self._impulse = ir if ir.size > 0 else None
        self._tail = None

    @property
    def is_passthrough(self) -> bool:
        return self._impulse is None

    def process(self, x: np.ndarray) -> np.ndarray:
        block = _as_block(x)
        if self._impulse is None:
            return block

        channels, n = block.shape
        ir = self._impulse
        ir_len = ir.shape[-1]

        full = np.zeros((channels, n + ir_len - 1), dtype=np.float64)
        for ch in range(channels):
            full[ch] = fftconvolve(block[ch].astype(np.float64), ir[ch % ir.shape[0]])

        if self._tail is not None and self._tail.shape[0] == channels:
            full[:, : self._tail.shape[-1]] += self._tail

        self._tail = full[:, n:].copy()
        return full[:, :n].astype(np.float32)

    def reset(self) -> None:
        self._tail = None

    def params(self) -> Dict[str, float]:
        if self._impulse is None:
            return {"impulse_frames": 0.0}
        return {"impulse_frames": float(self._impulse.shape[-1]), "impulse_channels": float(self._impulse.shape[0])}


class WaveShaperStage(Stage):
    """Curve-lookup waveshaper with linear interpolation between entries.

    Assigning ``curve`` swaps the whole table in one attribute write.
    """

    kind = "waveshaper"

    def __init__(self, name: str, sr: int, curve: np.ndarray) -> None:
        super().__init__(name, sr)
        self._curve = np.zeros(2)
        self._index = np.arange(2, dtype=np.float64)
        self.curve = curve

    @property
    def curve(self) -> np.ndarray:
        return self._curve

    @curve.setter
    def curve(self, value: np.ndarray) -> None:
        table = np.asarray(value, dtype=np.float64).ravel()
        if table.size < 2:
            raise ValueError("Waveshaper curve needs at least two entries")
        # publish index and table together
        self._curve, self._index = table, np.arange(table.size, dtype=np.float64)

    def process(self, x: np.ndarray) -> np.ndarray:
        block = _as_block(x)
        curve, index = self._curve, self._index
        v = (curve.size - 1) / 2.0 * (block.astype(np.float64) + 1.0)
        return np.interp(v, index, curve).astype(np.float32)

    def params(self) -> Dict[str, float]:
        c = self._curve
        return {"curve_size": float(c.size), "curve_min": float(c.min()), "curve_max": float(c.max())}
