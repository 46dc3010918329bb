"""Heuristic defect detection over one analysis frame.

- click: per-sample spike test, every interior sample is checked so one
  sustained transient can report several clicks in a frame;
- sibilance: mean energy of the 5-8 kHz region of the byte spectrum.
"""
from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Deque, Dict, Iterable, List, Literal, Union

import numpy as np

from .analysis import AnalysisFrame
from .features import _as_magnitudes, band_mean

CLICK_RATIO = 3.0
CLICK_FLOOR = 0.1
SIBILANCE_BAND = (120, 200)
SIBILANCE_THRESHOLD = 150.0


@dataclass(frozen=True)
class ClickAnomaly:
    position: float
    severity: float
    timestamp: float
    kind: Literal["click"] = field(default="click", init=False)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SibilanceAnomaly:
    intensity: float
    timestamp: float
    kind: Literal["sibilance"] = field(default="sibilance", init=False)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


Anomaly = Union[ClickAnomaly, SibilanceAnomaly]


def detect_clicks(time_data, timestamp: float) -> List[ClickAnomaly]:
    try:
        t = np.abs(np.asarray(time_data, dtype=np.float64).ravel())
    except (TypeError, ValueError):
        return []
    length = t.size
    if length < 3:
        return []

    cur, prev, nxt = t[1:-1], t[:-2], t[2:]
    with np.errstate(invalid="ignore"):
        mask = (cur > prev * CLICK_RATIO) & (cur > nxt * CLICK_RATIO) & (cur > CLICK_FLOOR)

    return [
        ClickAnomaly(position=i / length, severity=float(t[i]), timestamp=timestamp)
        for i in (np.flatnonzero(mask) + 1).tolist()
    ]


def detect_sibilance(freq_data, timestamp: float) -> List[SibilanceAnomaly]:
    mags = _as_magnitudes(freq_data)
    mean = band_mean(mags, *SIBILANCE_BAND)
    if mean > SIBILANCE_THRESHOLD:
        return [SibilanceAnomaly(intensity=mean / 255.0, timestamp=timestamp)]
    return []


def detect_anomalies(frame: AnalysisFrame) -> List[Anomaly]:
    """Clicks first (in sample order), then at most one sibilance event."""

    anomalies: List[Anomaly] = []
    anomalies.extend(detect_clicks(frame.time_data, frame.timestamp))
    anomalies.extend(detect_sibilance(frame.frequency_data, frame.timestamp))
    return anomalies


class AnomalyHistory:
    """Keeps only the most recent ``maxlen`` anomalies for display."""

    def __init__(self, maxlen: int = 5) -> None:
        self._items: Deque[Anomaly] = deque(maxlen=max(int(maxlen), 1))

    @property
    def maxlen(self) -> int:
        return int(self._items.maxlen or 0)

    def extend(self, anomalies: Iterable[Anomaly]) -> None:
        self._items.extend(anomalies)

    def clear(self) -> None:
        self._items.clear()

    def recent(self) -> List[Anomaly]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)
