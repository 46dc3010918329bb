"""Repair and advanced settings snapshots.

Both snapshots are frozen so a render can never observe a knob changing
underneath it; the settings owner produces a new snapshot instead. Knob
values are clamped on construction, never rejected, which keeps live
slider updates glitch-free.
"""
from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping

REPAIR_KNOBS = (
    "de_noise",
    "de_click",
    "de_reverb",
    "pitch_correction",
    "breath_control",
    "vocal_fry",
    "humanization",
    "ai_intensity",
)

# The UI layer historically sends camelCase knob names.
_CAMEL_ALIASES = {
    "deNoise": "de_noise",
    "deClick": "de_click",
    "deReverb": "de_reverb",
    "pitchCorrection": "pitch_correction",
    "breathControl": "breath_control",
    "vocalFry": "vocal_fry",
    "humanization": "humanization",
    "aiIntensity": "ai_intensity",
    "spectralResolution": "spectral_resolution",
    "temporalPrecision": "temporal_precision",
    "emotionalAlignment": "emotional_alignment",
    "contextAwareness": "context_awareness",
    "phaseCoherence": "phase_coherence",
}

MIN_SPECTRAL_RESOLUTION = 32
MAX_SPECTRAL_RESOLUTION = 32768


def normalize_knob_name(name: str) -> str:
    """Map a camelCase knob name onto its snake_case field name."""

    return _CAMEL_ALIASES.get(name, name)


def clamp_unit(value: Any) -> float:
    """Clamp a knob value to [0, 1]; NaN and non-numbers become 0."""

    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(v):
        return 0.0
    return float(min(max(v, 0.0), 1.0))


def nearest_power_of_two(value: Any) -> int:
    """Round a window size to the nearest power of two in the supported range."""

    try:
        v = float(value)
    except (TypeError, ValueError):
        return AdvancedSettings.spectral_resolution
    if not math.isfinite(v) or v <= MIN_SPECTRAL_RESOLUTION:
        return MIN_SPECTRAL_RESOLUTION
    if v >= MAX_SPECTRAL_RESOLUTION:
        return MAX_SPECTRAL_RESOLUTION
    return int(2 ** round(math.log2(v)))


@dataclass(frozen=True)
class RepairSettings:
    de_noise: float = 0.3
    de_click: float = 0.5
    de_reverb: float = 0.2
    pitch_correction: float = 0.1
    breath_control: float = 0.2
    vocal_fry: float = 0.1
    humanization: float = 0.7
    ai_intensity: float = 0.6

    def __post_init__(self) -> None:
        for name in REPAIR_KNOBS:
            object.__setattr__(self, name, clamp_unit(getattr(self, name)))

    def with_value(self, name: str, value: float) -> "RepairSettings":
        """Return a new snapshot with one knob replaced."""

        field = normalize_knob_name(name)
        if field not in REPAIR_KNOBS:
            raise KeyError(f"Unknown repair setting: {name}")
        return dataclasses.replace(self, **{field: value})

    def as_dict(self) -> Dict[str, float]:
        return dataclasses.asdict(self)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None) -> "RepairSettings":
        """Build a snapshot from a loose mapping; unknown keys are ignored."""

        kwargs: Dict[str, Any] = {}
        for key, value in (values or {}).items():
            field = normalize_knob_name(key)
            if field in REPAIR_KNOBS and value is not None:
                kwargs[field] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class AdvancedSettings:
    """Advanced analysis knobs.

    Only ``spectral_resolution`` is wired (it sizes the analyzer window).
    The remaining four fields are reserved: they are validated and carried
    through snapshots but no stage reads them yet.
    """

    spectral_resolution: int = 2048
    temporal_precision: float = 0.95
    emotional_alignment: float = 0.8
    context_awareness: float = 0.7
    phase_coherence: float = 0.9

    def __post_init__(self) -> None:
        object.__setattr__(self, "spectral_resolution", nearest_power_of_two(self.spectral_resolution))
        for name in ("temporal_precision", "emotional_alignment", "context_awareness", "phase_coherence"):
            object.__setattr__(self, name, clamp_unit(getattr(self, name)))

    def as_dict(self) -> Dict[str, float]:
        return dataclasses.asdict(self)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None) -> "AdvancedSettings":
        names = {f.name for f in dataclasses.fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in (values or {}).items():
            field = normalize_knob_name(key)
            if field in names and value is not None:
                kwargs[field] = value
        return cls(**kwargs)
