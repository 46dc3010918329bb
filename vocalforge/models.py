"""Pydantic request/response models for the HTTP layer.

Knob values are not range-validated here: the engine clamps out-of-range
values instead of rejecting them.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from vocalforge.settings import AdvancedSettings, RepairSettings


class RepairSettingsModel(BaseModel):
    de_noise: Optional[float] = None
    de_click: Optional[float] = None
    de_reverb: Optional[float] = None
    pitch_correction: Optional[float] = None
    breath_control: Optional[float] = None
    vocal_fry: Optional[float] = None
    humanization: Optional[float] = None
    ai_intensity: Optional[float] = None

    def to_settings(self) -> RepairSettings:
        return RepairSettings.from_mapping(self.model_dump(exclude_none=True))


class AdvancedSettingsModel(BaseModel):
    spectral_resolution: Optional[int] = None
    temporal_precision: Optional[float] = None
    emotional_alignment: Optional[float] = None
    context_awareness: Optional[float] = None
    phase_coherence: Optional[float] = None

    def to_settings(self) -> AdvancedSettings:
        return AdvancedSettings.from_mapping(self.model_dump(exclude_none=True))


class SettingsDefaultsResponse(BaseModel):
    repair: Dict[str, float]
    advanced: Dict[str, float]


class LoudnessModel(BaseModel):
    integrated_lufs: float
    peak_dbfs: float


class AnalysisWindow(BaseModel):
    position_s: float
    vocal_characteristics: Dict[str, float]
    anomalies: List[Dict[str, Any]]


class AnalysisResponse(BaseModel):
    sample_rate: int
    channels: int
    duration: float
    fft_size: int
    loudness: LoudnessModel
    click_count: int
    sibilance_count: int
    recent_anomalies: List[Dict[str, Any]]
    windows: List[AnalysisWindow]
