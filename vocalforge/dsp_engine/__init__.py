"""DSP engine for vocal repair.

Building blocks for the repair and monitor chains: impulse and curve
synthesis, the stage library, chain builders, the offline renderer, and
the analysis side (spectral acquisition, defect detection, vocal
features).
"""
from .analysis import AnalysisFrame, SpectralAnalyzer, measure_loudness
from .chain import ProcessingChain, apply_realtime_change, build_monitor_chain, build_repair_chain
from .detection import AnomalyHistory, ClickAnomaly, SibilanceAnomaly, detect_anomalies
from .features import VocalFeatures, extract_vocal_features
from .renderer import Renderer, RenderReport, render_offline

__all__ = [
  "AnalysisFrame",
  "SpectralAnalyzer",
  "measure_loudness",
  "ProcessingChain",
  "apply_realtime_change",
  "build_monitor_chain",
  "build_repair_chain",
  "AnomalyHistory",
  "ClickAnomaly",
  "SibilanceAnomaly",
  "detect_anomalies",
  "VocalFeatures",
  "extract_vocal_features",
  "Renderer",
  "RenderReport",
  "render_offline",
]
