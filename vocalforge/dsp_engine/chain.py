"""Processing chain value and the two chain builders.

A chain is an explicit, inspectable list of owned stages wired in series,
plus any parameter modulations (an LFO driving a gain parameter) that sit
beside the serial path. Two variants exist:

- monitor chain: built once per session, parameters mutated in place by
  live knob updates, output tapped by the spectral analyzer;
- repair chain: rebuilt from a RepairSettings snapshot for every offline
  render and discarded afterwards.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from vocalforge.settings import RepairSettings, clamp_unit, normalize_knob_name

from .impulses import ambience_impulse, dereverb_impulse, humanized_curve, saturation_curve
from .stages import (
    BiquadFilterStage,
    CompressorStage,
    ConvolutionStage,
    GainStage,
    LowFrequencyOscillator,
    PeakingFilterStage,
    Stage,
    WaveShaperStage,
)

logger = logging.getLogger("vocalforge.chain")

HUMANIZE_LFO_HZ = 0.2
HUMANIZE_DEPTH_SCALE = 0.02
MONITOR_HIGHPASS_HZ = 80.0
MONITOR_HIGHPASS_SPAN_HZ = 40.0

# Knobs with an in-place monitor-chain rule. Everything else waits for
# the next offline render.
LIVE_KNOBS = ("de_noise", "humanization")


@dataclass
class ParameterModulation:
    source: LowFrequencyOscillator
    target: str
    parameter: str = "gain"


@dataclass
class ProcessingChain:
    """Ordered series of stages with named input / output ports."""

    kind: str
    sr: int
    stages: List[Stage]
    modulations: List[ParameterModulation] = field(default_factory=list)
    tap: Optional[str] = None

    def __post_init__(self) -> None:
        names = [s.name for s in self.stages]
        if not names:
            raise ValueError("A processing chain needs at least one stage")
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate stage names in chain: {names}")

    @property
    def input(self) -> Stage:
        return self.stages[0]

    @property
    def output(self) -> Stage:
        return self.stages[-1]

    @property
    def stage_names(self) -> List[str]:
        return [s.name for s in self.stages]

    def stage(self, name: str) -> Stage:
        for s in self.stages:
            if s.name == name:
                return s
        raise KeyError(f"No stage named {name!r} in {self.kind} chain")

    def modulate(self, source: LowFrequencyOscillator, target: str, parameter: str = "gain") -> ParameterModulation:
        """Register ``source`` as an audio-rate offset on ``target.parameter``."""

        stage = self.stage(target)
        if not isinstance(stage, GainStage) or parameter != "gain":
            raise ValueError(f"Only gain parameters accept modulation, got {target}.{parameter}")
        stage.add_modulator(source)
        mod = ParameterModulation(source=source, target=target, parameter=parameter)
        self.modulations.append(mod)
        return mod

    def process(self, x: np.ndarray) -> np.ndarray:
        y = x
        for s in self.stages:
            y = s.process(y)
        return y

    def reset(self) -> None:
        for s in self.stages:
            s.reset()

    def describe(self) -> Dict[str, Dict[str, float]]:
        """Flat snapshot of every stage's parameters, keyed by stage name."""

        out: Dict[str, Dict[str, float]] = {s.name: s.params() for s in self.stages}
        for mod in self.modulations:
            out[f"{mod.target}.{mod.parameter}.lfo"] = mod.source.params()
        return out


def build_monitor_chain(sr: int, rng: Optional[np.random.Generator] = None) -> ProcessingChain:
    """Always-on playback chain feeding the analyzer tap."""

    stages: List[Stage] = [
        GainStage("input_gain", sr),
        BiquadFilterStage("highpass", sr, "highpass", MONITOR_HIGHPASS_HZ),
        BiquadFilterStage("lowpass", sr, "lowpass", 18000.0),
        ConvolutionStage("ambience", sr, ambience_impulse(sr, rng)),
        CompressorStage(
            "compressor", sr, threshold_db=-24.0, knee_db=30.0, ratio=3.0, attack_s=0.003, release_s=0.25
        ),
        PeakingFilterStage("de_esser", sr, center_hz=6000.0, q=4.0, gain_db=-6.0),
        WaveShaperStage("enhancer", sr, saturation_curve()),
        GainStage("output_gain", sr),
    ]
    return ProcessingChain(kind="monitor", sr=sr, stages=stages, tap="output_gain")


def build_repair_chain(
    settings: RepairSettings,
    sr: int,
    rng: Optional[np.random.Generator] = None,
) -> ProcessingChain:
    """Fresh render chain for one RepairSettings snapshot.

    Only the reverb-reduction impulse is allocated here, and only when
    ``de_reverb`` is above zero.
    """

    stages: List[Stage] = [
        GainStage("input_gain", sr),
        CompressorStage(
            "noise_gate",
            sr,
            threshold_db=-40.0 + settings.de_noise * 20.0,
            ratio=20.0,
            attack_s=0.001,
            release_s=0.1,
        ),
        CompressorStage(
            "click_remover",
            sr,
            threshold_db=-12.0 + settings.de_click * 10.0,
            ratio=10.0,
            attack_s=0.0001,
            release_s=0.001,
        ),
        ConvolutionStage("reverb_reducer", sr, dereverb_impulse(settings.de_reverb, sr, rng)),
        GainStage("output_gain", sr),
    ]
    chain = ProcessingChain(kind="repair", sr=sr, stages=stages)

    humanizer = LowFrequencyOscillator(rate_hz=HUMANIZE_LFO_HZ, depth=settings.humanization * HUMANIZE_DEPTH_SCALE)
    chain.modulate(humanizer, "output_gain")
    return chain


def apply_realtime_change(chain: ProcessingChain, parameter: str, value: float) -> bool:
    """Mutate monitor-chain stages in place for a live knob move.

    Returns True when the knob has a live rule. Knobs without one (de_reverb,
    pitch_correction, ...) are accepted and only take effect on the next
    offline render.
    """

    knob = normalize_knob_name(parameter)
    v = clamp_unit(value)

    if knob == "de_noise":
        highpass = chain.stage("highpass")
        if not isinstance(highpass, BiquadFilterStage):
            raise TypeError(f"Expected a biquad highpass, got {type(highpass).__name__}")
        highpass.cutoff_hz = MONITOR_HIGHPASS_HZ + v * MONITOR_HIGHPASS_SPAN_HZ
        logger.debug("[LIVE] de_noise=%.2f -> highpass %.1f Hz", v, highpass.cutoff_hz)
        return True

    if knob == "humanization":
        enhancer = chain.stage("enhancer")
        if not isinstance(enhancer, WaveShaperStage):
            raise TypeError(f"Expected a waveshaper enhancer, got {type(enhancer).__name__}")
        enhancer.curve = humanized_curve(v)
        logger.debug("[LIVE] humanization=%.2f -> enhancer curve swapped", v)
        return True

    logger.debug("[LIVE] %s has no live rule; applies on next render", knob)
    return False
