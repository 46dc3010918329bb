"""Offline analysis used by the HTTP layer.

Runs a take through a fresh monitor chain window by window and
collects the same snapshots the live loop would publish.
"""
from __future__ import annotations

import logging
import time
from dataclasses import asdict
from typing import Any, Dict, List, Optional

import numpy as np

from vocalforge.audio_io import AudioBuffer
from vocalforge.dsp_engine.analysis import SpectralAnalyzer, measure_loudness
from vocalforge.dsp_engine.chain import build_monitor_chain
from vocalforge.dsp_engine.detection import AnomalyHistory, detect_anomalies
from vocalforge.dsp_engine.features import extract_vocal_features
from vocalforge.errors import InvalidBufferError
from vocalforge.settings import AdvancedSettings

logger = logging.getLogger("vocalforge.engine")


def analyze_buffer(
    buffer: AudioBuffer,
    advanced: Optional[AdvancedSettings] = None,
    hop: Optional[int] = None,
    history_size: int = 5,
    seed: Optional[int] = None,
) -> Dict[str, Any]:
    """Offline counterpart of the live loop.

    Plays ``buffer`` through a new monitor chain in ``hop``-frame blocks
    (default: half the analysis window) and analyses after every block.
    """

    if buffer.channels <= 0 or buffer.frames <= 0:
        raise InvalidBufferError("Cannot analyse an empty buffer")

    advanced = advanced or AdvancedSettings()
    sr = buffer.sample_rate
    chain = build_monitor_chain(sr, np.random.default_rng(seed))
    analyzer = SpectralAnalyzer(sr, fft_size=advanced.spectral_resolution)
    history = AnomalyHistory(history_size)
    step = int(hop) if hop and hop > 0 else analyzer.frequency_bin_count

    windows: List[Dict[str, Any]] = []
    click_count = 0
    sibilance_count = 0
    started = time.time()
    for start in range(0, buffer.frames, step):
        block = buffer.samples[:, start : start + step]
        analyzer.push(chain.process(block))
        frame = analyzer.capture(timestamp=started + start / float(sr))
        anomalies = detect_anomalies(frame)
        history.extend(anomalies)
        click_count += sum(1 for a in anomalies if a.kind == "click")
        sibilance_count += sum(1 for a in anomalies if a.kind == "sibilance")
        features = extract_vocal_features(frame.frequency_data, sr, frame.fft_size)
        windows.append(
            {
                "position_s": min(start + step, buffer.frames) / float(sr),
                "vocal_characteristics": features.as_dict(),
                "anomalies": [a.as_dict() for a in anomalies],
            }
        )

    loudness = measure_loudness(buffer.samples, sr)
    logger.info(
        "[ANALYZE] %d windows, %d clicks, %d sibilance events", len(windows), click_count, sibilance_count
    )
    return {
        "sample_rate": sr,
        "channels": buffer.channels,
        "duration": buffer.duration,
        "fft_size": analyzer.fft_size,
        "loudness": asdict(loudness),
        "click_count": click_count,
        "sibilance_count": sibilance_count,
        "recent_anomalies": [a.as_dict() for a in history.recent()],
        "windows": windows,
    }
