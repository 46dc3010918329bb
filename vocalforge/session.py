"""Live monitoring session.

A session plays the rendered buffer through the long-lived monitor chain
on a periodic tick (display cadence, not audio rate). Each tick:

1. pushes the next block through the monitor chain and on to the sink;
2. feeds the analyzer tap and captures a frame;
3. runs anomaly detection and feature extraction;
4. overwrites ``latest`` with a fresh snapshot (stale ones are dropped).

Live knob moves mutate monitor-chain stages under the same lock a tick
holds, so a tick never sees a half-applied update.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import numpy as np
from scipy.signal import resample_poly

from vocalforge.audio_io import AudioBuffer, decode_audio, encode_wav
from vocalforge.config import EngineConfig, load_config
from vocalforge.dsp_engine.analysis import AnalysisFrame, SpectralAnalyzer
from vocalforge.dsp_engine.chain import apply_realtime_change, build_monitor_chain
from vocalforge.dsp_engine.detection import Anomaly, AnomalyHistory, detect_anomalies
from vocalforge.dsp_engine.features import VocalFeatures, extract_vocal_features
from vocalforge.dsp_engine.renderer import Renderer, RenderReport
from vocalforge.errors import InvalidBufferError
from vocalforge.settings import AdvancedSettings, RepairSettings, normalize_knob_name

logger = logging.getLogger("vocalforge.session")

DEFAULT_SAMPLE_RATE = 44100

Sink = Callable[[np.ndarray], None]
SnapshotListener = Callable[["AnalysisSnapshot"], None]


@dataclass(frozen=True, eq=False)
class AnalysisSnapshot:
    frame: AnalysisFrame
    anomalies: List[Anomaly]
    recent_anomalies: List[Anomaly]
    features: VocalFeatures
    position_s: float

    def as_dict(self, include_arrays: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "timestamp": self.frame.timestamp,
            "position_s": self.position_s,
            "fft_size": self.frame.fft_size,
            "anomalies": [a.as_dict() for a in self.anomalies],
            "recent_anomalies": [a.as_dict() for a in self.recent_anomalies],
            "vocal_characteristics": self.features.as_dict(),
        }
        if include_arrays:
            out["frequency_data"] = self.frame.frequency_data.tolist()
            out["waveform_data"] = self.frame.time_data.tolist()
        return out


def conform_sample_rate(buffer: AudioBuffer, sr: int) -> AudioBuffer:
    """Resample a decoded buffer onto the session rate (polyphase)."""

    if buffer.sample_rate == sr or buffer.frames == 0:
        return buffer
    gcd = int(np.gcd(buffer.sample_rate, sr))
    up = sr // gcd
    down = buffer.sample_rate // gcd
    resampled = resample_poly(buffer.samples.astype(np.float64), up, down, axis=-1)
    return AudioBuffer(samples=resampled, sample_rate=sr)


class MonitorSession:
    """One operator session: loaded take, rendered take, monitor chain, analysis."""

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        repair_settings: Optional[RepairSettings] = None,
        advanced_settings: Optional[AdvancedSettings] = None,
        config: Optional[EngineConfig] = None,
        renderer: Optional[Renderer] = None,
        sink: Optional[Sink] = None,
        on_snapshot: Optional[SnapshotListener] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.config = config or load_config()
        self.sample_rate = int(sample_rate)
        self.repair_settings = repair_settings or RepairSettings()
        self.advanced_settings = advanced_settings or AdvancedSettings()
        self.renderer = renderer or Renderer(seed=self.config.render_seed)
        self.sink = sink
        self.on_snapshot = on_snapshot

        self.chain = build_monitor_chain(self.sample_rate, rng)
        self.analyzer = SpectralAnalyzer(self.sample_rate, fft_size=self.config.live_fft_size)
        self.history = AnomalyHistory(self.config.anomaly_history)

        self.original: Optional[AudioBuffer] = None
        self.processed: Optional[AudioBuffer] = None
        self.last_report: Optional[RenderReport] = None
        self.latest: Optional[AnalysisSnapshot] = None

        self._chain_lock = threading.Lock()
        self._task: Optional[asyncio.Task] = None
        self._playing: Optional[AudioBuffer] = None
        self._position = 0

    # -- loading and rendering -------------------------------------------

    def load_buffer(self, buffer: AudioBuffer) -> AudioBuffer:
        self.original = conform_sample_rate(buffer, self.sample_rate)
        return self.original

    async def load(self, data: bytes) -> AudioBuffer:
        """Decode, keep as the original take and render it with current settings.

        DecodeError propagates and leaves the session untouched.
        """

        buffer = decode_audio(data)
        self.load_buffer(buffer)
        return await self.render()

    async def render(self) -> AudioBuffer:
        """Re-render the original take; on failure the previous render stays."""

        if self.original is None:
            raise InvalidBufferError("No audio loaded")
        snapshot = self.repair_settings
        output, report = await self.renderer.render(self.original, snapshot)
        self.processed = output
        self.last_report = report
        return output

    def export_wav(self) -> bytes:
        if self.processed is None:
            raise InvalidBufferError("Nothing rendered to export")
        return encode_wav(self.processed)

    # -- settings ---------------------------------------------------------

    def update_repair_setting(self, name: str, value: float) -> bool:
        """Record a knob move; apply it live when the knob has a live rule.

        Returns whether the monitor chain changed.
        """

        self.repair_settings = self.repair_settings.with_value(name, value)
        clamped = getattr(self.repair_settings, normalize_knob_name(name))
        with self._chain_lock:
            return apply_realtime_change(self.chain, name, clamped)

    def apply_advanced_settings(self, settings: AdvancedSettings) -> None:
        self.advanced_settings = settings
        with self._chain_lock:
            self.analyzer.fft_size = settings.spectral_resolution
        logger.info("[LIVE] analyzer window -> %d", self.analyzer.fft_size)

    # -- playback ---------------------------------------------------------

    @property
    def is_playing(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def frames_per_tick(self) -> int:
        return max(1, int(round(self.sample_rate / self.config.tick_hz)))

    @property
    def position_s(self) -> float:
        return self._position / float(self.sample_rate)

    def start_playback(self) -> None:
        """Arm playback without scheduling ticks (drive with ``tick()``)."""

        if self.processed is None:
            raise InvalidBufferError("Nothing rendered to play")
        with self._chain_lock:
            self.chain.reset()
            self.analyzer.reset()
        self.history.clear()
        self._playing = self.processed
        self._position = 0

    def tick(self) -> Optional[AnalysisSnapshot]:
        """Advance playback by one tick. Returns None once the take has ended."""

        buffer = self._playing
        if buffer is None or self._position >= buffer.frames:
            self._playing = None
            return None

        start = self._position
        stop = min(start + self.frames_per_tick, buffer.frames)
        block = buffer.samples[:, start:stop]

        with self._chain_lock:
            out = self.chain.process(block)
            self.analyzer.push(out)
            frame = self.analyzer.capture(timestamp=time.time())
        self._position = stop

        if self.sink is not None:
            self.sink(out)

        anomalies = detect_anomalies(frame)
        self.history.extend(anomalies)
        snapshot = AnalysisSnapshot(
            frame=frame,
            anomalies=anomalies,
            recent_anomalies=self.history.recent(),
            features=extract_vocal_features(frame.frequency_data, frame.sample_rate, frame.fft_size),
            position_s=self.position_s,
        )
        self.latest = snapshot
        if self.on_snapshot is not None:
            self.on_snapshot(snapshot)
        return snapshot

    async def _run(self) -> None:
        interval = 1.0 / self.config.tick_hz
        try:
            while self.tick() is not None:
                await asyncio.sleep(interval)
        except Exception:
            # sink or listener failure ends playback
            self._playing = None
            logger.exception("[LIVE] playback aborted at %.2fs", self.position_s)
            return
        logger.info("[LIVE] playback ended at %.2fs", self.position_s)

    async def play(self) -> None:
        if self.is_playing:
            return
        self.start_playback()
        self._task = asyncio.create_task(self._run())
        logger.info("[LIVE] playback started (%d frames/tick)", self.frames_per_tick)

    async def stop(self) -> None:
        """Stop playback; no tick runs after this returns."""

        task, self._task = self._task, None
        self._playing = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("[LIVE] playback stopped at %.2fs", self.position_s)

    async def toggle_playback(self) -> bool:
        if self.is_playing:
            await self.stop()
        else:
            await self.play()
        return self.is_playing
