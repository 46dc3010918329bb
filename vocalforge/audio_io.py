"""Audio buffer container plus decode / WAV encode collaborators.

Decoding goes through soundfile so any container libsndfile understands
(WAV, FLAC, OGG, AIFF, MP3 on recent builds) can be loaded. Encoding is
a hand-laid 16-bit PCM RIFF writer because the export format is fixed
byte for byte: 44-byte header, interleaved little-endian samples scaled
by 32767.
"""
from __future__ import annotations

import io
import struct
from dataclasses import dataclass

import numpy as np
import soundfile as sf

from .errors import DecodeError

WAV_HEADER_BYTES = 44
PCM16_SCALE = 32767.0


@dataclass(frozen=True, eq=False)
class AudioBuffer:
    """Immutable PCM audio.

    ``samples`` is always a read-only float32 array shaped
    ``(channels, frames)``. Mono 1-D input is promoted to one channel.
    """

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self) -> None:
        data = np.array(self.samples, dtype=np.float32, copy=True)
        if data.ndim == 1:
            data = data[np.newaxis, :]
        if data.ndim != 2:
            raise ValueError("Expected mono [N] or multichannel [C, N] samples")
        data.setflags(write=False)
        object.__setattr__(self, "samples", data)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))

    @property
    def channels(self) -> int:
        return int(self.samples.shape[0])

    @property
    def frames(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frames / float(self.sample_rate)

    def channel(self, index: int) -> np.ndarray:
        return self.samples[index]


def decode_audio(data: bytes) -> AudioBuffer:
    """Decode raw file bytes into an AudioBuffer.

    Raises:
        DecodeError: the bytes are empty or not a format libsndfile reads.
    """

    if not data:
        raise DecodeError("No audio data supplied")
    try:
        audio, sr = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
    except Exception as exc:
        raise DecodeError(f"Failed to read audio: {exc}") from exc

    # soundfile returns (frames, channels)
    return AudioBuffer(samples=audio.T, sample_rate=int(sr))


def encode_wav(buffer: AudioBuffer) -> bytes:
    """Serialise a buffer as a 16-bit PCM RIFF/WAVE byte string."""

    channels = buffer.channels
    sr = buffer.sample_rate
    data_bytes = buffer.frames * channels * 2

    header = struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_bytes,
        b"WAVE",
        b"fmt ",
        16,
        1,
        channels,
        sr,
        sr * channels * 2,
        channels * 2,
        16,
        b"data",
        data_bytes,
    )

    clamped = np.clip(np.nan_to_num(buffer.samples, nan=0.0), -1.0, 1.0)
    pcm = np.trunc(clamped.astype(np.float64) * PCM16_SCALE).astype("<i2")
    # interleave: frame-major, channel-minor
    return header + np.ascontiguousarray(pcm.T).tobytes()
