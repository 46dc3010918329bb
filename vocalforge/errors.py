"""Error taxonomy for the vocal repair engine.

Every error is reported to the caller; nothing in the engine retries.
Analysis helpers never raise these, they degrade to empty results.
"""
from __future__ import annotations


class VocalForgeError(Exception):
  """Base class for all engine errors."""


class DecodeError(VocalForgeError):
  """Raw bytes could not be decoded into an AudioBuffer."""


class InvalidBufferError(VocalForgeError):
  """A buffer with zero frames or zero channels was handed to the renderer."""


class RenderError(VocalForgeError):
  """Chain execution failed during an offline render."""
