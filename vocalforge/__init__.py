"""Vocal Forge: vocal repair rendering and live spectral monitoring."""

__version__ = "0.1.0"
