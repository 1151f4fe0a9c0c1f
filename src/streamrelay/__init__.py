"""Embed-chain stream extraction and HLS gateway."""

__version__ = "0.1.0"
