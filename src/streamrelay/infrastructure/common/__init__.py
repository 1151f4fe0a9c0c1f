"""Common infrastructure utilities."""

from __future__ import annotations

from .retry_transport import RetryTransport, backoff_delay

__all__ = [
    "RetryTransport",
    "backoff_delay",
]
