"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "streamrelay",
    "environment": "dev",
    "http": {
        "timeout_seconds": 10.0,
    },
    "automation": {
        "headless": True,
        "timeout_ms": 30_000,
        "max_sessions": 2,
        "delay_min_ms": 500,
        "delay_max_ms": 3000,
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "state": {
        "dir": "./.state/streamrelay",
        "cookie_jar_enabled": True,
    },
    "extraction": {
        "default_provider": "vidsrc",
        "request_timeout_seconds": 90.0,
        "hop_timeout_seconds": 10.0,
    },
    "gateway": {
        "rate_limit_window_seconds": 60.0,
        "rate_limit_max_requests": 100,
        "rate_limit_block_seconds": 300.0,
        "max_retries": 3,
        "base_delay_seconds": 1.0,
        "backoff_factor": 2.0,
        "max_delay_seconds": 10.0,
    },
}
