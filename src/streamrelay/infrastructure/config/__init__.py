from __future__ import annotations

from .load import load_config
from .schema import AppConfig, EnvOverrides, ExtractionConfig, GatewayConfig

__all__ = [
    "AppConfig",
    "EnvOverrides",
    "ExtractionConfig",
    "GatewayConfig",
    "load_config",
]
