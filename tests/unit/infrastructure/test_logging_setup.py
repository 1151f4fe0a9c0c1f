"""Tests for the structlog/stdlib logging configuration."""

from __future__ import annotations

import structlog

from streamrelay.infrastructure.config import AppConfig
from streamrelay.infrastructure.logging.setup import (
    _shorten_urls,
    build_logging_config,
)


class TestBuildLoggingConfig:
    def test_level_applies_to_declared_loggers(self) -> None:
        cfg = build_logging_config(AppConfig(log_level="WARNING"))

        assert cfg["root"]["level"] == "WARNING"
        assert cfg["loggers"]["uvicorn"]["level"] == "WARNING"
        assert cfg["loggers"]["uvicorn.access"]["level"] == "WARNING"

    def test_noisy_loggers_quiet_unless_debug(self) -> None:
        info = build_logging_config(AppConfig(log_level="INFO"))
        debug = build_logging_config(AppConfig(log_level="DEBUG"))

        assert info["loggers"]["httpx"]["level"] == "WARNING"
        assert debug["loggers"]["httpx"]["level"] == "DEBUG"

    def test_renderer_follows_format(self) -> None:
        json_cfg = build_logging_config(AppConfig(environment="prod"))
        console_cfg = build_logging_config(AppConfig(environment="dev"))

        json_processors = json_cfg["formatters"]["structlog"]["processors"]
        console_processors = console_cfg["formatters"]["structlog"]["processors"]
        assert isinstance(json_processors[-1], structlog.processors.JSONRenderer)
        assert isinstance(console_processors[-1], structlog.dev.ConsoleRenderer)
        assert json_cfg["handlers"]["default"]["formatter"] == "structlog"


class TestShortenUrls:
    def test_long_urls_are_truncated(self) -> None:
        long_url = "https://tmstr2.shadowlandschronicles.com/pl/" + "A" * 1000 + "/master.m3u8"
        event = _shorten_urls(None, "info", {"event": "x", "url": long_url, "status": 200})

        assert len(event["url"]) == 243
        assert event["url"].endswith("...")
        assert event["status"] == 200

    def test_short_urls_untouched(self) -> None:
        event = _shorten_urls(None, "info", {"next_url": "https://cloudnestra.com/rcp/x"})
        assert event["next_url"] == "https://cloudnestra.com/rcp/x"
