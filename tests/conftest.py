"""Shared test fixtures for the streamrelay test suite."""

from __future__ import annotations

import random

import pytest

from streamrelay.domain.entities import (
    Fingerprint,
    MediaLocator,
    MediaType,
    ScreenProfile,
)
from streamrelay.infrastructure.extraction.ranking import RankingPolicy

# ---------------------------------------------------------------------------
# Domain entity fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def movie_locator() -> MediaLocator:
    """Fight Club (TMDB 550)."""
    return MediaLocator(media_type=MediaType.MOVIE, external_id="550")


@pytest.fixture()
def tv_locator() -> MediaLocator:
    return MediaLocator(
        media_type=MediaType.TV, external_id="1399", season=1, episode=2
    )


@pytest.fixture()
def fingerprint() -> Fingerprint:
    return Fingerprint(
        user_agent=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
        ),
        screen=ScreenProfile(
            width=1920, height=1080, avail_width=1920, avail_height=1040
        ),
        languages=("en-US", "en"),
        timezone="America/New_York",
        platform="Win32",
        gpu_vendor="Google Inc. (NVIDIA)",
        gpu_renderer="ANGLE (NVIDIA GeForce GTX 1660 Ti Direct3D11 vs_5_0 ps_5_0)",
        hardware_concurrency=8,
        device_memory=8,
    )


# ---------------------------------------------------------------------------
# Infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def policy() -> RankingPolicy:
    return RankingPolicy()


@pytest.fixture()
def rng() -> random.Random:
    return random.Random(1337)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
