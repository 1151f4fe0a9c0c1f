"""Synthetic browser fingerprints drawn from weighted pools.

``generate()`` is a pure function of its random source: the same seeded
``random.Random`` always yields the same fingerprint. The navigator
platform and the GPU pair are derived from the OS token inside the user
agent, so the identity never contradicts itself.
"""

from __future__ import annotations

import random
from typing import Sequence, TypeVar

from streamrelay.domain.entities import Fingerprint, ScreenProfile

T = TypeVar("T")

_SCREENS: tuple[tuple[int, int], ...] = (
    (1920, 1080),
    (1366, 768),
    (1440, 900),
    (1536, 864),
    (2560, 1440),
    (1680, 1050),
)
_TASKBAR_HEIGHT = 40

_LANGUAGE_SETS: tuple[tuple[str, ...], ...] = (
    ("en-US", "en"),
    ("en-GB", "en"),
    ("en-CA", "en"),
    ("en-AU", "en"),
    ("en-US", "en", "es"),
    ("en-US", "en", "fr"),
    ("en-US", "en", "de"),
)

_TIMEZONES: tuple[str, ...] = (
    "America/New_York",
    "America/Chicago",
    "America/Denver",
    "America/Los_Angeles",
    "America/Phoenix",
    "America/Detroit",
    "Europe/London",
    "Europe/Paris",
    "Europe/Berlin",
)

_CHROME_VERSIONS: tuple[int, ...] = tuple(range(120, 131))

# (UA platform token, OS family, weight)
_UA_PLATFORMS: tuple[tuple[str, str, float], ...] = (
    ("Windows NT 10.0; Win64; x64", "windows", 0.6),
    ("Windows NT 11.0; Win64; x64", "windows", 0.2),
    ("Macintosh; Intel Mac OS X 10_15_7", "mac", 0.15),
    ("X11; Linux x86_64", "linux", 0.05),
)

# OS family -> navigator.platform
NAVIGATOR_PLATFORMS: dict[str, str] = {
    "windows": "Win32",
    "mac": "MacIntel",
    "linux": "Linux x86_64",
}

# OS family -> (WebGL vendor, WebGL renderer) pairs
_GPU_PAIRS: dict[str, tuple[tuple[str, str], ...]] = {
    "windows": (
        (
            "Google Inc. (NVIDIA)",
            "ANGLE (NVIDIA GeForce GTX 1660 Ti Direct3D11 vs_5_0 ps_5_0)",
        ),
        (
            "Google Inc. (Intel)",
            "ANGLE (Intel(R) UHD Graphics 630 Direct3D11 vs_5_0 ps_5_0)",
        ),
        (
            "Google Inc. (AMD)",
            "ANGLE (AMD Radeon RX 580 Series Direct3D11 vs_5_0 ps_5_0)",
        ),
    ),
    "mac": (
        ("Intel Inc.", "Intel Iris OpenGL Engine"),
        ("AMD", "AMD Radeon Pro 5500M OpenGL Engine"),
        ("Apple Inc.", "Apple M1"),
    ),
    "linux": (
        ("NVIDIA Corporation", "NVIDIA GeForce GTX 1060 6GB/PCIe/SSE2"),
        ("Intel", "Mesa Intel(R) UHD Graphics 620 (KBL GT2)"),
    ),
}

_HARDWARE_CONCURRENCY: tuple[int, ...] = (2, 4, 6, 8, 12, 16)
_DEVICE_MEMORY: tuple[int, ...] = (2, 4, 8, 16, 32)


def _pick(rng: random.Random, items: Sequence[T]) -> T:
    return items[rng.randrange(len(items))]


def _weighted_platform(rng: random.Random) -> tuple[str, str]:
    total = sum(w for _, _, w in _UA_PLATFORMS)
    roll = rng.random() * total
    for token, family, weight in _UA_PLATFORMS:
        roll -= weight
        if roll <= 0:
            return token, family
    token, family, _ = _UA_PLATFORMS[0]
    return token, family


def os_family_from_user_agent(user_agent: str) -> str:
    """Map the UA platform token back to an OS family."""
    if "Windows NT" in user_agent:
        return "windows"
    if "Macintosh" in user_agent:
        return "mac"
    if "X11" in user_agent or "Linux" in user_agent:
        return "linux"
    return "windows"


def build_user_agent(platform_token: str, chrome_version: int) -> str:
    return (
        f"Mozilla/5.0 ({platform_token}) AppleWebKit/537.36 "
        f"(KHTML, like Gecko) Chrome/{chrome_version}.0.0.0 Safari/537.36"
    )


def generate(rng: random.Random | None = None) -> Fingerprint:
    """Draw one internally consistent fingerprint."""
    rng = rng or random.Random()  # noqa: S311

    token, family = _weighted_platform(rng)
    user_agent = build_user_agent(token, _pick(rng, _CHROME_VERSIONS))

    width, height = _pick(rng, _SCREENS)
    screen = ScreenProfile(
        width=width,
        height=height,
        avail_width=width,
        avail_height=height - _TASKBAR_HEIGHT,
    )
    gpu_vendor, gpu_renderer = _pick(rng, _GPU_PAIRS[family])

    return Fingerprint(
        user_agent=user_agent,
        screen=screen,
        languages=_pick(rng, _LANGUAGE_SETS),
        timezone=_pick(rng, _TIMEZONES),
        platform=NAVIGATOR_PLATFORMS[os_family_from_user_agent(user_agent)],
        gpu_vendor=gpu_vendor,
        gpu_renderer=gpu_renderer,
        hardware_concurrency=_pick(rng, _HARDWARE_CONCURRENCY),
        device_memory=_pick(rng, _DEVICE_MEMORY),
    )


class FingerprintPool:
    """Hands out fingerprints, optionally pinned per origin domain.

    With ``pin_per_domain=False`` every call returns a fresh identity.
    With pinning, repeated sessions against one domain present the same
    identity, which keeps persisted cookies and profiles plausible.
    """

    def __init__(
        self, *, pin_per_domain: bool = False, rng: random.Random | None = None
    ) -> None:
        self._pin = pin_per_domain
        self._rng = rng or random.Random()  # noqa: S311
        self._pinned: dict[str, Fingerprint] = {}

    def for_domain(self, domain: str) -> Fingerprint:
        if not self._pin:
            return generate(self._rng)
        fp = self._pinned.get(domain)
        if fp is None:
            fp = generate(self._rng)
            self._pinned[domain] = fp
        return fp
