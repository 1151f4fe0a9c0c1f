from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


class MediaType(str, Enum):
    MOVIE = "movie"
    TV = "tv"


class CandidateKind(str, Enum):
    MANIFEST = "manifest"
    DIRECT = "direct"


StrategyKind = Literal["fetch", "automation"]


@dataclass(frozen=True)
class MediaLocator:
    """Immutable description of the title/episode to extract."""

    media_type: MediaType
    external_id: str  # TMDB id, e.g. "550"

    # TV only
    season: int | None = None
    episode: int | None = None

    provider_hint: str | None = None  # e.g. "vidsrc"
    source_url: str | None = None  # explicit embed page, bypasses provider policy


@dataclass(frozen=True)
class Candidate:
    """A stream URL observed during extraction, not yet selected."""

    url: str
    kind: CandidateKind
    source_tag: str  # host family, e.g. "shadowlands", "cloudnestra"
    priority: int = 2  # 0 = authoritative master, 1 = other master, 2 = rest
    status_code: int | None = None
    observed_at: float = 0.0  # monotonic observation order
    needs_special_headers: bool = False


@dataclass(frozen=True)
class ScreenProfile:
    width: int
    height: int
    avail_width: int
    avail_height: int
    color_depth: int = 24
    pixel_depth: int = 24


@dataclass(frozen=True)
class Fingerprint:
    """Synthetic browser identity presented to upstream sites."""

    user_agent: str
    screen: ScreenProfile
    languages: tuple[str, ...]
    timezone: str
    platform: str  # navigator.platform, derived from the UA token
    gpu_vendor: str
    gpu_renderer: str
    hardware_concurrency: int
    device_memory: int

    @property
    def locale(self) -> str:
        return self.languages[0]


@dataclass
class RateLimitEntry:
    """Per-client admission state, mutated under the limiter lock.

    ``hits`` holds the admission times inside the current sliding window,
    oldest first.
    """

    client_key: str
    hits: deque[float] = field(default_factory=deque)
    blocked_until: float | None = None

    @property
    def request_count(self) -> int:
        return len(self.hits)

    @property
    def window_start(self) -> float | None:
        return self.hits[0] if self.hits else None

    def expire(self, now: float, window_seconds: float) -> None:
        """Drop admissions that slid out of the window ending at *now*."""
        while self.hits and now - self.hits[0] >= window_seconds:
            self.hits.popleft()

    def is_blocked(self, now: float) -> bool:
        return self.blocked_until is not None and now < self.blocked_until


@dataclass(frozen=True)
class ProxyRequest:
    target_url: str | None
    source_hint: str | None = None
    range_header: str | None = None
    user_agent: str | None = None
    client_key: str = "unknown"


@dataclass(frozen=True)
class ResolvedStream:
    url: str
    kind: CandidateKind
    source_tag: str
    needs_proxy_headers: bool = False

    # Diagnostics
    strategy: StrategyKind = "fetch"
    total_candidates: int = 1
    request_id: str | None = None
    trace: tuple[str, ...] = field(default_factory=tuple)
