"""Per-client admission control for the stream gateway."""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from streamrelay.domain.entities import RateLimitEntry

log = structlog.get_logger(__name__)

# How many checks between full sweeps of stale client entries.
_GC_INTERVAL = 256


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float  # seconds until the window (or block) ends
    retry_after: int = 0

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_after)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class SlidingWindowRateLimiter:
    """Sliding-log limiter with a block period, keyed by client address.

    A client is admitted while fewer than ``max_requests`` of its earlier
    admissions fall inside the last ``window_seconds``. The next request
    puts it in the blocked state for ``block_seconds``; the admission log
    itself never holds more than ``max_requests`` entries. Once the block
    ends the log is cleared and the client starts over.

    The table is process-local and guarded by an ``asyncio.Lock``; *clock*
    is injectable for tests.

    Usage::

        limiter = SlidingWindowRateLimiter(max_requests=100)
        decision = await limiter.hit("203.0.113.7")
        if not decision.allowed:
            ...  # 429 + decision.headers()
    """

    def __init__(
        self,
        *,
        window_seconds: float = 60.0,
        max_requests: int = 100,
        block_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.block_seconds = block_seconds
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = asyncio.Lock()
        self._checks = 0

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, client_key: str) -> RateLimitEntry | None:
        return self._entries.get(client_key)

    async def hit(self, client_key: str) -> RateLimitDecision:
        async with self._lock:
            now = self._clock()
            decision = self._hit_locked(client_key, now)
            self._checks += 1
            if self._checks >= _GC_INTERVAL:
                self._checks = 0
                self._evict(now)
        return decision

    def _hit_locked(self, client_key: str, now: float) -> RateLimitDecision:
        entry = self._entries.get(client_key)
        if entry is None:
            entry = self._entries[client_key] = RateLimitEntry(client_key=client_key)

        if entry.is_blocked(now):
            wait = entry.blocked_until - now  # type: ignore[operator]
            return self._reject(wait)

        if entry.blocked_until is not None:
            entry.blocked_until = None
            entry.hits.clear()

        entry.expire(now, self.window_seconds)

        if entry.request_count >= self.max_requests:
            entry.blocked_until = now + self.block_seconds
            log.warning(
                "gateway_rate_limited",
                client=client_key,
                limit=self.max_requests,
                block_seconds=self.block_seconds,
            )
            return self._reject(self.block_seconds)

        entry.hits.append(now)
        return RateLimitDecision(
            allowed=True,
            limit=self.max_requests,
            remaining=self.max_requests - entry.request_count,
            reset_after=max(0.0, entry.hits[0] + self.window_seconds - now),
        )

    def _reject(self, wait: float) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=False,
            limit=self.max_requests,
            remaining=0,
            reset_after=max(0.0, wait),
            retry_after=max(1, math.ceil(wait)),
        )

    def _evict(self, now: float) -> None:
        stale = []
        for key, e in self._entries.items():
            if e.is_blocked(now):
                continue
            e.expire(now, self.window_seconds)
            if not e.hits:
                stale.append(key)
        for key in stale:
            del self._entries[key]
        if stale:
            log.debug("gateway_rate_table_gc", evicted=len(stale), remaining=len(self._entries))
