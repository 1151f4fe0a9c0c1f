"""Per-domain browser profile directories with exclusive access."""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog

log = structlog.get_logger(__name__)

_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9]")


def profile_dir_name(domain: str) -> str:
    """``cloudnestra.com`` -> ``profile_cloudnestra_com``."""
    return "profile_" + _UNSAFE_RE.sub("_", domain.lower())


class ProfileRegistry:
    """Hands out one persistent profile directory per domain.

    A profile is a Chromium user-data dir and cannot be opened by two
    browsers at once, so each domain has its own ``asyncio.Lock``.
    Directories are created lazily on first use.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self._locks: dict[str, asyncio.Lock] = {}

    def path_for(self, domain: str) -> Path:
        return self.root / profile_dir_name(domain)

    def _lock_for(self, domain: str) -> asyncio.Lock:
        lock = self._locks.get(domain)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[domain] = lock
        return lock

    def is_busy(self, domain: str) -> bool:
        lock = self._locks.get(domain)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def acquire(self, domain: str) -> AsyncIterator[Path]:
        """Exclusive use of *domain*'s profile directory."""
        lock = self._lock_for(domain)
        async with lock:
            path = self.path_for(domain)
            await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)
            log.debug("profile_acquired", domain=domain, path=str(path))
            yield path
