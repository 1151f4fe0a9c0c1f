"""Per-domain browser cookie jars backed by diskcache."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog
from diskcache import Cache as DiskCache

log = structlog.get_logger(__name__)

_KEY_PREFIX = "cookies:"


def _is_live(cookie: dict[str, Any], now: float) -> bool:
    # Playwright uses -1 for session cookies.
    expires = cookie.get("expires", -1)
    if expires is None or expires < 0:
        return True
    return float(expires) > now


class DiskcacheCookieJarStore:
    """Async cookie jar store (diskcache is sync-only).

    - Uses ``asyncio.to_thread`` for disk I/O.
    - Semaphore bounds parallel SQLite access.
    - Cookies are stored as a JSON list per domain; ``load`` drops entries
      whose ``expires`` lies in the past.

    Usage::

        async with DiskcacheCookieJarStore(Path("./.state/cookies")) as jars:
            await jars.save("cloudnestra.com", await context.cookies())
            cookies = await jars.load("cloudnestra.com")
    """

    def __init__(
        self,
        directory: str | Path,
        *,
        max_concurrent: int = 4,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.directory = Path(directory)
        self._cache: DiskCache | None = None
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._clock = clock

    async def __aenter__(self) -> DiskcacheCookieJarStore:
        if self._cache is None:
            self._cache = await asyncio.to_thread(DiskCache, str(self.directory))
            log.info("cookie_store_opened", directory=str(self.directory))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._cache is not None:
            await asyncio.to_thread(self._cache.close)
            self._cache = None
            log.info("cookie_store_closed", directory=str(self.directory))

    def _require(self) -> DiskCache:
        if self._cache is None:
            raise RuntimeError(
                "Cookie store not initialized. Use 'async with store:' first"
            )
        return self._cache

    async def load(self, domain: str) -> list[dict[str, Any]]:
        cache = self._require()
        async with self._semaphore:
            raw = await asyncio.to_thread(cache.get, _KEY_PREFIX + domain, None)
        if raw is None:
            return []
        try:
            cookies = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            log.warning("cookie_jar_corrupt", domain=domain)
            return []

        now = self._clock()
        live = [c for c in cookies if isinstance(c, dict) and _is_live(c, now)]
        log.debug(
            "cookie_jar_loaded",
            domain=domain,
            total=len(cookies),
            live=len(live),
        )
        return live

    async def save(self, domain: str, cookies: list[dict[str, Any]]) -> None:
        cache = self._require()
        now = self._clock()
        live = [c for c in cookies if _is_live(c, now)]
        payload = json.dumps(live)
        async with self._semaphore:
            await asyncio.to_thread(cache.set, _KEY_PREFIX + domain, payload)
        log.debug("cookie_jar_saved", domain=domain, count=len(live))
