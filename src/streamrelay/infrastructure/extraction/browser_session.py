"""Scoped Playwright sessions for the automation strategy.

One ``ExtractionSession`` is one Chromium process with one stealth
context. ``BrowserSessionFactory.open`` is an async context manager; the
browser, the optional profile lock and the cookie jar write-back are all
released on success, error, timeout and cancellation alike.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import structlog
from playwright.async_api import BrowserContext, Page, Route, async_playwright
from playwright.async_api import Error as PlaywrightError

from streamrelay.domain.entities import Fingerprint
from streamrelay.domain.ports import CookieJarPort
from streamrelay.infrastructure.persistence.profile_registry import ProfileRegistry

from . import stealth
from .fingerprint import FingerprintPool

log = structlog.get_logger(__name__)

_BLOCKED_RESOURCE_TYPES = frozenset({"image", "font", "stylesheet"})

_LAUNCH_ARGS: tuple[str, ...] = (
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-renderer-backgrounding",
    "--disable-background-timer-throttling",
)


async def _block_resources(route: Route) -> None:
    """Abort requests for heavy resource types."""
    if route.request.resource_type in _BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


def _context_options(fp: Fingerprint) -> dict[str, Any]:
    return {
        "user_agent": fp.user_agent,
        "viewport": {"width": fp.screen.avail_width, "height": fp.screen.avail_height},
        "screen": {"width": fp.screen.width, "height": fp.screen.height},
        "locale": fp.locale,
        "timezone_id": fp.timezone,
        "extra_http_headers": {"Accept-Language": ",".join(fp.languages)},
    }


@dataclass
class ExtractionSession:
    """Per-request browser state. Never shared between extractions."""

    domain: str
    fingerprint: Fingerprint
    context: BrowserContext
    page: Page
    hop_index: int = 0
    notes: list[str] = field(default_factory=list)

    @property
    def viewport(self) -> tuple[int, int]:
        return (self.fingerprint.screen.avail_width, self.fingerprint.screen.avail_height)


class BrowserSessionFactory:
    """Opens isolated, stealth-configured browser sessions.

    Usage::

        factory = BrowserSessionFactory(fingerprints=FingerprintPool())
        async with factory.open("https://vidsrc.xyz/embed/movie?tmdb=550") as s:
            await s.page.goto(...)
    """

    def __init__(
        self,
        *,
        fingerprints: FingerprintPool,
        headless: bool = True,
        timeout_ms: int = 30_000,
        max_sessions: int = 2,
        cookie_store: CookieJarPort | None = None,
        profiles: ProfileRegistry | None = None,
    ) -> None:
        self._fingerprints = fingerprints
        self._headless = headless
        self._timeout_ms = timeout_ms
        self._semaphore = asyncio.Semaphore(max_sessions)
        self._cookie_store = cookie_store
        self._profiles = profiles
        self.active_sessions = 0

    @asynccontextmanager
    async def open(self, origin_url: str) -> AsyncIterator[ExtractionSession]:
        domain = (urlparse(origin_url).hostname or "unknown").lower()

        async with self._semaphore, AsyncExitStack() as stack:
            fp = self._fingerprints.for_domain(domain)
            context = await self._launch(stack, domain, fp)

            await stealth.apply(context, fp)
            await context.route("**/*", _block_resources)
            context.set_default_timeout(self._timeout_ms)
            await self._restore_cookies(context, domain)
            stack.push_async_callback(self._persist_cookies, context, domain)

            page = await context.new_page()
            self.active_sessions += 1
            stack.callback(self._session_closed, domain)
            log.info(
                "browser_session_opened",
                domain=domain,
                platform=fp.platform,
                headless=self._headless,
                persistent=self._profiles is not None,
            )
            yield ExtractionSession(domain=domain, fingerprint=fp, context=context, page=page)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _launch(
        self, stack: AsyncExitStack, domain: str, fp: Fingerprint
    ) -> BrowserContext:
        playwright = await async_playwright().start()
        stack.push_async_callback(playwright.stop)

        options = _context_options(fp)
        if self._profiles is not None:
            profile_path = await stack.enter_async_context(self._profiles.acquire(domain))
            context = await playwright.chromium.launch_persistent_context(
                str(profile_path),
                headless=self._headless,
                args=list(_LAUNCH_ARGS),
                **options,
            )
            stack.push_async_callback(context.close)
            return context

        browser = await playwright.chromium.launch(
            headless=self._headless, args=list(_LAUNCH_ARGS)
        )
        stack.push_async_callback(browser.close)
        context = await browser.new_context(**options)
        stack.push_async_callback(context.close)
        return context

    def _session_closed(self, domain: str) -> None:
        self.active_sessions -= 1
        log.info("browser_session_closed", domain=domain)

    async def _restore_cookies(self, context: BrowserContext, domain: str) -> None:
        if self._cookie_store is None:
            return
        cookies = await self._cookie_store.load(domain)
        if cookies:
            await context.add_cookies(cookies)
            log.debug("cookies_restored", domain=domain, count=len(cookies))

    async def _persist_cookies(self, context: BrowserContext, domain: str) -> None:
        if self._cookie_store is None:
            return
        try:
            cookies = await context.cookies()
        except PlaywrightError:
            log.warning("cookies_unreadable", domain=domain, exc_info=True)
            return
        await self._cookie_store.save(domain, [dict(c) for c in cookies])
