"""Anti-bot challenge page detection (Cloudflare interstitials)."""

from __future__ import annotations

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

log = structlog.get_logger(__name__)

CHALLENGE_MARKERS: tuple[str, ...] = (
    "Just a moment",
    "challenge-platform",
    "cf-error-details",
    "Attention Required",
    "cf-turnstile",
    "cf-browser-verification",
)

# Markers that show up in document.title while the challenge runs.
_TITLE_MARKERS: tuple[str, ...] = ("Just a moment", "Attention Required")


def is_challenge_page(status_code: int, html: str) -> bool:
    """Return *True* when *status_code* + *html* indicate a challenge/block.

    - JS challenge: 503 + "Just a moment" / "challenge-platform"
    - WAF block:    403 + "Attention Required" / "cf-error-details"
    - Turnstile:    403/503 + "cf-turnstile"
    """
    if status_code not in (403, 429, 503):
        return False
    return any(marker in html for marker in CHALLENGE_MARKERS)


def looks_like_challenge(html: str) -> bool:
    """Status-agnostic check used on rendered pages (status is already 200)."""
    head = html[:20_000]
    return any(marker in head for marker in _TITLE_MARKERS) and (
        "challenge-platform" in head or "cf-turnstile" in head
    )


async def wait_for_challenge_clear(page: Page, *, timeout: float) -> bool:
    """Wait until the page title no longer shows a challenge marker.

    Returns ``False`` if the challenge is still present after *timeout*.
    """
    js_check = " && ".join(f"!t.includes('{m}')" for m in _TITLE_MARKERS)
    js = f"() => {{ const t = document.title; return {js_check}; }}"
    try:
        await page.wait_for_function(js, timeout=int(timeout * 1000))
        return True
    except PlaywrightError:
        log.info("challenge_not_cleared", url=page.url, timeout=timeout)
        return False
