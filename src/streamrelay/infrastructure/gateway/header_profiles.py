"""Outbound header profiles and downstream header policy for the gateway.

Three profiles exist:

- ``clean``: only User-Agent, Accept and Accept-Language. Used for the
  authoritative CDN families and for subtitle files, which reject requests
  carrying a foreign Referer/Origin.
- ``embed.su``: browser-like cross-site fetch masked as the embed.su
  player (Referer, Origin, Sec-Fetch-*).
- ``default``: clean headers plus the generic cache directives.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Literal
from urllib.parse import urlparse

ProfileName = Literal["clean", "embed.su", "default"]

DEFAULT_ACCEPT_LANGUAGE = "en-US,en;q=0.9"

_CLEAN_SOURCES = frozenset({"vidsrc", "shadowlands", "cloudnestra"})
_CLEAN_URL_MARKERS = ("shadowlandschronicles", "cloudnestra.com")

_SUBTITLE_EXTENSIONS = (".vtt", ".srt")

_ACCEPT_BY_EXTENSION: tuple[tuple[str, str], ...] = (
    (".m3u8", "application/vnd.apple.mpegurl, application/x-mpegURL, */*"),
    (".ts", "video/MP2T, */*"),
    (".mp4", "video/mp4, */*"),
    (".vtt", "text/vtt, text/plain, */*"),
    (".srt", "text/vtt, text/plain, */*"),
)

# Upstream response headers copied to the client.
KEPT_RESPONSE_HEADERS: tuple[str, ...] = (
    "content-type",
    "content-length",
    "content-range",
    "accept-ranges",
    "cache-control",
    "expires",
    "last-modified",
    "etag",
)

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": (
        "Origin, X-Requested-With, Content-Type, Accept, Authorization, "
        "Cache-Control, Range"
    ),
    "Access-Control-Expose-Headers": "Content-Length, Content-Range, Accept-Ranges",
    "Cross-Origin-Resource-Policy": "cross-origin",
}

PREFLIGHT_MAX_AGE = "86400"


def _path(url: str) -> str:
    return urlparse(url).path.lower()


def is_subtitle(url: str, content_type: str | None = None) -> bool:
    if _path(url).endswith(_SUBTITLE_EXTENSIONS):
        return True
    return bool(content_type) and "text/vtt" in content_type.lower()


def accept_for(url: str) -> str:
    path = _path(url)
    for ext, accept in _ACCEPT_BY_EXTENSION:
        if path.endswith(ext):
            return accept
    return "*/*"


def select_profile(url: str, source: str | None) -> ProfileName:
    lowered = url.lower()
    if (
        (source or "").lower() in _CLEAN_SOURCES
        or any(marker in lowered for marker in _CLEAN_URL_MARKERS)
        or is_subtitle(url)
    ):
        return "clean"
    if (source or "").lower() == "embed.su":
        return "embed.su"
    return "default"


def upstream_headers(
    url: str,
    *,
    source: str | None,
    user_agent: str,
    range_header: str | None = None,
) -> dict[str, str]:
    """Build the request headers for fetching *url* from upstream."""
    profile = select_profile(url, source)
    headers = {
        "User-Agent": user_agent,
        "Accept": accept_for(url),
        "Accept-Language": DEFAULT_ACCEPT_LANGUAGE,
    }

    if profile == "embed.su":
        headers.update(
            {
                "Accept": "*/*",
                "Accept-Encoding": "gzip, deflate, br",
                "Referer": "https://embed.su/",
                "Origin": "https://embed.su",
                "Sec-Fetch-Dest": "empty",
                "Sec-Fetch-Mode": "cors",
                "Sec-Fetch-Site": "cross-site",
                "Cache-Control": "no-cache",
                "Pragma": "no-cache",
            }
        )
    elif profile == "default":
        headers["Cache-Control"] = "no-cache"

    if range_header:
        headers["Range"] = range_header
    return headers


def downstream_headers(
    upstream: Mapping[str, str], *, drop_length: bool = False
) -> dict[str, str]:
    """Copy the kept upstream headers and add the CORS set."""
    headers: dict[str, str] = {}
    for name in KEPT_RESPONSE_HEADERS:
        if drop_length and name == "content-length":
            continue
        value = upstream.get(name)
        if value is not None:
            headers[name] = value
    headers.update(CORS_HEADERS)
    return headers


def subtitle_content_type(url: str, content_type: str | None) -> str:
    if _path(url).endswith(".vtt") or (content_type and "text/vtt" in content_type.lower()):
        return "text/vtt; charset=utf-8"
    return "text/plain; charset=utf-8"
