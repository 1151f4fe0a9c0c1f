"""Pure URL extractors for embed-chain pages.

Every extractor has the signature ``(content, page_url) -> str | None``
and returns an absolute, normalized URL or ``None``. Extractors are built
by small factories parameterized with the marker they look for, so one
hop's list reads as an ordered strategy list::

    (iframe_src("/rcp/"), quoted_url("/rcp/"), bare_url("/rcp/"))
"""

from __future__ import annotations

import html as html_lib
import re
from collections.abc import Iterable
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from streamrelay.domain.entities import Extractor

# Characters that terminate a URL embedded in markup or script text.
_URL_END_RE = re.compile(r"(%3E|>|%20|\s|\\n)", re.IGNORECASE)
_THUMBNAIL_HINTS = ("thumbnail", "sprite", "/track")


def is_valid_absolute_url(url: str | None) -> bool:
    """http(s) URL with a dotted host, no whitespace."""
    if not url or any(ch.isspace() for ch in url):
        return False
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return False
    host = parsed.hostname or ""
    return "." in host and not host.startswith(".")


def normalize_url(raw: str, page_url: str) -> str | None:
    """Turn a URL fragment found in page content into an absolute URL.

    Handles escaped slashes, HTML entities, protocol-relative URLs, root
    and document relative paths, and bare ``host/path`` strings.
    """
    url = html_lib.unescape(raw.strip().strip("\"'")).replace("\\/", "/")
    cut = _URL_END_RE.search(url)
    if cut and cut.start() > 0:
        url = url[: cut.start()]
    if not url:
        return None

    if url.startswith("//"):
        url = "https:" + url
    elif url.startswith(("http://", "https://")):
        pass
    elif url.startswith(("/", "./", "../")):
        url = urljoin(page_url, url)
    elif re.match(r"^[a-z0-9.-]+\.[a-z]{2,}/", url, re.IGNORECASE):
        url = "https://" + url
    else:
        url = urljoin(page_url, url)

    return url if is_valid_absolute_url(url) else None


def _first_valid(raws: Iterable[str], page_url: str) -> str | None:
    for raw in raws:
        url = normalize_url(raw, page_url)
        if url and not any(hint in url.lower() for hint in _THUMBNAIL_HINTS):
            return url
    return None


# ---------------------------------------------------------------------------
# Extractor factories
# ---------------------------------------------------------------------------


def iframe_src(marker: str) -> Extractor:
    """``<iframe src=...>`` whose src contains *marker* (parsed with lxml)."""

    def extract(content: str, page_url: str) -> str | None:
        soup = BeautifulSoup(content, "lxml")
        srcs = (
            str(frame.get("src") or frame.get("data-src") or "")
            for frame in soup.find_all("iframe")
        )
        return _first_valid((s for s in srcs if marker in s), page_url)

    extract.__name__ = f"iframe_src[{marker}]"
    return extract


def script_src_literal(marker: str) -> Extractor:
    """Script object literals such as ``$('<iframe>', {src: '/prorcp/..'})``."""
    pattern = re.compile(
        r"""\bsrc\s*[:=]\s*["']([^"']*""" + re.escape(marker) + r"""[^"']+)["']""",
        re.IGNORECASE,
    )

    def extract(content: str, page_url: str) -> str | None:
        return _first_valid((m.group(1) for m in pattern.finditer(content)), page_url)

    extract.__name__ = f"script_src_literal[{marker}]"
    return extract


def player_file(marker: str) -> Extractor:
    """Player config keys: ``file: "..."``, ``source: "..."``, ``src: "..."``."""
    pattern = re.compile(
        r"""\b(?:file|source|src)\s*:\s*["']([^"']*"""
        + re.escape(marker)
        + r"""[^"']*)["']""",
        re.IGNORECASE,
    )

    def extract(content: str, page_url: str) -> str | None:
        return _first_valid((m.group(1) for m in pattern.finditer(content)), page_url)

    extract.__name__ = f"player_file[{marker}]"
    return extract


def quoted_url(marker: str) -> Extractor:
    """Any quoted string containing *marker*."""
    pattern = re.compile(
        r"""["']([^"'\s<>]*""" + re.escape(marker) + r"""[^"'\s<>]*)["']"""
    )

    def extract(content: str, page_url: str) -> str | None:
        return _first_valid((m.group(1) for m in pattern.finditer(content)), page_url)

    extract.__name__ = f"quoted_url[{marker}]"
    return extract


def bare_url(marker: str) -> Extractor:
    """Unquoted absolute or protocol-relative URL containing *marker*."""
    pattern = re.compile(
        r"""(?:https?:)?//[^\s"'<>]*""" + re.escape(marker) + r"""[^\s"'<>]*""",
        re.IGNORECASE,
    )

    def extract(content: str, page_url: str) -> str | None:
        return _first_valid((m.group(0) for m in pattern.finditer(content)), page_url)

    extract.__name__ = f"bare_url[{marker}]"
    return extract


def path_token(marker: str) -> Extractor:
    """Unquoted root-relative path token, e.g. ``/prorcp/QmFzZTY0==``."""
    pattern = re.compile(re.escape(marker) + r"[A-Za-z0-9+/=_\-]+")

    def extract(content: str, page_url: str) -> str | None:
        return _first_valid((m.group(0) for m in pattern.finditer(content)), page_url)

    extract.__name__ = f"path_token[{marker}]"
    return extract


def authoritative_manifest(domains: Iterable[str], marker: str = ".m3u8") -> Extractor:
    """Manifest URLs hosted on one of the authoritative *domains*."""
    hosts = "|".join(re.escape(d) for d in domains)
    pattern = re.compile(
        r"""(?:https?:)?//[^\s"'<>/]*(?:"""
        + hosts
        + r""")[^\s"'<>]*"""
        + re.escape(marker)
        + r"""[^\s"'<>]*""",
        re.IGNORECASE,
    )

    def extract(content: str, page_url: str) -> str | None:
        if not hosts:
            return None
        return _first_valid((m.group(0) for m in pattern.finditer(content)), page_url)

    extract.__name__ = "authoritative_manifest"
    return extract
