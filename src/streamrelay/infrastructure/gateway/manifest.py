"""HLS playlist rewriting.

Every URI in a playlist (segment/variant lines and ``URI="..."``
attributes on tags such as ``#EXT-X-KEY``, ``#EXT-X-MEDIA`` and
``#EXT-X-MAP``) is resolved against the playlist URL and replaced by a
gateway URL, so the player never talks to the CDN directly. Other tag
attributes are left as they are and the line count never changes.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qs, quote, urljoin, urlparse

_URI_ATTR_RE = re.compile(r'URI="([^"]*)"')

# Schemes that must not go through the gateway (inline keys, DRM URIs).
_PASSTHROUGH_PREFIXES = ("data:", "skd:")


def proxy_url(
    target: str,
    *,
    gateway_base: str,
    proxy_path: str = "/api/v1/stream-proxy",
    source: str | None = None,
) -> str:
    """``https://cdn/x.ts`` -> ``<gateway>/api/v1/stream-proxy?url=...&source=...``"""
    url = f"{gateway_base.rstrip('/')}{proxy_path}?url={quote(target, safe='')}"
    if source:
        url += f"&source={quote(source, safe='')}"
    return url


def unwrap_proxy_url(url: str) -> str | None:
    """Recover the upstream target from a gateway URL (``None`` if absent)."""
    values = parse_qs(urlparse(url).query).get("url")
    return values[0] if values else None


def resolve_reference(reference: str, manifest_url: str) -> str:
    """Resolve a playlist reference (absolute, root-relative or relative)."""
    if reference.startswith("//"):
        return f"{urlparse(manifest_url).scheme or 'https'}:{reference}"
    return urljoin(manifest_url, reference)


def _rewrite_ref(reference: str, manifest_url: str, **proxy_kw) -> str:
    if reference.lower().startswith(_PASSTHROUGH_PREFIXES):
        return reference
    return proxy_url(resolve_reference(reference, manifest_url), **proxy_kw)


def _rewrite_line(line: str, manifest_url: str, proxy_kw: dict) -> str:
    stripped = line.strip()
    if not stripped:
        return line
    if stripped.startswith("#"):
        if 'URI="' not in line:
            return line
        return _URI_ATTR_RE.sub(
            lambda m: f'URI="{_rewrite_ref(m.group(1), manifest_url, **proxy_kw)}"',
            line,
        )
    return _rewrite_ref(stripped, manifest_url, **proxy_kw)


def rewrite_manifest(
    content: str,
    manifest_url: str,
    *,
    gateway_base: str,
    proxy_path: str = "/api/v1/stream-proxy",
    source: str | None = None,
) -> str:
    """Rewrite every URI of *content* to go through the gateway.

    Line endings are kept per line (``\\r\\n`` playlists stay ``\\r\\n``).
    """
    proxy_kw = {"gateway_base": gateway_base, "proxy_path": proxy_path, "source": source}
    out: list[str] = []
    for raw in content.split("\n"):
        line, cr = (raw[:-1], "\r") if raw.endswith("\r") else (raw, "")
        out.append(_rewrite_line(line, manifest_url, proxy_kw) + cr)
    return "\n".join(out)
