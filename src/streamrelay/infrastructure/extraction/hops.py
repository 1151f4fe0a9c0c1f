"""Hop table of the embed chain and the per-hop resolution step.

The chain served by the supported providers::

    embed page  (vidsrc.xyz/embed/...)       -> iframe  cloudnestra.com/rcp/<token>
    relay page  (cloudnestra.com/rcp/...)    -> script  /prorcp/<token>  (play button)
    player page (cloudnestra.com/prorcp/...) -> manifest *.m3u8 (authoritative CDN first)
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from streamrelay.domain.entities import Hop, HopNotFound

from . import patterns

log = structlog.get_logger(__name__)

DEFAULT_AUTHORITATIVE_DOMAINS: tuple[str, ...] = ("shadowlandschronicles.com",)

PLAY_BUTTON_SELECTORS: tuple[str, ...] = (
    "#pl_but",
    ".fas.fa-play",
    "button#pl_but",
    '[id="pl_but"]',
    "button.fas.fa-play",
    'button[class*="play"]',
    ".play-button",
    'button[aria-label*="play" i]',
)

RELAY_MARKER = "/rcp/"
PLAYER_MARKER = "/prorcp/"
MANIFEST_MARKER = ".m3u8"


def build_hop_table(
    authoritative_domains: Iterable[str] = DEFAULT_AUTHORITATIVE_DOMAINS,
) -> tuple[Hop, ...]:
    domains = tuple(authoritative_domains)
    return (
        Hop(
            name="embed",
            extractors=(
                patterns.iframe_src(RELAY_MARKER),
                patterns.quoted_url(RELAY_MARKER),
                patterns.bare_url(RELAY_MARKER),
            ),
            accepted_next_marker=RELAY_MARKER,
        ),
        Hop(
            name="relay",
            extractors=(
                patterns.script_src_literal(PLAYER_MARKER),
                patterns.iframe_src(PLAYER_MARKER),
                patterns.quoted_url(PLAYER_MARKER),
                patterns.path_token(PLAYER_MARKER),
            ),
            accepted_next_marker=PLAYER_MARKER,
            gesture_selectors=PLAY_BUTTON_SELECTORS,
        ),
        Hop(
            name="player",
            extractors=(
                patterns.authoritative_manifest(domains, MANIFEST_MARKER),
                patterns.player_file(MANIFEST_MARKER),
                patterns.quoted_url(MANIFEST_MARKER),
                patterns.bare_url(MANIFEST_MARKER),
            ),
            accepted_next_marker=MANIFEST_MARKER,
        ),
    )


HOP_TABLE: tuple[Hop, ...] = build_hop_table()


def resolve_hop(hop: Hop, content: str, page_url: str) -> str:
    """Run *hop*'s extractors in order; return the first accepted URL.

    Raises ``HopNotFound`` when no extractor yields a valid absolute URL
    carrying ``hop.accepted_next_marker``.
    """
    for extractor in hop.extractors:
        url = extractor(content, page_url)
        if url and hop.accepted_next_marker in url and patterns.is_valid_absolute_url(url):
            log.debug(
                "chain_hop_match",
                hop=hop.name,
                extractor=getattr(extractor, "__name__", "extractor"),
                next_url=url,
            )
            return url
    raise HopNotFound(f"no {hop.accepted_next_marker!r} URL on {hop.name} page", hop=hop.name)
