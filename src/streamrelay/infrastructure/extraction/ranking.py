"""Candidate priority and deterministic selection."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import urlparse

from streamrelay.domain.entities import Candidate, CandidateKind

PRIORITY_AUTHORITATIVE_MASTER = 0
PRIORITY_MASTER = 1
PRIORITY_OTHER = 2

# Host substring -> source tag (also selects the gateway header profile)
_SOURCE_TAGS: tuple[tuple[str, str], ...] = (
    ("shadowlandschronicles", "shadowlands"),
    ("cloudnestra", "cloudnestra"),
    ("vidsrc", "vidsrc"),
    ("embed.su", "embed.su"),
)


def source_tag_for(url: str) -> str:
    """Host family of *url* (``shadowlands``, ``cloudnestra``, ...)."""
    host = (urlparse(url).hostname or "").lower()
    for needle, tag in _SOURCE_TAGS:
        if needle in host:
            return tag
    parts = host.split(".")
    return parts[-2] if len(parts) >= 2 else host or "unknown"


@dataclass(frozen=True)
class RankingPolicy:
    """Which hosts are authoritative and how master tiers are ordered.

    ``merge_master_tiers=True`` puts every master playlist in tier 0 and
    lets observation order decide between them. ``special_statuses`` are the
    error statuses under which an authoritative master is still accepted.
    """

    authoritative_domains: tuple[str, ...] = ("shadowlandschronicles.com",)
    master_marker: str = "master"
    merge_master_tiers: bool = False
    special_statuses: frozenset[int] = frozenset({403})

    def is_authoritative(self, url: str) -> bool:
        host = (urlparse(url).hostname or "").lower()
        return any(host == d or host.endswith("." + d) for d in self.authoritative_domains)

    def is_master(self, url: str) -> bool:
        return self.master_marker.lower() in url.lower()

    def priority(self, url: str, kind: CandidateKind) -> int:
        if kind is not CandidateKind.MANIFEST or not self.is_master(url):
            return PRIORITY_OTHER
        if self.is_authoritative(url) or self.merge_master_tiers:
            return PRIORITY_AUTHORITATIVE_MASTER
        return PRIORITY_MASTER


def _sort_key(c: Candidate) -> tuple[int, int, float, str]:
    kind_rank = 0 if c.kind is CandidateKind.MANIFEST else 1
    return (c.priority, kind_rank, c.observed_at, c.url)


def rank_candidates(candidates: Iterable[Candidate]) -> list[Candidate]:
    """Ascending priority, manifest before direct, then observation order."""
    return sorted(candidates, key=_sort_key)


def select_best(candidates: Iterable[Candidate]) -> Candidate | None:
    ranked = rank_candidates(candidates)
    return ranked[0] if ranked else None
