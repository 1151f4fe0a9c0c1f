"""Network observer: turns a page's responses into stream candidates.

Classification per response:

- manifest: ``.m3u8`` path, HLS MIME type, or a body starting with
  ``#EXTM3U``;
- direct: media extension or ``video/*`` MIME with status 200;
- keyed special case: an authoritative host serving a master playlist
  under a keyed error status (403) is accepted only after the body is
  verified.

Usage::

    observer = NetworkObserver(policy)
    observer.attach(page)
    await page.goto(url)
    await observer.wait_for_manifest(timeout=10)
    best = observer.best()
"""

from __future__ import annotations

import asyncio
import itertools
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import structlog
from playwright.async_api import Error as PlaywrightError

from streamrelay.domain.entities import Candidate, CandidateKind

from .ranking import RankingPolicy, rank_candidates, source_tag_for

if TYPE_CHECKING:
    from playwright.async_api import Page, Request, Response

log = structlog.get_logger(__name__)

MANIFEST_MIME_TYPES = frozenset(
    {
        "application/vnd.apple.mpegurl",
        "application/x-mpegurl",
        "audio/mpegurl",
        "audio/x-mpegurl",
    }
)
DIRECT_EXTENSIONS: tuple[str, ...] = (".mp4", ".webm", ".mkv", ".m4v")
_BODY_SNIFF_TYPES = frozenset({"xhr", "fetch"})


def looks_like_manifest(body: str | bytes | None) -> bool:
    """True if *body* starts with the HLS ``#EXTM3U`` tag."""
    if not body:
        return False
    if isinstance(body, bytes):
        body = body[:64].decode("utf-8", errors="ignore")
    return body.lstrip("\ufeff \t\r\n").startswith("#EXTM3U")


def _mime(content_type: str | None) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def is_manifest_hint(url: str, content_type: str | None) -> bool:
    path = urlparse(url).path.lower()
    return path.endswith(".m3u8") or ".m3u8" in path or _mime(content_type) in MANIFEST_MIME_TYPES


def is_direct_hint(url: str, content_type: str | None) -> bool:
    path = urlparse(url).path.lower()
    return path.endswith(DIRECT_EXTENSIONS) or _mime(content_type).startswith("video/")


def is_special_case(url: str, status: int, policy: RankingPolicy) -> bool:
    """Authoritative host + master marker under one of the keyed error statuses."""
    return (
        status in policy.special_statuses
        and policy.is_authoritative(url)
        and policy.is_master(url)
    )


def classify(
    url: str,
    status: int,
    content_type: str | None,
    body: str | bytes | None,
    policy: RankingPolicy,
    *,
    observed_at: float = 0.0,
) -> Candidate | None:
    """Classify one response; ``None`` means not a stream candidate."""
    ok = 200 <= status < 300
    tag = source_tag_for(url)

    if is_special_case(url, status, policy):
        if not looks_like_manifest(body):
            return None
        return Candidate(
            url=url,
            kind=CandidateKind.MANIFEST,
            source_tag=tag,
            priority=policy.priority(url, CandidateKind.MANIFEST),
            status_code=status,
            observed_at=observed_at,
            needs_special_headers=True,
        )

    if not ok:
        return None

    if is_manifest_hint(url, content_type) or looks_like_manifest(body):
        return Candidate(
            url=url,
            kind=CandidateKind.MANIFEST,
            source_tag=tag,
            priority=policy.priority(url, CandidateKind.MANIFEST),
            status_code=status,
            observed_at=observed_at,
            needs_special_headers=policy.is_authoritative(url),
        )

    if status == 200 and is_direct_hint(url, content_type):
        return Candidate(
            url=url,
            kind=CandidateKind.DIRECT,
            source_tag=tag,
            priority=policy.priority(url, CandidateKind.DIRECT),
            status_code=status,
            observed_at=observed_at,
        )
    return None


class NetworkObserver:
    """Collects candidates from one page's network traffic."""

    def __init__(self, policy: RankingPolicy) -> None:
        self._policy = policy
        self._candidates: dict[str, Candidate] = {}
        self._pending: set[asyncio.Task[None]] = set()
        self._seq = itertools.count()
        self.requests_seen = 0

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def attach(self, page: Page) -> NetworkObserver:
        page.on("request", self._on_request)
        page.on("response", self._on_response)
        return self

    def _on_request(self, request: Request) -> None:
        self.requests_seen += 1
        if is_manifest_hint(request.url, None):
            log.debug("observer_manifest_request", url=request.url)

    def _on_response(self, response: Response) -> None:
        task = asyncio.get_running_loop().create_task(self._inspect(response))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _inspect(self, response: Response) -> None:
        url = response.url
        status = response.status
        content_type = response.headers.get("content-type")
        order = float(next(self._seq))

        body: str | None = None
        wants_body = (
            is_manifest_hint(url, content_type)
            or is_special_case(url, status, self._policy)
            or (
                response.request.resource_type in _BODY_SNIFF_TYPES
                and _mime(content_type) in ("", "text/plain", "application/octet-stream")
            )
        )
        if wants_body:
            try:
                body = await response.text()
            except PlaywrightError:
                body = None  # redirects and aborted requests have no body

        candidate = classify(
            url, status, content_type, body, self._policy, observed_at=order
        )
        if candidate is None or url in self._candidates:
            return
        self._candidates[url] = candidate
        log.info(
            "observer_candidate",
            url=url,
            kind=candidate.kind.value,
            priority=candidate.priority,
            status=status,
        )

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait for in-flight response inspections."""
        if not self._pending:
            return
        results = await asyncio.gather(*list(self._pending), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                log.warning("observer_inspect_failed", error=repr(result))

    async def close(self) -> None:
        """Cancel inspections still in flight and wait for them to settle."""
        pending = list(self._pending)
        if not pending:
            return
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        log.debug("observer_closed", cancelled=len(pending))

    def add(self, candidate: Candidate) -> None:
        self._candidates.setdefault(candidate.url, candidate)

    @property
    def candidates(self) -> list[Candidate]:
        return rank_candidates(self._candidates.values())

    def best(self) -> Candidate | None:
        ranked = self.candidates
        return ranked[0] if ranked else None

    def has_manifest(self) -> bool:
        return any(c.kind is CandidateKind.MANIFEST for c in self._candidates.values())

    async def wait_for_manifest(self, *, timeout: float, poll: float = 0.25) -> bool:
        """Poll until a manifest candidate appears or *timeout* elapses."""
        waited = 0.0
        while True:
            await self.drain()
            if self.has_manifest():
                return True
            if waited >= timeout:
                return False
            await asyncio.sleep(poll)
            waited += poll
