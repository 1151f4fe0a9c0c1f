"""Fetch strategy: walk the hop table with plain HTTP GETs.

Each hop is fetched with ``Referer`` set to the previous hop's URL. A
fresh ``httpx.AsyncClient`` is opened per traversal, so no cookies or
other state carry over between extractions. The manifest found on the
last hop is verified with one more GET before it becomes a candidate.
"""

from __future__ import annotations

import asyncio

import httpx
import structlog

from streamrelay.domain.entities import (
    Candidate,
    ChainTrace,
    ChallengeUnsolved,
    Hop,
    HopExtractionFailed,
    StrategyKind,
    UpstreamHttpError,
    UpstreamNotFound,
)

from .challenge import is_challenge_page
from .hops import HOP_TABLE, resolve_hop
from .network_observer import classify, looks_like_manifest
from .ranking import RankingPolicy

log = structlog.get_logger(__name__)

_HTML_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/avif,image/webp,*/*;q=0.8"
)


class FetchChainStrategy:
    """Resolve the embed chain without a browser.

    Non-2xx hop responses are retried ``hop_retries`` times with a fixed
    ``retry_delay``. A 404 on the origin page means the title is missing
    (``UpstreamNotFound``); a challenge interstitial means the fetch
    strategy cannot proceed (``ChallengeUnsolved``).
    """

    kind: StrategyKind = "fetch"

    def __init__(
        self,
        *,
        user_agent: str,
        hops: tuple[Hop, ...] = HOP_TABLE,
        policy: RankingPolicy | None = None,
        hop_timeout: float = 10.0,
        hop_retries: int = 2,
        retry_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._user_agent = user_agent
        self._hops = hops
        self._policy = policy or RankingPolicy()
        self._hop_timeout = hop_timeout
        self._hop_retries = max(1, hop_retries)
        self._retry_delay = retry_delay
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(self._hop_timeout),
            transport=self._transport,
        )

    async def resolve(self, origin_url: str, trace: ChainTrace) -> list[Candidate]:
        page_url = origin_url
        referer: str | None = None

        async with self._client() as client:
            for index, hop in enumerate(self._hops):
                trace.begin_hop(index, hop.name)
                try:
                    html = await self._fetch_page(
                        client, page_url, referer, is_origin=index == 0
                    )
                    next_url = resolve_hop(hop, html, page_url)
                except Exception as exc:
                    trace.fail(f"{hop.name}: {type(exc).__name__}")
                    raise

                trace.advance(next_url)
                log.info(
                    "chain_hop_resolved",
                    strategy=self.kind,
                    hop=hop.name,
                    next_url=next_url,
                )
                referer, page_url = page_url, next_url

            try:
                candidate = await self._verify_manifest(client, page_url, referer)
            except Exception as exc:
                trace.fail(f"verify: {type(exc).__name__}")
                raise

        trace.advance(candidate.url)
        return [candidate]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _headers(self, referer: str | None, *, accept: str) -> dict[str, str]:
        headers = {
            "User-Agent": self._user_agent,
            "Accept": accept,
            "Accept-Language": "en-US,en;q=0.9",
            "Cache-Control": "no-cache",
        }
        if referer:
            headers["Referer"] = referer
        return headers

    async def _get(
        self, client: httpx.AsyncClient, url: str, headers: dict[str, str]
    ) -> httpx.Response:
        try:
            return await client.get(url, headers=headers)
        except httpx.TimeoutException as exc:
            raise UpstreamHttpError(f"hop timed out: {url}") from exc
        except httpx.TransportError as exc:
            raise UpstreamHttpError(f"network error: {type(exc).__name__}") from exc

    async def _fetch_page(
        self,
        client: httpx.AsyncClient,
        url: str,
        referer: str | None,
        *,
        is_origin: bool,
    ) -> str:
        headers = self._headers(referer, accept=_HTML_ACCEPT)
        last_status: int | None = None

        for attempt in range(1, self._hop_retries + 1):
            try:
                resp = await self._get(client, url, headers)
            except UpstreamHttpError:
                if attempt == self._hop_retries:
                    raise
                log.info("chain_hop_retry", url=url, attempt=attempt, reason="network")
                await asyncio.sleep(self._retry_delay)
                continue

            if resp.status_code == 404 and is_origin:
                raise UpstreamNotFound(f"origin has no such title: {url}")
            if is_challenge_page(resp.status_code, resp.text):
                raise ChallengeUnsolved(f"challenge page at {url}")
            if resp.is_success:
                return resp.text

            last_status = resp.status_code
            if attempt < self._hop_retries:
                log.info(
                    "chain_hop_retry", url=url, attempt=attempt, status=resp.status_code
                )
                await asyncio.sleep(self._retry_delay)

        raise UpstreamHttpError(
            f"hop returned HTTP {last_status}: {url}", status=last_status
        )

    async def _verify_manifest(
        self, client: httpx.AsyncClient, url: str, referer: str | None
    ) -> Candidate:
        # Authoritative CDN rejects requests carrying the embed referer.
        headers = self._headers(
            None if self._policy.is_authoritative(url) else referer, accept="*/*"
        )
        last_status: int | None = None

        for attempt in range(1, self._hop_retries + 1):
            resp = await self._get(client, url, headers)
            candidate = classify(
                url,
                resp.status_code,
                resp.headers.get("content-type"),
                resp.text,
                self._policy,
            )
            if candidate is not None and looks_like_manifest(resp.text):
                log.info(
                    "chain_stream_verified",
                    url=url,
                    status=resp.status_code,
                    special=candidate.needs_special_headers,
                )
                return candidate
            if resp.is_success:
                raise HopExtractionFailed(
                    f"player URL is not a manifest: {url}", hop="stream"
                )

            last_status = resp.status_code
            if attempt < self._hop_retries:
                await asyncio.sleep(self._retry_delay)

        raise UpstreamHttpError(
            f"manifest returned HTTP {last_status}: {url}", status=last_status
        )
