"""Reverse-proxy gateway for HLS manifests, segments and subtitles.

``GatewayService.serve`` turns a ``ProxyRequest`` into a ``GatewayResponse``
that the HTTP layer can render without knowing about upstreams:

1. admission control (per-client window, ``X-RateLimit-*`` on everything)
2. validation (target URL, automated-agent signatures)
3. upstream fetch with a header profile chosen by source tag
4. manifest rewrite, subtitle content type, or a streamed body

Failures never escape as exceptions: they become JSON bodies carrying the
error kind, still with CORS and rate-limit headers attached.
"""

from __future__ import annotations

import json
import re
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Literal
from urllib.parse import urlparse

import httpx
import structlog

from streamrelay.domain.entities import (
    AutomatedClientRejected,
    InvalidInput,
    ProxyRequest,
    RateLimited,
    StreamRelayError,
    UpstreamNotFound,
    UpstreamTimeout,
    UpstreamTransientError,
)
from streamrelay.infrastructure.extraction.network_observer import (
    is_manifest_hint,
    is_special_case,
    looks_like_manifest,
)
from streamrelay.infrastructure.extraction.ranking import RankingPolicy

from .header_profiles import (
    CORS_HEADERS,
    PREFLIGHT_MAX_AGE,
    downstream_headers,
    is_subtitle,
    subtitle_content_type,
    upstream_headers,
)
from .manifest import rewrite_manifest
from .rate_limiter import SlidingWindowRateLimiter
from .upstream import UpstreamFetcher, UpstreamStream

log = structlog.get_logger(__name__)

Method = Literal["GET", "HEAD", "OPTIONS"]

MANIFEST_CONTENT_TYPE = "application/vnd.apple.mpegurl"


@dataclass
class GatewayResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    stream: AsyncIterator[bytes] | None = None

    @property
    def is_streaming(self) -> bool:
        return self.stream is not None


def _error_response(exc: StreamRelayError) -> GatewayResponse:
    body = json.dumps(exc.to_dict()).encode()
    headers = {
        "content-type": "application/json",
        "content-length": str(len(body)),
        **CORS_HEADERS,
    }
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.retry_after)
    return GatewayResponse(status_code=exc.status_code, headers=headers, body=body)


def _validate_target(raw: str | None) -> str:
    if not raw or not raw.strip():
        raise InvalidInput("missing 'url' query parameter")
    target = raw.strip()
    parsed = urlparse(target)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidInput(f"invalid target url: {target[:200]}")
    return target


class GatewayService:
    """Admission, header policy and body handling for the stream proxy.

    Usage::

        gateway = GatewayService(fetcher, limiter, default_user_agent=ua)
        response = await gateway.serve(ProxyRequest(...), gateway_base="http://host")
    """

    def __init__(
        self,
        fetcher: UpstreamFetcher,
        limiter: SlidingWindowRateLimiter,
        *,
        default_user_agent: str,
        bot_patterns: Iterable[str] = (),
        bot_exemptions: Iterable[str] = (),
        proxy_path: str = "/api/v1/stream-proxy",
        public_base_url: str | None = None,
        policy: RankingPolicy | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._limiter = limiter
        self._default_user_agent = default_user_agent
        patterns = [f"(?:{p})" for p in bot_patterns if p]
        self._bot_re = re.compile("|".join(patterns), re.IGNORECASE) if patterns else None
        self._exemptions = tuple(e.lower() for e in bot_exemptions if e)
        self._proxy_path = proxy_path
        self._public_base_url = public_base_url
        self._policy = policy or RankingPolicy()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def serve(
        self,
        request: ProxyRequest,
        *,
        method: Method = "GET",
        gateway_base: str,
    ) -> GatewayResponse:
        decision = await self._limiter.hit(request.client_key)
        try:
            if not decision.allowed:
                raise RateLimited(
                    "too many requests, slow down",
                    retry_after=decision.retry_after,
                )
            if method == "OPTIONS":
                response = GatewayResponse(
                    status_code=200,
                    headers={**CORS_HEADERS, "Access-Control-Max-Age": PREFLIGHT_MAX_AGE},
                )
            else:
                response = await self._proxy(
                    request, method, self._public_base_url or gateway_base
                )
        except StreamRelayError as exc:
            log.info(
                "gateway_request_rejected",
                kind=exc.kind,
                client=request.client_key,
                target_url=request.target_url,
            )
            response = _error_response(exc)

        response.headers.update(decision.headers())
        return response

    def is_automated_agent(self, user_agent: str | None) -> bool:
        if not user_agent or self._bot_re is None:
            return False
        lowered = user_agent.lower()
        if any(exempt in lowered for exempt in self._exemptions):
            return False
        return self._bot_re.search(user_agent) is not None

    # ------------------------------------------------------------------
    # Proxying
    # ------------------------------------------------------------------

    async def _proxy(
        self, request: ProxyRequest, method: Method, gateway_base: str
    ) -> GatewayResponse:
        target = _validate_target(request.target_url)
        if self.is_automated_agent(request.user_agent):
            raise AutomatedClientRejected("automated clients are not served")

        headers = upstream_headers(
            target,
            source=request.source_hint,
            user_agent=request.user_agent or self._default_user_agent,
            range_header=request.range_header,
        )
        upstream = await self._open(method, target, headers)

        try:
            if method == "HEAD":
                return await self._head_response(upstream, target)
            return await self._body_response(upstream, target, request, gateway_base)
        except BaseException:
            await upstream.aclose()
            raise

    async def _open(
        self, method: Method, target: str, headers: dict[str, str]
    ) -> UpstreamStream:
        try:
            return await self._fetcher.open(method, target, headers)
        except httpx.TimeoutException as exc:
            log.warning("gateway_upstream_timeout", target_url=target)
            raise UpstreamTimeout(f"upstream timed out: {type(exc).__name__}") from exc
        except httpx.HTTPError as exc:
            log.warning("gateway_upstream_unreachable", target_url=target, exc_info=True)
            raise UpstreamTransientError(
                f"upstream unreachable: {type(exc).__name__}"
            ) from exc

    async def _head_response(self, upstream: UpstreamStream, target: str) -> GatewayResponse:
        await upstream.aclose()
        headers = downstream_headers(upstream.headers)
        if is_subtitle(target, upstream.headers.get("content-type")):
            headers["content-type"] = subtitle_content_type(
                target, upstream.headers.get("content-type")
            )
        return GatewayResponse(status_code=upstream.status_code, headers=headers)

    async def _body_response(
        self,
        upstream: UpstreamStream,
        target: str,
        request: ProxyRequest,
        gateway_base: str,
    ) -> GatewayResponse:
        status = upstream.status_code
        content_type = upstream.headers.get("content-type")
        manifest = is_manifest_hint(target, content_type)

        if not 200 <= status < 300:
            if not is_special_case(target, status, self._policy):
                await upstream.aclose()
                raise self._upstream_failure(target, status)
            body = await upstream.aread()
            if not looks_like_manifest(body):
                raise self._upstream_failure(target, status)
            # Authoritative CDN serves valid masters under an error status.
            log.info("gateway_special_case_manifest", target_url=target, status=status)
            return self._manifest_response(body, upstream, target, request, gateway_base)

        if manifest:
            body = await upstream.aread()
            return self._manifest_response(body, upstream, target, request, gateway_base)

        if is_subtitle(target, content_type):
            body = await upstream.aread()
            headers = downstream_headers(upstream.headers, drop_length=True)
            headers["content-type"] = subtitle_content_type(target, content_type)
            headers["content-length"] = str(len(body))
            return GatewayResponse(status_code=status, headers=headers, body=body)

        log.debug("gateway_streaming", target_url=target, status=status)
        return GatewayResponse(
            status_code=status,
            headers=downstream_headers(upstream.headers),
            stream=upstream.iter_bytes(),
        )

    def _manifest_response(
        self,
        body: bytes,
        upstream: UpstreamStream,
        target: str,
        request: ProxyRequest,
        gateway_base: str,
    ) -> GatewayResponse:
        text = body.decode(upstream.response.encoding or "utf-8", errors="replace")
        rewritten = rewrite_manifest(
            text,
            upstream.url or target,
            gateway_base=gateway_base,
            proxy_path=self._proxy_path,
            source=request.source_hint,
        ).encode()

        headers = downstream_headers(upstream.headers, drop_length=True)
        headers.pop("content-range", None)
        headers["content-type"] = MANIFEST_CONTENT_TYPE
        headers["content-length"] = str(len(rewritten))
        log.info(
            "gateway_manifest_rewritten",
            target_url=target,
            source=request.source_hint,
            lines=rewritten.count(b"\n") + 1,
        )
        return GatewayResponse(status_code=200, headers=headers, body=rewritten)

    @staticmethod
    def _upstream_failure(target: str, status: int) -> StreamRelayError:
        log.info("gateway_upstream_status", target_url=target, status=status)
        if status == 404:
            return UpstreamNotFound("upstream has no such resource (404)")
        if status >= 500:
            return UpstreamTransientError(f"upstream error {status}", status=status)
        return _PassthroughStatus(f"upstream returned {status}", status=status)


class _PassthroughStatus(UpstreamTransientError):
    """Upstream 4xx relayed with its own status code."""

    kind = "upstream_status"

    def __init__(self, message: str, *, status: int) -> None:
        super().__init__(message, status=status)
        self.status_code = status

