"""Tests for the stream proxy endpoint."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
from fastapi import FastAPI
from fastapi.testclient import TestClient

from streamrelay.domain.entities import ProxyRequest
from streamrelay.infrastructure.config import AppConfig
from streamrelay.infrastructure.gateway import (
    GatewayResponse,
    GatewayService,
    SlidingWindowRateLimiter,
    UpstreamFetcher,
)
from streamrelay.interfaces.app import create_app

MASTER = "https://cdn.example.net/hls/master.m3u8"
SEGMENT = "https://cdn.example.net/hls/seg-001.ts"
PLAYLIST = "#EXTM3U\n#EXTINF:6.0,\nseg-001.ts\n#EXT-X-ENDLIST\n"
BROWSER_UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) Chrome/124.0.0.0 Safari/537.36"


def _make_app(gateway) -> FastAPI:
    app = create_app(AppConfig())
    app.state.gateway = gateway
    return app


def _upstream(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith(".m3u8"):
        return httpx.Response(200, text=PLAYLIST, headers={"content-type": "application/vnd.apple.mpegurl"})
    if request.url.path.endswith(".ts"):
        return httpx.Response(200, content=b"\x47" * 376, headers={"content-type": "video/mp2t"})
    return httpx.Response(404)


def _real_gateway(max_requests: int = 100) -> GatewayService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(_upstream))
    return GatewayService(
        UpstreamFetcher(client),
        SlidingWindowRateLimiter(max_requests=max_requests),
        default_user_agent=BROWSER_UA,
        bot_patterns=["bot", "curl"],
    )


class TestProxyRouterAdapter:
    def test_builds_proxy_request(self) -> None:
        gateway = AsyncMock()
        gateway.serve = AsyncMock(return_value=GatewayResponse(status_code=200, body=b"ok"))
        client = TestClient(_make_app(gateway))

        resp = client.get(
            "/api/v1/stream-proxy",
            params={"url": SEGMENT, "source": "embed.su"},
            headers={
                "Range": "bytes=0-99",
                "User-Agent": BROWSER_UA,
                "X-Forwarded-For": "198.51.100.9, 10.0.0.1",
            },
        )

        assert resp.status_code == 200
        assert resp.content == b"ok"
        request: ProxyRequest = gateway.serve.call_args[0][0]
        assert request.target_url == SEGMENT
        assert request.source_hint == "embed.su"
        assert request.range_header == "bytes=0-99"
        assert request.user_agent == BROWSER_UA
        assert request.client_key == "198.51.100.9"
        assert gateway.serve.call_args.kwargs["method"] == "GET"
        assert gateway.serve.call_args.kwargs["gateway_base"] == "http://testserver/"

    def test_head_and_options_methods(self) -> None:
        gateway = AsyncMock()
        gateway.serve = AsyncMock(return_value=GatewayResponse(status_code=200))
        client = TestClient(_make_app(gateway))

        client.head("/api/v1/stream-proxy", params={"url": SEGMENT})
        client.options("/api/v1/stream-proxy")

        methods = [c.kwargs["method"] for c in gateway.serve.call_args_list]
        assert methods == ["HEAD", "OPTIONS"]
        assert gateway.serve.call_args_list[1][0][0].target_url is None

    def test_streaming_body_is_rendered(self) -> None:
        async def chunks():
            yield b"abc"
            yield b"def"

        gateway = AsyncMock()
        gateway.serve = AsyncMock(
            return_value=GatewayResponse(
                status_code=206, headers={"content-range": "bytes 0-5/10"}, stream=chunks()
            )
        )
        client = TestClient(_make_app(gateway))

        resp = client.get("/api/v1/stream-proxy", params={"url": SEGMENT})

        assert resp.status_code == 206
        assert resp.content == b"abcdef"
        assert resp.headers["content-range"] == "bytes 0-5/10"


class TestProxyEndToEnd:
    def test_manifest_is_rewritten(self) -> None:
        client = TestClient(_make_app(_real_gateway()))

        resp = client.get(
            "/api/v1/stream-proxy",
            params={"url": MASTER},
            headers={"User-Agent": BROWSER_UA},
        )

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/vnd.apple.mpegurl"
        assert resp.headers["access-control-allow-origin"] == "*"
        assert resp.headers["x-ratelimit-limit"] == "100"
        lines = resp.text.split("\n")
        assert lines[2].startswith("http://testserver/api/v1/stream-proxy?url=")
        assert "seg-001.ts" in lines[2]

    def test_segment_is_streamed(self) -> None:
        client = TestClient(_make_app(_real_gateway()))

        resp = client.get(
            "/api/v1/stream-proxy",
            params={"url": SEGMENT},
            headers={"User-Agent": BROWSER_UA},
        )

        assert resp.status_code == 200
        assert resp.content == b"\x47" * 376

    def test_bot_rejected(self) -> None:
        client = TestClient(_make_app(_real_gateway()))

        resp = client.get(
            "/api/v1/stream-proxy",
            params={"url": SEGMENT},
            headers={"User-Agent": "curl/8.4.0"},
        )

        assert resp.status_code == 403
        assert resp.json()["error"] == "automated_client_rejected"

    def test_preflight(self) -> None:
        client = TestClient(_make_app(_real_gateway()))

        resp = client.options("/api/v1/stream-proxy")

        assert resp.status_code == 200
        assert resp.headers["access-control-max-age"] == "86400"

    def test_rate_limited(self) -> None:
        client = TestClient(_make_app(_real_gateway(max_requests=1)))

        client.options("/api/v1/stream-proxy")
        resp = client.get("/api/v1/stream-proxy", params={"url": SEGMENT})

        assert resp.status_code == 429
        assert resp.headers["retry-after"] == "300"
