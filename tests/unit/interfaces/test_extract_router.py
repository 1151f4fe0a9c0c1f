"""Tests for the extraction endpoint."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from streamrelay.domain.entities import (
    CandidateKind,
    ChallengeUnsolved,
    InvalidInput,
    MediaLocator,
    MediaType,
    ProgressEvent,
    ResolvedStream,
    UpstreamNotFound,
)
from streamrelay.infrastructure.config import AppConfig
from streamrelay.interfaces.api.extract.router import build_locator
from streamrelay.interfaces.app import create_app

MASTER = "https://tmstr2.shadowlandschronicles.com/pl/H4sI/master.m3u8"


def _stream(**kwargs) -> ResolvedStream:
    kwargs.setdefault("url", MASTER)
    kwargs.setdefault("kind", CandidateKind.MANIFEST)
    kwargs.setdefault("source_tag", "shadowlands")
    kwargs.setdefault("needs_proxy_headers", True)
    kwargs.setdefault("strategy", "automation")
    kwargs.setdefault("total_candidates", 3)
    kwargs.setdefault("request_id", "req-1")
    return ResolvedStream(**kwargs)


def _make_app(execute: AsyncMock, config: AppConfig | None = None) -> FastAPI:
    """Create the app without running its lifespan; wire a mock use case."""
    app = create_app(config or AppConfig())
    app.state.extraction_uc = AsyncMock()
    app.state.extraction_uc.execute = execute
    return app


class TestBuildLocator:
    def test_defaults_to_movie(self) -> None:
        locator = build_locator(
            media_type=None, external_id=" 550 ", season=None, episode=None, provider=None, url=None
        )
        assert locator == MediaLocator(media_type=MediaType.MOVIE, external_id="550")

    def test_tv(self) -> None:
        locator = build_locator(
            media_type="TV", external_id="1399", season="1", episode="2", provider="vidsrc", url=""
        )
        assert locator.media_type is MediaType.TV
        assert (locator.season, locator.episode) == (1, 2)
        assert locator.provider_hint == "vidsrc"
        assert locator.source_url is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"media_type": "anime"},
            {"season": "one"},
            {"episode": "2.5"},
        ],
    )
    def test_malformed(self, kwargs: dict) -> None:
        params = {
            "media_type": "tv",
            "external_id": "1399",
            "season": "1",
            "episode": "2",
            "provider": None,
            "url": None,
        }
        params.update(kwargs)
        with pytest.raises(InvalidInput):
            build_locator(**params)


class TestExtractEndpoint:
    def test_success_payload(self) -> None:
        execute = AsyncMock(return_value=_stream())
        client = TestClient(_make_app(execute))

        resp = client.get("/api/v1/extract?mediaType=movie&externalId=550")

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["streamUrl"] == MASTER
        assert body["needsProxyHeaders"] is True
        assert body["sourceTag"] == "shadowlands"
        assert body["kind"] == "manifest"
        assert body["totalCandidates"] == 3
        assert body["proxyUrl"].startswith("http://testserver/api/v1/stream-proxy?url=https%3A%2F%2F")
        assert body["proxyUrl"].endswith("&source=shadowlands")

    def test_locator_and_request_id_forwarded(self) -> None:
        execute = AsyncMock(return_value=_stream())
        client = TestClient(_make_app(execute))

        client.get(
            "/api/v1/extract?mediaType=tv&externalId=1399&season=1&episode=2&provider=vidsrc-net",
            headers={"X-Request-Id": "abc123"},
        )

        locator: MediaLocator = execute.call_args[0][0]
        assert locator.media_type is MediaType.TV
        assert (locator.season, locator.episode) == (1, 2)
        assert locator.provider_hint == "vidsrc-net"
        assert execute.call_args.kwargs["request_id"] == "abc123"

    def test_public_base_url_used_for_proxy_url(self) -> None:
        config = AppConfig(gateway={"public_base_url": "https://relay.example.org"})
        client = TestClient(_make_app(AsyncMock(return_value=_stream()), config))

        body = client.get("/api/v1/extract?externalId=550").json()

        assert body["proxyUrl"].startswith("https://relay.example.org/api/v1/stream-proxy?url=")

    def test_malformed_season_is_400(self) -> None:
        execute = AsyncMock(return_value=_stream())
        client = TestClient(_make_app(execute))

        resp = client.get("/api/v1/extract?mediaType=tv&externalId=1399&season=x&episode=1")

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_input"
        execute.assert_not_awaited()

    def test_not_found_is_404(self) -> None:
        err = UpstreamNotFound("origin 404", correlation_id="r1", suggestions=["try provider 'vidsrc-net'"])
        client = TestClient(_make_app(AsyncMock(side_effect=err)))

        resp = client.get("/api/v1/extract?externalId=999999999")

        assert resp.status_code == 404
        body = resp.json()
        assert body == {
            "success": False,
            "error": "not_found",
            "category": "not_found",
            "message": "origin 404",
            "suggestions": ["try provider 'vidsrc-net'"],
            "requestId": "r1",
        }

    def test_mechanical_failure_is_502(self) -> None:
        client = TestClient(_make_app(AsyncMock(side_effect=ChallengeUnsolved("cf"))))

        resp = client.get("/api/v1/extract?externalId=550")

        assert resp.status_code == 502
        assert resp.json()["error"] == "challenge_unsolved"

    def test_invalid_input_carries_request_id_header(self) -> None:
        execute = AsyncMock(return_value=_stream())
        client = TestClient(_make_app(execute))

        resp = client.get(
            "/api/v1/extract?mediaType=book&externalId=550", headers={"X-Request-Id": "abc123"}
        )

        assert resp.status_code == 400
        assert resp.json()["requestId"] == "abc123"
        execute.assert_not_awaited()

    def test_invalid_input_gets_generated_request_id(self) -> None:
        client = TestClient(_make_app(AsyncMock(return_value=_stream())))

        body = client.get("/api/v1/extract?mediaType=book&externalId=550").json()

        assert isinstance(body["requestId"], str)
        assert len(body["requestId"]) == 12

    def test_generated_request_id_is_forwarded(self) -> None:
        execute = AsyncMock(return_value=_stream())
        client = TestClient(_make_app(execute))

        client.get("/api/v1/extract?externalId=550")

        request_id = execute.call_args.kwargs["request_id"]
        assert isinstance(request_id, str)
        assert len(request_id) == 12


def _sse_events(text: str) -> list[dict]:
    return [
        json.loads(block[len("data: "):])
        for block in text.split("\n\n")
        if block.startswith("data: ")
    ]


class TestExtractProgressEndpoint:
    def test_streams_progress_then_result(self) -> None:
        async def execute(locator, *, request_id=None, progress=None):
            progress(ProgressEvent("initializing", 5, "origin embed page resolved"))
            progress(ProgressEvent("hop", 15, "resolving embed page", data={"hop": "embed"}))
            return _stream(request_id=request_id)

        client = TestClient(_make_app(AsyncMock(side_effect=execute)))

        resp = client.get(
            "/api/v1/extract/progress?externalId=550", headers={"X-Request-Id": "sse-1"}
        )

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        assert resp.headers["cache-control"] == "no-cache"
        events = _sse_events(resp.text)
        assert [e["phase"] for e in events] == ["initializing", "hop", "complete"]
        assert events[1]["hop"] == "embed"
        final = events[-1]
        assert final["progress"] == 100
        assert final["success"] is True
        assert final["streamUrl"] == MASTER
        assert final["requestId"] == "sse-1"
        assert final["proxyUrl"].startswith("http://testserver/api/v1/stream-proxy?url=")

    def test_failure_ends_with_error_event(self) -> None:
        async def execute(locator, *, request_id=None, progress=None):
            progress(ProgressEvent("strategy", 10, "starting fetch strategy"))
            raise ChallengeUnsolved("challenge did not clear", correlation_id=request_id)

        client = TestClient(_make_app(AsyncMock(side_effect=execute)))

        resp = client.get(
            "/api/v1/extract/progress?externalId=550", headers={"X-Request-Id": "sse-2"}
        )

        events = _sse_events(resp.text)
        assert [e["phase"] for e in events] == ["strategy", "error"]
        error = events[-1]
        assert error["progress"] == 0
        assert error["error"] == "challenge_unsolved"
        assert error["message"] == "challenge did not clear"
        assert error["requestId"] == "sse-2"

    def test_invalid_locator_is_reported_as_event(self) -> None:
        execute = AsyncMock(return_value=_stream())
        client = TestClient(_make_app(execute))

        resp = client.get(
            "/api/v1/extract/progress?mediaType=book&externalId=550",
            headers={"X-Request-Id": "sse-3"},
        )

        assert resp.status_code == 200
        (event,) = _sse_events(resp.text)
        assert event["phase"] == "error"
        assert event["error"] == "invalid_input"
        assert event["requestId"] == "sse-3"
        execute.assert_not_awaited()
