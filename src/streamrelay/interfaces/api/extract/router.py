"""Extraction endpoints: media locator in, playable stream URL out.

``/extract`` answers once with JSON; ``/extract/progress`` streams the same
extraction as Server-Sent Events (``data: {phase, progress, message}``)
and ends with a ``complete`` or ``error`` event.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any, cast
from uuid import uuid4

import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse

from streamrelay.domain.entities import (
    InvalidInput,
    MediaLocator,
    MediaType,
    ProgressEvent,
    ResolvedStream,
    StreamRelayError,
)
from streamrelay.infrastructure.gateway import proxy_url
from streamrelay.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["extract"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Cache-Control",
    "X-Accel-Buffering": "no",
}


def request_id_for(request: Request) -> str:
    return request.headers.get("x-request-id") or uuid4().hex[:12]


def _optional_int(raw: str | None, name: str) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise InvalidInput(f"{name} must be an integer, got {raw!r}") from None


def build_locator(
    *,
    media_type: str | None,
    external_id: str | None,
    season: str | None,
    episode: str | None,
    provider: str | None,
    url: str | None,
) -> MediaLocator:
    """Map query parameters to a ``MediaLocator`` (400 on malformed values)."""
    try:
        kind = MediaType((media_type or "movie").lower())
    except ValueError:
        raise InvalidInput(
            f"mediaType must be 'movie' or 'tv', got {media_type!r}"
        ) from None

    return MediaLocator(
        media_type=kind,
        external_id=(external_id or "").strip(),
        season=_optional_int(season, "season"),
        episode=_optional_int(episode, "episode"),
        provider_hint=provider or None,
        source_url=url or None,
    )


def _locator_or_raise(request_id: str, **params: str | None) -> MediaLocator:
    try:
        return build_locator(**params)
    except StreamRelayError as exc:
        exc.correlation_id = exc.correlation_id or request_id
        raise


def present(stream: ResolvedStream, *, proxied: str) -> dict[str, Any]:
    return {
        "success": True,
        "streamUrl": stream.url,
        "proxyUrl": proxied,
        "kind": stream.kind.value,
        "sourceTag": stream.source_tag,
        "needsProxyHeaders": stream.needs_proxy_headers,
        "totalCandidates": stream.total_candidates,
        "strategy": stream.strategy,
        "requestId": stream.request_id,
    }


def _present(request: Request, stream: ResolvedStream) -> dict[str, Any]:
    state = cast(AppState, request.app.state)
    gw = state.config.gateway
    proxied = proxy_url(
        stream.url,
        gateway_base=gw.public_base_url or str(request.base_url),
        proxy_path=gw.proxy_path,
        source=stream.source_tag,
    )
    return present(stream, proxied=proxied)


def sse_event(event: ProgressEvent) -> str:
    return f"data: {json.dumps(event.to_dict())}\n\n"


@router.get("/extract")
async def extract_stream(
    request: Request,
    media_type: str | None = Query(None, alias="mediaType"),
    external_id: str | None = Query(None, alias="externalId"),
    season: str | None = Query(None),
    episode: str | None = Query(None),
    provider: str | None = Query(None),
    url: str | None = Query(None, description="Explicit embed page URL"),
) -> dict[str, Any]:
    """Resolve a movie/episode to its HLS manifest.

    Errors are raised as ``StreamRelayError`` subclasses and rendered by
    the app-level exception handler.
    """
    state = cast(AppState, request.app.state)
    request_id = request_id_for(request)

    locator = _locator_or_raise(
        request_id,
        media_type=media_type,
        external_id=external_id,
        season=season,
        episode=episode,
        provider=provider,
        url=url,
    )
    stream = await state.extraction_uc.execute(locator, request_id=request_id)
    return _present(request, stream)


@router.get("/extract/progress")
async def extract_stream_progress(
    request: Request,
    media_type: str | None = Query(None, alias="mediaType"),
    external_id: str | None = Query(None, alias="externalId"),
    season: str | None = Query(None),
    episode: str | None = Query(None),
    provider: str | None = Query(None),
    url: str | None = Query(None, description="Explicit embed page URL"),
) -> StreamingResponse:
    """Run one extraction and stream its progress as Server-Sent Events."""
    state = cast(AppState, request.app.state)
    request_id = request_id_for(request)
    queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()

    async def run() -> None:
        try:
            locator = _locator_or_raise(
                request_id,
                media_type=media_type,
                external_id=external_id,
                season=season,
                episode=episode,
                provider=provider,
                url=url,
            )
            stream = await state.extraction_uc.execute(
                locator, request_id=request_id, progress=queue.put_nowait
            )
            queue.put_nowait(
                ProgressEvent("complete", 100, "stream ready", data=_present(request, stream))
            )
        except StreamRelayError as exc:
            queue.put_nowait(ProgressEvent("error", 0, exc.message, data=exc.to_dict()))
        finally:
            queue.put_nowait(None)

    async def events() -> AsyncIterator[str]:
        task = asyncio.create_task(run())
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                log.debug("extract_progress", phase=event.phase, progress=event.progress)
                yield sse_event(event)
            await task
        finally:
            if not task.done():
                task.cancel()
                log.info("extract_progress_cancelled", request_id=request_id)

    return StreamingResponse(
        events(), media_type="text/event-stream", headers=SSE_HEADERS
    )
