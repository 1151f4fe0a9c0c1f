"""Stream proxy endpoint (GET/HEAD/OPTIONS).

Thin adapter: builds a ``ProxyRequest`` from the HTTP request, hands it to
``GatewayService`` and renders the ``GatewayResponse``. Streaming bodies
are passed through ``StreamingResponse``; when the client disconnects
Starlette cancels the iterator and its ``finally`` closes the upstream.
"""

from __future__ import annotations

from typing import cast

from fastapi import APIRouter, Query, Request
from fastapi.responses import Response, StreamingResponse

from streamrelay.domain.entities import ProxyRequest
from streamrelay.infrastructure.gateway import GatewayResponse
from streamrelay.interfaces.app_state import AppState

router = APIRouter(tags=["stream-proxy"])


def _client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _render(result: GatewayResponse) -> Response:
    if result.stream is not None:
        return StreamingResponse(
            result.stream,
            status_code=result.status_code,
            headers=result.headers,
        )
    return Response(
        content=result.body,
        status_code=result.status_code,
        headers=result.headers,
    )


async def _serve(request: Request, url: str | None, source: str | None) -> Response:
    state = cast(AppState, request.app.state)
    proxy_request = ProxyRequest(
        target_url=url,
        source_hint=source,
        range_header=request.headers.get("range"),
        user_agent=request.headers.get("user-agent"),
        client_key=_client_key(request),
    )
    result = await state.gateway.serve(
        proxy_request,
        method=request.method.upper(),  # type: ignore[arg-type]
        gateway_base=str(request.base_url),
    )
    return _render(result)


@router.get("/stream-proxy")
async def stream_proxy(
    request: Request,
    url: str | None = Query(None),
    source: str | None = Query(None),
) -> Response:
    return await _serve(request, url, source)


@router.head("/stream-proxy")
async def stream_proxy_head(
    request: Request,
    url: str | None = Query(None),
    source: str | None = Query(None),
) -> Response:
    return await _serve(request, url, source)


@router.options("/stream-proxy")
async def stream_proxy_options(request: Request) -> Response:
    return await _serve(request, None, None)
