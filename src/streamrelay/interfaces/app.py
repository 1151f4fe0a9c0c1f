"""FastAPI application factory (create_app)."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from streamrelay.domain.entities import StreamRelayError
from streamrelay.infrastructure.config import AppConfig
from streamrelay.interfaces.app_state import AppState
from streamrelay.interfaces.composition import lifespan

log = structlog.get_logger(__name__)


async def _stream_relay_error_handler(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, StreamRelayError)
    headers = {}
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)


def create_app(config: AppConfig) -> FastAPI:
    """Create the FastAPI app. Configuration only, no resource initialization.

    Resources (HTTP client, browser sessions, stores) are created in lifespan().
    """
    app = FastAPI(
        title="streamrelay",
        description="Embed-chain stream extraction and HLS gateway",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state = AppState()
    app.state.config = config

    app.add_exception_handler(StreamRelayError, _stream_relay_error_handler)

    from streamrelay.interfaces.api.extract.router import router as extract_router
    from streamrelay.interfaces.api.proxy.router import router as proxy_router

    app.include_router(extract_router, prefix="/api/v1")
    app.include_router(proxy_router, prefix="/api/v1")

    @app.get("/api/v1/healthz")
    async def healthz() -> dict[str, str | int]:
        """Liveness probe: 200 while the process is up."""
        sessions = getattr(app.state, "browser_sessions", None)
        limiter = getattr(app.state, "rate_limiter", None)
        return {
            "status": "ok",
            "active_sessions": sessions.active_sessions if sessions else 0,
            "tracked_clients": len(limiter) if limiter is not None else 0,
        }

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ):
        start = time.perf_counter()
        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            status_code = getattr(locals().get("response", None), "status_code", 500)

            log.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=round(duration_ms, 2),
                client_host=(request.client.host if request.client else None),
            )

    return app
