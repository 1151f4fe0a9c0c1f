"""Application state container for FastAPI dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from starlette.datastructures import State

from streamrelay.infrastructure.config import AppConfig

if TYPE_CHECKING:
    from streamrelay.application.use_cases import ExtractionOrchestrator
    from streamrelay.infrastructure.extraction import BrowserSessionFactory
    from streamrelay.infrastructure.gateway import (
        GatewayService,
        SlidingWindowRateLimiter,
    )
    from streamrelay.infrastructure.persistence import (
        DiskcacheCookieJarStore,
        ProfileRegistry,
    )


class AppState(State):
    """FastAPI application state with all DI resources.

    Lifecycle managed by composition.py::lifespan().
    """

    # Configuration
    config: AppConfig

    # Infrastructure
    http_client: httpx.AsyncClient
    cookie_store: DiskcacheCookieJarStore | None
    profiles: ProfileRegistry | None
    browser_sessions: BrowserSessionFactory

    # Gateway
    rate_limiter: SlidingWindowRateLimiter
    gateway: GatewayService

    # Application Services
    extraction_uc: ExtractionOrchestrator
