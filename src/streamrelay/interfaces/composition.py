"""Composition root: dependency injection via FastAPI lifespan."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

import httpx
import structlog
from fastapi import FastAPI

from streamrelay.application.use_cases import ExtractionOrchestrator
from streamrelay.domain.entities import MediaLocator
from streamrelay.domain.ports import ChainStrategyPort
from streamrelay.infrastructure.common.retry_transport import RetryTransport
from streamrelay.infrastructure.config.schema import AppConfig, ExtractionConfig
from streamrelay.infrastructure.extraction import (
    BrowserChainStrategy,
    BrowserSessionFactory,
    FetchChainStrategy,
    FingerprintPool,
    RankingPolicy,
    alternate_providers,
    build_hop_table,
    get_provider,
)
from streamrelay.infrastructure.gateway import (
    GatewayService,
    SlidingWindowRateLimiter,
    UpstreamFetcher,
)
from streamrelay.infrastructure.persistence import (
    DiskcacheCookieJarStore,
    ProfileRegistry,
)
from streamrelay.interfaces.app_state import AppState

log = structlog.get_logger(__name__)


def _origin_for(locator: MediaLocator, provider: str) -> str:
    return get_provider(provider).embed_url(locator)


def build_ranking_policy(ext: ExtractionConfig) -> RankingPolicy:
    return RankingPolicy(
        authoritative_domains=tuple(ext.authoritative_domains),
        master_marker=ext.master_marker,
        merge_master_tiers=ext.merge_master_tiers,
        special_statuses=frozenset(ext.special_case_statuses),
    )


def build_strategies(
    config: AppConfig,
    sessions: BrowserSessionFactory,
    policy: RankingPolicy,
) -> list[ChainStrategyPort]:
    """Enabled chain strategies in fallback order (fetch, then automation)."""
    ext = config.extraction
    hops = build_hop_table(ext.authoritative_domains)
    strategies: list[ChainStrategyPort] = []

    if ext.fetch_enabled:
        strategies.append(
            FetchChainStrategy(
                user_agent=config.http_user_agent,
                hops=hops,
                policy=policy,
                hop_timeout=ext.hop_timeout_seconds,
                hop_retries=ext.hop_retries,
                retry_delay=ext.hop_retry_delay_seconds,
            )
        )
    if ext.automation_enabled:
        strategies.append(
            BrowserChainStrategy(
                sessions,
                hops=hops,
                policy=policy,
                delay_range=(
                    config.automation_delay_min_ms / 1000.0,
                    config.automation_delay_max_ms / 1000.0,
                ),
                dwell_seconds=config.automation_dwell_seconds,
                challenge_timeout=ext.challenge_timeout_seconds,
                manifest_timeout=ext.manifest_timeout_seconds,
            )
        )
    return strategies


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan Hook: Initialize and cleanup all resources (DI Composition Root).

    Order matters:
        1. Cookie store + profile registry (used by browser sessions)
        2. HTTP client with retry transport (used by the gateway)
        3. Browser session factory + chain strategies
        4. Extraction use case
        5. Gateway (rate limiter, upstream fetcher)
    """
    state = cast(AppState, app.state)
    config = state.config

    # 1) Persisted browser state
    state.cookie_store = None
    if config.cookie_jar_enabled:
        state.cookie_store = DiskcacheCookieJarStore(config.cookie_dir)
        await state.cookie_store.__aenter__()

    state.profiles = (
        ProfileRegistry(config.profile_dir)
        if config.automation_persistent_profiles
        else None
    )

    # 2) Shared HTTP client for the gateway (keep-alive pool + 5xx retry)
    gw = config.gateway
    transport = RetryTransport(
        httpx.AsyncHTTPTransport(
            limits=httpx.Limits(
                max_connections=gw.max_connections,
                max_keepalive_connections=gw.max_connections,
            ),
        ),
        max_retries=gw.max_retries,
        base_delay=gw.base_delay_seconds,
        backoff_factor=gw.backoff_factor,
        max_delay=gw.max_delay_seconds,
        jitter_ratio=gw.jitter_ratio,
    )
    state.http_client = httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(gw.timeout_seconds),
        follow_redirects=True,
    )
    log.info(
        "http_client_initialized",
        retry_max_attempts=gw.max_retries,
        max_connections=gw.max_connections,
    )

    # 3) Browser sessions + strategies
    ext = config.extraction
    policy = build_ranking_policy(ext)
    state.browser_sessions = BrowserSessionFactory(
        fingerprints=FingerprintPool(pin_per_domain=ext.pin_fingerprint_per_domain),
        headless=config.automation_headless,
        timeout_ms=config.automation_timeout_ms,
        max_sessions=config.automation_max_sessions,
        cookie_store=state.cookie_store,
        profiles=state.profiles,
    )
    strategies = build_strategies(config, state.browser_sessions, policy)
    log.info("chain_strategies_initialized", strategies=[s.kind for s in strategies])

    # 4) Extraction use case
    state.extraction_uc = ExtractionOrchestrator(
        strategies=strategies,
        config=ext,
        origin_for=_origin_for,
        alternates=alternate_providers,
    )

    # 5) Gateway
    state.rate_limiter = SlidingWindowRateLimiter(
        window_seconds=gw.rate_limit_window_seconds,
        max_requests=gw.rate_limit_max_requests,
        block_seconds=gw.rate_limit_block_seconds,
    )
    state.gateway = GatewayService(
        UpstreamFetcher(
            state.http_client,
            per_host_limit=gw.per_host_connections,
            timeout=gw.timeout_seconds,
        ),
        state.rate_limiter,
        default_user_agent=config.http_user_agent,
        bot_patterns=gw.bot_patterns,
        bot_exemptions=gw.bot_exemptions,
        proxy_path=gw.proxy_path,
        public_base_url=gw.public_base_url,
        policy=policy,
    )
    log.info(
        "gateway_initialized",
        rate_limit=gw.rate_limit_max_requests,
        window_seconds=gw.rate_limit_window_seconds,
    )

    log.info("app_startup_complete")

    try:
        yield
    finally:
        await state.http_client.aclose()
        log.info("http_client_closed")

        if state.cookie_store is not None:
            await state.cookie_store.aclose()

        log.info("app_shutdown_complete")
