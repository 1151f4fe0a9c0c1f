"""Stream extraction use case.

MediaLocator -> origin embed URL -> chain strategies (fetch, then
automation) under one wall-clock deadline -> ResolvedStream.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence
from typing import Protocol
from urllib.parse import urlparse
from uuid import uuid4

import structlog

from streamrelay.domain.entities import (
    ChainTrace,
    ChallengeUnsolved,
    ExtractionTimeout,
    HopNotFound,
    InvalidInput,
    MediaLocator,
    MediaType,
    ProgressEvent,
    ProgressFn,
    ResolvedStream,
    StreamRelayError,
    TraceListener,
    UpstreamNotFound,
)
from streamrelay.domain.ports.chain_strategy import ChainStrategyPort

# ---------------------------------------------------------------------------
# Protocols / injected callables
# ---------------------------------------------------------------------------


class _ExtractionConfig(Protocol):
    """Configuration values consumed by ExtractionOrchestrator."""

    default_provider: str
    request_timeout_seconds: float
    challenge_retries: int


# (locator, provider name) -> origin embed URL; raises InvalidInput.
_OriginFn = Callable[[MediaLocator, str], str]
# provider name -> other provider names, best first.
_AlternatesFn = Callable[[str], list[str]]

log = structlog.get_logger(__name__)

# Errors that make a second strategy pointless.
_TERMINAL_ERRORS: tuple[type[StreamRelayError], ...] = (
    InvalidInput,
    UpstreamNotFound,
    ExtractionTimeout,
)


def _notify(
    progress: ProgressFn | None, phase: str, percent: int, message: str, **data: object
) -> None:
    if progress is not None:
        progress(ProgressEvent(phase=phase, progress=percent, message=message, data=data))


def _trace_listener(progress: ProgressFn) -> TraceListener:
    """Translate chain transitions into progress events (15-95%)."""

    def listen(trace: ChainTrace, kind: str, name: str, url: str | None) -> None:
        percent = min(95, 15 + 25 * trace.resolved_hops)
        strategy = trace.strategy
        if kind == "attempt":
            _notify(
                progress, "hop", percent, f"resolving {name} page",
                strategy=strategy, hop=name,
            )
        elif kind == "advance":
            _notify(
                progress, "hop_resolved", percent, f"chain reached {name}",
                strategy=strategy, url=url,
            )
        else:
            # fail events carry the reason in the url slot
            _notify(progress, "hop_failed", percent, url or "hop failed", strategy=strategy)

    return listen


def _positive_int(value: object, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidInput(f"{name} must be a positive integer, got {value!r}")


def validate_locator(locator: MediaLocator) -> None:
    """Raise ``InvalidInput`` for locators that cannot name a title.

    Runs before any network activity.
    """
    if not isinstance(locator.media_type, MediaType):
        raise InvalidInput(f"unknown media type {locator.media_type!r}")
    if not locator.external_id or not str(locator.external_id).strip():
        raise InvalidInput("externalId must not be empty")

    if locator.media_type is MediaType.TV:
        if locator.season is None or locator.episode is None:
            raise InvalidInput(
                "tv requests need both season and episode",
                suggestions=["pass season=<n>&episode=<n>"],
            )
        _positive_int(locator.season, "season")
        _positive_int(locator.episode, "episode")
    else:
        if locator.season is not None:
            _positive_int(locator.season, "season")
        if locator.episode is not None:
            _positive_int(locator.episode, "episode")

    if locator.source_url is not None:
        parsed = urlparse(locator.source_url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise InvalidInput(f"invalid source url: {locator.source_url[:200]}")


class ExtractionOrchestrator:
    """Resolve a media locator to one playable stream URL.

    Flow:
    1. Validate the locator (no network before this passes).
    2. Derive the origin embed URL from the provider policy, or take the
       explicit source URL.
    3. Run the strategies in order under ``request_timeout_seconds``:
       - a terminal error (invalid input, not found) stops immediately
       - any other failure falls back to the next strategy
       - ``ChallengeUnsolved`` on the last strategy gets
         ``challenge_retries`` extra whole-chain attempts
    4. Wrap anything unexpected in ``StreamRelayError`` and attach the
       request id and suggestions to every error.
    """

    def __init__(
        self,
        *,
        strategies: Sequence[ChainStrategyPort],
        config: _ExtractionConfig,
        origin_for: _OriginFn,
        alternates: _AlternatesFn,
    ) -> None:
        if not strategies:
            raise ValueError("at least one chain strategy is required")
        self._strategies = tuple(strategies)
        self._config = config
        self._origin_for = origin_for
        self._alternates = alternates

    async def execute(
        self,
        locator: MediaLocator,
        *,
        request_id: str | None = None,
        progress: ProgressFn | None = None,
    ) -> ResolvedStream:
        """Run the extraction; *progress* receives a ``ProgressEvent`` per step."""
        request_id = request_id or uuid4().hex[:12]
        provider = (locator.provider_hint or self._config.default_provider).lower()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            t0 = time.perf_counter_ns()
            try:
                stream = await self._execute(locator, provider, request_id, progress)
            except StreamRelayError as exc:
                self._decorate(exc, provider, request_id)
                log.warning(
                    "extraction_failed",
                    kind=exc.kind,
                    message=exc.message,
                    external_id=locator.external_id,
                    duration_ms=(time.perf_counter_ns() - t0) // 1_000_000,
                )
                raise
            except Exception as exc:
                log.error(
                    "extraction_crashed",
                    external_id=locator.external_id,
                    exc_info=True,
                )
                err = StreamRelayError(f"unexpected {type(exc).__name__}: {exc}")
                self._decorate(err, provider, request_id)
                raise err from exc

            log.info(
                "extraction_succeeded",
                external_id=locator.external_id,
                strategy=stream.strategy,
                source_tag=stream.source_tag,
                total_candidates=stream.total_candidates,
                duration_ms=(time.perf_counter_ns() - t0) // 1_000_000,
            )
            return stream

    # Alias kept for callers that think in terms of "extract".
    extract = execute

    async def _execute(
        self,
        locator: MediaLocator,
        provider: str,
        request_id: str,
        progress: ProgressFn | None,
    ) -> ResolvedStream:
        validate_locator(locator)
        origin = locator.source_url or self._origin_for(locator, provider)
        log.info(
            "extraction_started",
            media_type=locator.media_type.value,
            external_id=locator.external_id,
            provider=provider,
            origin_url=origin,
        )
        _notify(
            progress, "initializing", 5, "origin embed page resolved",
            provider=provider, origin_url=origin,
        )

        timeout = self._config.request_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._run_chain(origin, request_id, progress), timeout
            )
        except asyncio.TimeoutError as exc:
            raise ExtractionTimeout(
                f"extraction exceeded {timeout:g}s deadline"
            ) from exc

    async def _run_chain(
        self, origin_url: str, request_id: str, progress: ProgressFn | None
    ) -> ResolvedStream:
        last_error: StreamRelayError | None = None
        final = len(self._strategies) - 1

        for position, strategy in enumerate(self._strategies):
            attempts = 1 + (self._config.challenge_retries if position == final else 0)

            for attempt in range(attempts):
                _notify(
                    progress, "strategy", 10, f"starting {strategy.kind} strategy",
                    strategy=strategy.kind, attempt=attempt + 1,
                )
                trace = ChainTrace(
                    strategy=strategy.kind,
                    listener=_trace_listener(progress) if progress else None,
                )
                try:
                    candidates = await strategy.resolve(origin_url, trace)
                except _TERMINAL_ERRORS:
                    raise
                except ChallengeUnsolved as exc:
                    last_error = exc
                    log.info(
                        "chain_challenge_unsolved",
                        strategy=strategy.kind,
                        attempt=attempt + 1,
                        attempts=attempts,
                    )
                    _notify(
                        progress, "challenge", 10, "challenge page did not clear",
                        strategy=strategy.kind, attempt=attempt + 1,
                    )
                    continue
                except StreamRelayError as exc:
                    last_error = exc
                    log.info(
                        "chain_strategy_failed",
                        strategy=strategy.kind,
                        kind=exc.kind,
                        message=exc.message,
                        trace=trace.summary(),
                    )
                    break

                if not candidates:
                    last_error = HopNotFound(
                        f"{strategy.kind} strategy found no stream", hop="stream"
                    )
                    break

                best = candidates[0]
                return ResolvedStream(
                    url=best.url,
                    kind=best.kind,
                    source_tag=best.source_tag,
                    needs_proxy_headers=best.needs_special_headers,
                    strategy=strategy.kind,
                    total_candidates=len(candidates),
                    request_id=request_id,
                    trace=trace.summary(),
                )

            if position < final:
                next_kind = self._strategies[position + 1].kind
                log.info("chain_strategy_fallback", failed=strategy.kind, next=next_kind)
                _notify(
                    progress, "fallback", 10,
                    f"{strategy.kind} strategy failed, trying {next_kind}",
                    failed=strategy.kind, next=next_kind,
                )

        assert last_error is not None
        raise last_error

    def _decorate(self, exc: StreamRelayError, provider: str, request_id: str) -> None:
        exc.correlation_id = exc.correlation_id or request_id
        if exc.suggestions:
            return
        others = self._alternates(provider)
        if isinstance(exc, UpstreamNotFound):
            exc.suggestions = [f"try provider '{p}'" for p in others]
        elif not isinstance(exc, InvalidInput):
            exc.suggestions = ["retry in a few minutes"] + [
                f"try provider '{p}'" for p in others
            ]
