"""httpx transport with exponential-backoff retry on network errors and 5xx."""

from __future__ import annotations

import asyncio
import random

import httpx
import structlog

log = structlog.get_logger(__name__)


def _parse_retry_after(headers: httpx.Headers) -> float | None:
    """Parse ``Retry-After`` header value (seconds only).

    Returns the delay in seconds, or ``None`` if the header is missing
    or unparseable.
    """
    raw = headers.get("retry-after")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except (ValueError, TypeError):
        return None


def backoff_delay(
    attempt: int,
    *,
    base_delay: float,
    backoff_factor: float,
    max_delay: float,
) -> float:
    """``base_delay * backoff_factor ** attempt``, capped at ``max_delay``."""
    return min(base_delay * (backoff_factor**attempt), max_delay)


class RetryTransport(httpx.AsyncBaseTransport):
    """Wraps an httpx transport with bounded exponential backoff.

    Retries ``httpx.TransportError`` (connect/read failures, timeouts) and
    5xx responses up to *max_retries* times. 4xx responses are returned
    to the caller unchanged. Each delay is
    ``min(base_delay * backoff_factor**attempt, max_delay)`` plus a random
    jitter of at most ``jitter_ratio`` of that delay, so concurrent
    clients retrying against one upstream do not synchronize.

    Usage::

        transport = RetryTransport(httpx.AsyncHTTPTransport(), max_retries=3)
        client = httpx.AsyncClient(transport=transport)
    """

    def __init__(
        self,
        wrapped: httpx.AsyncBaseTransport,
        *,
        max_retries: int = 3,
        base_delay: float = 1.0,
        backoff_factor: float = 2.0,
        max_delay: float = 10.0,
        jitter_ratio: float = 0.1,
        rng: random.Random | None = None,
    ) -> None:
        self._wrapped = wrapped
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._backoff_factor = backoff_factor
        self._max_delay = max_delay
        self._jitter_ratio = jitter_ratio
        self._rng = rng or random.Random()  # noqa: S311

    @property
    def max_retries(self) -> int:
        return self._max_retries

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        """Send *request*, retrying network errors and 5xx with backoff."""
        for attempt in range(1 + self._max_retries):
            try:
                response = await self._wrapped.handle_async_request(request)
            except httpx.TransportError as exc:
                if attempt == self._max_retries:
                    log.warning(
                        "gateway_upstream_failed",
                        url=str(request.url),
                        error=type(exc).__name__,
                        attempts=attempt + 1,
                    )
                    raise
                delay = self._compute_delay(attempt, None)
                log.info(
                    "gateway_upstream_retry",
                    url=str(request.url),
                    error=type(exc).__name__,
                    attempt=attempt + 1,
                    delay=round(delay, 3),
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code < 500 or attempt == self._max_retries:
                return response

            # Drain + close the failed response before retrying
            await response.aread()
            await response.aclose()

            delay = self._compute_delay(attempt, response.headers)
            log.info(
                "gateway_upstream_retry",
                url=str(request.url),
                status=response.status_code,
                attempt=attempt + 1,
                delay=round(delay, 3),
            )
            await asyncio.sleep(delay)

        raise AssertionError("unreachable")  # pragma: no cover

    def _compute_delay(self, attempt: int, headers: httpx.Headers | None) -> float:
        if headers is not None:
            retry_after = _parse_retry_after(headers)
            if retry_after is not None:
                return min(retry_after, self._max_delay)

        delay = backoff_delay(
            attempt,
            base_delay=self._base_delay,
            backoff_factor=self._backoff_factor,
            max_delay=self._max_delay,
        )
        if self._jitter_ratio > 0:
            delay += self._rng.uniform(0, delay * self._jitter_ratio)
        return delay

    async def aclose(self) -> None:
        """Close the wrapped transport."""
        await self._wrapped.aclose()
