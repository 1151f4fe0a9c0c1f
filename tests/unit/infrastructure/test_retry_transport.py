"""Tests for RetryTransport (exponential backoff on 5xx and network errors)."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from streamrelay.infrastructure.common.retry_transport import (
    RetryTransport,
    backoff_delay,
)


def _make_response(
    status: int = 200,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """Build an httpx.Response for transport-level tests."""
    return httpx.Response(status_code=status, headers=headers or {})


def _make_request(url: str = "https://cdn.example.com/hls/seg-1.ts") -> httpx.Request:
    return httpx.Request("GET", url)


def _make_transport(
    responses: list | httpx.Response,
    *,
    max_retries: int = 3,
    jitter_ratio: float = 0.0,
) -> RetryTransport:
    """Create a RetryTransport with a mock inner transport."""
    mock_wrapped = AsyncMock(spec=httpx.AsyncBaseTransport)
    if isinstance(responses, list):
        mock_wrapped.handle_async_request = AsyncMock(side_effect=responses)
    else:
        mock_wrapped.handle_async_request = AsyncMock(return_value=responses)
    return RetryTransport(
        wrapped=mock_wrapped,
        max_retries=max_retries,
        base_delay=1.0,
        backoff_factor=2.0,
        max_delay=10.0,
        jitter_ratio=jitter_ratio,
    )


class TestBackoffDelay:
    def test_exponential(self) -> None:
        delays = [
            backoff_delay(a, base_delay=1.0, backoff_factor=2.0, max_delay=10.0)
            for a in range(5)
        ]
        assert delays == [1.0, 2.0, 4.0, 8.0, 10.0]


class TestRetryTransport:
    @pytest.mark.asyncio()
    async def test_passes_through_successful_response(self) -> None:
        transport = _make_transport(_make_response(200))
        resp = await transport.handle_async_request(_make_request())
        assert resp.status_code == 200

    @pytest.mark.asyncio()
    async def test_retries_5xx_with_growing_delays(self) -> None:
        responses = [_make_response(503), _make_response(502), _make_response(500), _make_response(200)]
        transport = _make_transport(responses)
        with patch("streamrelay.infrastructure.common.retry_transport.asyncio") as m:
            m.sleep = AsyncMock()
            resp = await transport.handle_async_request(_make_request())

        assert resp.status_code == 200
        assert [c.args[0] for c in m.sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio()
    async def test_no_fourth_retry(self) -> None:
        transport = _make_transport([_make_response(500)] * 4)
        with patch("streamrelay.infrastructure.common.retry_transport.asyncio") as m:
            m.sleep = AsyncMock()
            resp = await transport.handle_async_request(_make_request())

        assert resp.status_code == 500
        assert m.sleep.await_count == 3
        assert transport._wrapped.handle_async_request.call_count == 4

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("status", [400, 403, 404, 429])
    async def test_client_errors_are_not_retried(self, status: int) -> None:
        transport = _make_transport(_make_response(status))
        with patch("streamrelay.infrastructure.common.retry_transport.asyncio") as m:
            m.sleep = AsyncMock()
            resp = await transport.handle_async_request(_make_request())

        assert resp.status_code == status
        m.sleep.assert_not_awaited()
        assert transport._wrapped.handle_async_request.call_count == 1

    @pytest.mark.asyncio()
    async def test_transport_error_is_retried(self) -> None:
        responses = [httpx.ConnectError("refused"), _make_response(200)]
        transport = _make_transport(responses)
        with patch("streamrelay.infrastructure.common.retry_transport.asyncio") as m:
            m.sleep = AsyncMock()
            resp = await transport.handle_async_request(_make_request())

        assert resp.status_code == 200
        m.sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio()
    async def test_transport_error_raised_after_budget(self) -> None:
        transport = _make_transport([httpx.ReadTimeout("slow")] * 3, max_retries=2)
        with patch("streamrelay.infrastructure.common.retry_transport.asyncio") as m:
            m.sleep = AsyncMock()
            with pytest.raises(httpx.ReadTimeout):
                await transport.handle_async_request(_make_request())

        assert m.sleep.await_count == 2

    @pytest.mark.asyncio()
    async def test_retry_after_header_is_honoured_and_capped(self) -> None:
        responses = [
            _make_response(503, {"Retry-After": "3"}),
            _make_response(503, {"Retry-After": "120"}),
            _make_response(200),
        ]
        transport = _make_transport(responses)
        with patch("streamrelay.infrastructure.common.retry_transport.asyncio") as m:
            m.sleep = AsyncMock()
            await transport.handle_async_request(_make_request())

        assert [c.args[0] for c in m.sleep.await_args_list] == [3.0, 10.0]

    @pytest.mark.asyncio()
    async def test_jitter_stays_within_ratio(self) -> None:
        transport = _make_transport([_make_response(500)] * 4, jitter_ratio=0.1)
        with patch("streamrelay.infrastructure.common.retry_transport.asyncio") as m:
            m.sleep = AsyncMock()
            await transport.handle_async_request(_make_request())

        for call, base in zip(m.sleep.await_args_list, [1.0, 2.0, 4.0], strict=True):
            assert base <= call.args[0] <= base * 1.1

    @pytest.mark.asyncio()
    async def test_aclose_closes_wrapped(self) -> None:
        transport = _make_transport(_make_response(200))
        await transport.aclose()
        transport._wrapped.aclose.assert_awaited_once()
