"""Pooled upstream access with bounded per-host concurrency."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Mapping
from urllib.parse import urlparse

import httpx
import structlog

log = structlog.get_logger(__name__)

_CHUNK_SIZE = 65_536


class UpstreamStream:
    """An open upstream response holding one per-host slot.

    The slot is released exactly once, when the body has been read,
    the iterator finishes (or is cancelled), or ``aclose`` is called.
    """

    def __init__(self, response: httpx.Response, release: Callable[[], None]) -> None:
        self.response = response
        self._release = release
        self._closed = False

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.response.headers

    @property
    def url(self) -> str:
        return str(self.response.url)

    @property
    def closed(self) -> bool:
        return self._closed

    async def aread(self) -> bytes:
        try:
            return await self.response.aread()
        finally:
            await self.aclose()

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.response.aiter_bytes(_CHUNK_SIZE):
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.response.aclose()
        finally:
            self._release()


class UpstreamFetcher:
    """Sends gateway requests over one shared ``httpx.AsyncClient``.

    Retries live in the client's transport (``RetryTransport``); this
    class only bounds how many responses per host are open at once.

    Usage::

        fetcher = UpstreamFetcher(client, per_host_limit=16)
        upstream = await fetcher.open("GET", url, headers)
        async for chunk in upstream.iter_bytes():
            ...
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        per_host_limit: int = 16,
        timeout: float = 30.0,
    ) -> None:
        self._client = client
        self._per_host_limit = per_host_limit
        self._timeout = timeout
        self._slots: dict[str, asyncio.Semaphore] = {}
        self._open: dict[str, int] = {}

    def _slot_for(self, host: str) -> asyncio.Semaphore:
        slot = self._slots.get(host)
        if slot is None:
            slot = asyncio.Semaphore(self._per_host_limit)
            self._slots[host] = slot
        return slot

    def in_use(self, host: str) -> int:
        return self._open.get(host, 0)

    async def open(
        self, method: str, url: str, headers: Mapping[str, str]
    ) -> UpstreamStream:
        host = (urlparse(url).hostname or "").lower()
        slot = self._slot_for(host)
        await slot.acquire()
        try:
            request = self._client.build_request(
                method, url, headers=dict(headers), timeout=self._timeout
            )
            response = await self._client.send(request, stream=True, follow_redirects=True)
        except BaseException:
            slot.release()
            raise
        self._open[host] = self._open.get(host, 0) + 1
        log.debug(
            "gateway_upstream_opened",
            method=method,
            url=url,
            status=response.status_code,
            host=host,
        )

        def release() -> None:
            self._open[host] -= 1
            slot.release()

        return UpstreamStream(response, release)
