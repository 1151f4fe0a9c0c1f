"""Port for per-domain cookie persistence."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CookieJarPort(Protocol):
    """Async store of browser cookies keyed by upstream domain.

    ``load`` drops cookies whose ``expires`` timestamp lies in the past.
    """

    async def load(self, domain: str) -> list[dict[str, Any]]: ...

    async def save(self, domain: str, cookies: list[dict[str, Any]]) -> None: ...
