"""Tests for the diskcache-backed cookie jar store."""

from __future__ import annotations

from pathlib import Path

import pytest

from streamrelay.domain.ports import CookieJarPort
from streamrelay.infrastructure.persistence.cookie_jar_store import (
    DiskcacheCookieJarStore,
)

NOW = 1_700_000_000.0


def _cookie(name: str, expires: float) -> dict:
    return {
        "name": name,
        "value": "v",
        "domain": ".cloudnestra.com",
        "path": "/",
        "expires": expires,
        "httpOnly": True,
        "secure": True,
        "sameSite": "None",
    }


@pytest.fixture()
async def store(tmp_path: Path):
    async with DiskcacheCookieJarStore(tmp_path / "cookies", clock=lambda: NOW) as s:
        yield s


class TestDiskcacheCookieJarStore:
    def test_satisfies_port(self, tmp_path: Path) -> None:
        assert isinstance(DiskcacheCookieJarStore(tmp_path), CookieJarPort)

    async def test_unknown_domain_is_empty(self, store: DiskcacheCookieJarStore) -> None:
        assert await store.load("cloudnestra.com") == []

    async def test_save_then_load(self, store: DiskcacheCookieJarStore) -> None:
        cookies = [_cookie("cf_clearance", NOW + 3600), _cookie("session", -1)]
        await store.save("cloudnestra.com", cookies)

        assert await store.load("cloudnestra.com") == cookies

    async def test_expired_cookies_are_dropped_on_save(self, store: DiskcacheCookieJarStore) -> None:
        await store.save(
            "cloudnestra.com",
            [_cookie("old", NOW - 1), _cookie("fresh", NOW + 60)],
        )

        names = [c["name"] for c in await store.load("cloudnestra.com")]
        assert names == ["fresh"]

    async def test_cookies_expire_between_save_and_load(self, tmp_path: Path) -> None:
        now = [NOW]
        async with DiskcacheCookieJarStore(tmp_path, clock=lambda: now[0]) as store:
            await store.save("vidsrc.xyz", [_cookie("short", NOW + 10)])
            now[0] += 11
            assert await store.load("vidsrc.xyz") == []

    async def test_domains_are_isolated(self, store: DiskcacheCookieJarStore) -> None:
        await store.save("vidsrc.xyz", [_cookie("a", -1)])

        assert await store.load("cloudnestra.com") == []

    async def test_persists_across_reopen(self, tmp_path: Path) -> None:
        async with DiskcacheCookieJarStore(tmp_path, clock=lambda: NOW) as store:
            await store.save("vidsrc.xyz", [_cookie("a", NOW + 60)])
        async with DiskcacheCookieJarStore(tmp_path, clock=lambda: NOW) as store:
            assert len(await store.load("vidsrc.xyz")) == 1

    async def test_requires_open(self, tmp_path: Path) -> None:
        store = DiskcacheCookieJarStore(tmp_path)
        with pytest.raises(RuntimeError, match="not initialized"):
            await store.load("vidsrc.xyz")
