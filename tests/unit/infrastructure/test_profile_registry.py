"""Tests for per-domain persistent profile directories."""

from __future__ import annotations

import asyncio
from pathlib import Path

from streamrelay.infrastructure.persistence.profile_registry import (
    ProfileRegistry,
    profile_dir_name,
)


class TestProfileDirName:
    def test_sanitizes_domain(self) -> None:
        assert profile_dir_name("cloudnestra.com") == "profile_cloudnestra_com"
        assert profile_dir_name("Sub.VidSrc.xyz") == "profile_sub_vidsrc_xyz"


class TestProfileRegistry:
    async def test_acquire_creates_directory(self, tmp_path: Path) -> None:
        registry = ProfileRegistry(tmp_path)

        async with registry.acquire("vidsrc.xyz") as path:
            assert path == tmp_path / "profile_vidsrc_xyz"
            assert path.is_dir()
            assert registry.is_busy("vidsrc.xyz")

        assert not registry.is_busy("vidsrc.xyz")

    async def test_same_domain_is_exclusive(self, tmp_path: Path) -> None:
        registry = ProfileRegistry(tmp_path)
        order: list[str] = []

        async def use(tag: str) -> None:
            async with registry.acquire("vidsrc.xyz"):
                order.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                order.append(f"{tag}-out")

        await asyncio.gather(use("a"), use("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]

    async def test_different_domains_run_concurrently(self, tmp_path: Path) -> None:
        registry = ProfileRegistry(tmp_path)

        async with registry.acquire("vidsrc.xyz"):
            assert not registry.is_busy("cloudnestra.com")
            async with registry.acquire("cloudnestra.com") as other:
                assert other.name == "profile_cloudnestra_com"
