"""Tests for media value objects."""

from __future__ import annotations

import dataclasses

import pytest

from streamrelay.domain.entities import (
    Candidate,
    CandidateKind,
    Fingerprint,
    MediaLocator,
    MediaType,
    RateLimitEntry,
)


class TestMediaLocator:
    def test_is_frozen(self, movie_locator: MediaLocator) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            movie_locator.external_id = "551"  # type: ignore[misc]

    def test_media_type_values(self) -> None:
        assert MediaType("movie") is MediaType.MOVIE
        assert MediaType("tv") is MediaType.TV


class TestCandidate:
    def test_defaults(self) -> None:
        c = Candidate(
            url="https://cdn.example.com/index.m3u8",
            kind=CandidateKind.MANIFEST,
            source_tag="example",
        )
        assert c.priority == 2
        assert c.needs_special_headers is False


class TestFingerprint:
    def test_locale_is_first_language(self, fingerprint: Fingerprint) -> None:
        assert fingerprint.locale == "en-US"


class TestRateLimitEntry:
    def test_not_blocked_without_deadline(self) -> None:
        entry = RateLimitEntry(client_key="1.2.3.4")
        assert not entry.is_blocked(10.0)
        assert entry.request_count == 0
        assert entry.window_start is None

    def test_blocked_until_deadline(self) -> None:
        entry = RateLimitEntry(client_key="1.2.3.4", blocked_until=50.0)
        assert entry.is_blocked(49.9)
        assert not entry.is_blocked(50.0)

    def test_expire_drops_hits_older_than_window(self) -> None:
        entry = RateLimitEntry(client_key="1.2.3.4")
        entry.hits.extend([0.0, 30.0, 59.0])

        entry.expire(60.0, 60.0)

        assert list(entry.hits) == [30.0, 59.0]
        assert entry.window_start == 30.0
        assert entry.request_count == 2
