"""Tests for response classification, ranking and the network observer."""

from __future__ import annotations

import asyncio
import random
from unittest.mock import AsyncMock, MagicMock

from streamrelay.domain.entities import Candidate, CandidateKind
from streamrelay.infrastructure.extraction.network_observer import (
    NetworkObserver,
    classify,
    looks_like_manifest,
)
from streamrelay.infrastructure.extraction.ranking import (
    PRIORITY_AUTHORITATIVE_MASTER,
    PRIORITY_MASTER,
    PRIORITY_OTHER,
    RankingPolicy,
    rank_candidates,
    select_best,
    source_tag_for,
)

AUTH_MASTER = "https://tmstr2.shadowlandschronicles.com/pl/H4sI/master.m3u8"
OTHER_MASTER = "https://cdn.example.com/hls/master.m3u8"
VARIANT = "https://cdn.example.com/hls/index-720.m3u8"
PLAYLIST = "#EXTM3U\n#EXT-X-STREAM-INF:BANDWIDTH=800000\nindex-720.m3u8\n"


def _cand(url: str, priority: int, observed_at: float, kind=CandidateKind.MANIFEST) -> Candidate:
    return Candidate(
        url=url,
        kind=kind,
        source_tag=source_tag_for(url),
        priority=priority,
        observed_at=observed_at,
    )


class TestLooksLikeManifest:
    def test_plain(self) -> None:
        assert looks_like_manifest("#EXTM3U\n")

    def test_bom_and_whitespace(self) -> None:
        assert looks_like_manifest("\ufeff \n#EXTM3U\n")
        assert looks_like_manifest(b"\xef\xbb\xbf#EXTM3U\n")

    def test_html(self) -> None:
        assert not looks_like_manifest("<html>")
        assert not looks_like_manifest(None)


class TestClassify:
    def test_authoritative_master_under_403_is_special_case(self, policy: RankingPolicy) -> None:
        c = classify(AUTH_MASTER, 403, "text/plain", PLAYLIST, policy)
        assert c is not None
        assert c.kind is CandidateKind.MANIFEST
        assert c.needs_special_headers is True
        assert c.priority == PRIORITY_AUTHORITATIVE_MASTER
        assert c.source_tag == "shadowlands"
        assert c.status_code == 403

    def test_special_case_needs_manifest_body(self, policy: RankingPolicy) -> None:
        assert classify(AUTH_MASTER, 403, "text/html", "<html>denied</html>", policy) is None

    def test_non_authoritative_error_is_dropped(self, policy: RankingPolicy) -> None:
        assert classify(OTHER_MASTER, 403, None, PLAYLIST, policy) is None

    def test_authoritative_master_under_other_errors_is_dropped(
        self, policy: RankingPolicy
    ) -> None:
        for status in (401, 404, 500, 502, 503):
            assert classify(AUTH_MASTER, status, "text/plain", PLAYLIST, policy) is None, status

    def test_special_statuses_are_configurable(self) -> None:
        policy = RankingPolicy(special_statuses=frozenset({403, 451}))
        c = classify(AUTH_MASTER, 451, "text/plain", PLAYLIST, policy)
        assert c is not None
        assert c.needs_special_headers is True

    def test_ok_manifest_by_url(self, policy: RankingPolicy) -> None:
        c = classify(OTHER_MASTER, 200, "application/octet-stream", None, policy)
        assert c is not None
        assert c.priority == PRIORITY_MASTER
        assert c.needs_special_headers is False

    def test_ok_manifest_by_body(self, policy: RankingPolicy) -> None:
        c = classify("https://cdn.example.com/api/source?id=1", 200, "text/plain", PLAYLIST, policy)
        assert c is not None
        assert c.kind is CandidateKind.MANIFEST
        assert c.priority == PRIORITY_OTHER

    def test_direct_mp4(self, policy: RankingPolicy) -> None:
        c = classify("https://cdn.example.com/v/movie.mp4", 200, "video/mp4", None, policy)
        assert c is not None
        assert c.kind is CandidateKind.DIRECT

    def test_partial_content_mp4_is_not_direct(self, policy: RankingPolicy) -> None:
        assert classify("https://cdn.example.com/v/movie.mp4", 206, "video/mp4", None, policy) is None

    def test_unrelated(self, policy: RankingPolicy) -> None:
        assert classify("https://cdn.example.com/app.js", 200, "application/javascript", None, policy) is None


class TestRanking:
    def test_priority_tiers(self, policy: RankingPolicy) -> None:
        assert policy.priority(AUTH_MASTER, CandidateKind.MANIFEST) == PRIORITY_AUTHORITATIVE_MASTER
        assert policy.priority(OTHER_MASTER, CandidateKind.MANIFEST) == PRIORITY_MASTER
        assert policy.priority(VARIANT, CandidateKind.MANIFEST) == PRIORITY_OTHER
        assert policy.priority(AUTH_MASTER, CandidateKind.DIRECT) == PRIORITY_OTHER

    def test_merged_master_tiers(self) -> None:
        merged = RankingPolicy(merge_master_tiers=True)
        assert merged.priority(OTHER_MASTER, CandidateKind.MANIFEST) == PRIORITY_AUTHORITATIVE_MASTER

    def test_subdomains_are_authoritative(self, policy: RankingPolicy) -> None:
        assert policy.is_authoritative(AUTH_MASTER)
        assert not policy.is_authoritative("https://shadowlandschronicles.com.evil.example/master.m3u8")

    def test_source_tags(self) -> None:
        assert source_tag_for(AUTH_MASTER) == "shadowlands"
        assert source_tag_for("https://cloudnestra.com/rcp/x") == "cloudnestra"
        assert source_tag_for("https://vidsrc.xyz/embed/movie") == "vidsrc"
        assert source_tag_for("https://embed.su/embed/movie/550") == "embed.su"
        assert source_tag_for("https://cdn.example.com/x") == "example"

    def test_lower_priority_wins_over_observation_order(self) -> None:
        early_other = _cand(OTHER_MASTER, PRIORITY_MASTER, observed_at=0)
        late_auth = _cand(AUTH_MASTER, PRIORITY_AUTHORITATIVE_MASTER, observed_at=5)
        assert select_best([early_other, late_auth]) == late_auth

    def test_manifest_before_direct_in_same_tier(self) -> None:
        direct = _cand("https://cdn.example.com/a.mp4", PRIORITY_OTHER, 0, CandidateKind.DIRECT)
        manifest = _cand(VARIANT, PRIORITY_OTHER, 3)
        assert rank_candidates([direct, manifest])[0] == manifest

    def test_selection_is_independent_of_input_order(self) -> None:
        candidates = [
            _cand(OTHER_MASTER, PRIORITY_MASTER, 1),
            _cand(AUTH_MASTER, PRIORITY_AUTHORITATIVE_MASTER, 4),
            _cand("https://tmstr3.shadowlandschronicles.com/pl/x/master.m3u8", PRIORITY_AUTHORITATIVE_MASTER, 2),
            _cand(VARIANT, PRIORITY_OTHER, 0),
        ]
        expected = rank_candidates(candidates)
        rng = random.Random(0)
        for _ in range(20):
            shuffled = candidates[:]
            rng.shuffle(shuffled)
            assert rank_candidates(shuffled) == expected
        assert expected[0].observed_at == 2

    def test_select_best_empty(self) -> None:
        assert select_best([]) is None


def _response(url: str, status: int, content_type: str, body: str, resource_type: str = "xhr") -> MagicMock:
    response = MagicMock()
    response.url = url
    response.status = status
    response.headers = {"content-type": content_type}
    response.request.resource_type = resource_type
    response.text = AsyncMock(return_value=body)
    return response


class TestNetworkObserver:
    async def test_attach_registers_handlers(self, policy: RankingPolicy) -> None:
        page = MagicMock()
        observer = NetworkObserver(policy).attach(page)
        events = [call.args[0] for call in page.on.call_args_list]
        assert events == ["request", "response"]
        assert isinstance(observer, NetworkObserver)

    async def test_collects_and_ranks_responses(self, policy: RankingPolicy) -> None:
        observer = NetworkObserver(policy)
        observer._on_response(_response(OTHER_MASTER, 200, "application/vnd.apple.mpegurl", PLAYLIST))
        observer._on_response(_response(AUTH_MASTER, 403, "text/plain", PLAYLIST))
        observer._on_response(_response("https://cdn.example.com/app.js", 200, "application/javascript", "", "script"))
        await observer.drain()

        urls = [c.url for c in observer.candidates]
        assert urls == [AUTH_MASTER, OTHER_MASTER]
        assert observer.best().needs_special_headers is True

    async def test_duplicate_urls_keep_first_observation(self, policy: RankingPolicy) -> None:
        observer = NetworkObserver(policy)
        observer._on_response(_response(OTHER_MASTER, 200, "application/vnd.apple.mpegurl", PLAYLIST))
        await observer.drain()
        observer._on_response(_response(OTHER_MASTER, 200, "application/vnd.apple.mpegurl", PLAYLIST))
        await observer.drain()
        assert len(observer.candidates) == 1
        assert observer.candidates[0].observed_at == 0.0

    async def test_wait_for_manifest_times_out(self, policy: RankingPolicy) -> None:
        observer = NetworkObserver(policy)
        assert await observer.wait_for_manifest(timeout=0.05, poll=0.01) is False

    async def test_wait_for_manifest_sees_late_response(self, policy: RankingPolicy) -> None:
        observer = NetworkObserver(policy)

        async def later() -> None:
            await asyncio.sleep(0.02)
            observer._on_response(_response(VARIANT, 200, "application/x-mpegURL", PLAYLIST))

        task = asyncio.create_task(later())
        assert await observer.wait_for_manifest(timeout=1.0, poll=0.01) is True
        await task

    async def test_close_cancels_inflight_inspections(self, policy: RankingPolicy) -> None:
        observer = NetworkObserver(policy)
        started = asyncio.Event()
        cancelled: list[bool] = []

        async def never_finishes() -> str:
            started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.append(True)
                raise
            return PLAYLIST  # pragma: no cover

        response = _response(AUTH_MASTER, 403, "text/plain", PLAYLIST)
        response.text = never_finishes
        observer._on_response(response)
        await started.wait()

        await observer.close()

        assert cancelled == [True]
        assert observer._pending == set()
        assert observer.candidates == []

    async def test_close_without_pending_is_noop(self, policy: RankingPolicy) -> None:
        observer = NetworkObserver(policy)
        await observer.close()
        assert observer._pending == set()
