"""Automation strategy: walk the hop table in a real, stealth browser."""

from __future__ import annotations

import asyncio
import random

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from streamrelay.domain.entities import (
    Candidate,
    ChainTrace,
    ChallengeUnsolved,
    Hop,
    HopNotFound,
    StrategyKind,
    UpstreamNotFound,
    UpstreamTransientError,
)

from .browser_session import BrowserSessionFactory, ExtractionSession
from .challenge import looks_like_challenge, wait_for_challenge_clear
from .hops import HOP_TABLE, PLAY_BUTTON_SELECTORS, resolve_hop
from .human import HumanBehavior, SleepFn
from .network_observer import NetworkObserver
from .patterns import is_valid_absolute_url
from .ranking import RankingPolicy

log = structlog.get_logger(__name__)


class BrowserChainStrategy:
    """Resolve the embed chain by driving Chromium through every hop.

    Intermediate hops are pattern-matched on the rendered DOM (and child
    frame URLs); hops with gesture selectors get a human-like click when
    the next URL is not yet present. The final hop defers to the
    ``NetworkObserver``: whatever manifest the player actually requests
    wins, ranked by ``RankingPolicy``.
    """

    kind: StrategyKind = "automation"

    def __init__(
        self,
        sessions: BrowserSessionFactory,
        *,
        hops: tuple[Hop, ...] = HOP_TABLE,
        policy: RankingPolicy | None = None,
        delay_range: tuple[float, float] = (0.5, 3.0),
        dwell_seconds: float = 3.0,
        challenge_timeout: float = 15.0,
        manifest_timeout: float = 15.0,
        rng: random.Random | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._sessions = sessions
        self._hops = hops
        self._policy = policy or RankingPolicy()
        self._delay_range = delay_range
        self._dwell_seconds = dwell_seconds
        self._challenge_timeout = challenge_timeout
        self._manifest_timeout = manifest_timeout
        self._rng = rng
        self._sleep = sleep

    async def resolve(self, origin_url: str, trace: ChainTrace) -> list[Candidate]:
        async with self._sessions.open(origin_url) as session:
            observer = NetworkObserver(self._policy).attach(session.page)
            human = HumanBehavior(
                session.page,
                delay_range=self._delay_range,
                viewport=session.viewport,
                rng=self._rng,
                sleep=self._sleep,
            )
            try:
                return await self._walk(session, human, observer, origin_url, trace)
            except Exception as exc:
                if not trace.finished:
                    trace.fail(f"{self._hops[session.hop_index].name}: {type(exc).__name__}")
                raise
            finally:
                await observer.close()

    async def _walk(
        self,
        session: ExtractionSession,
        human: HumanBehavior,
        observer: NetworkObserver,
        origin_url: str,
        trace: ChainTrace,
    ) -> list[Candidate]:
        page_url = origin_url
        referer: str | None = None
        last = len(self._hops) - 1

        for index, hop in enumerate(self._hops):
            trace.begin_hop(index, hop.name)
            session.hop_index = index
            content = await self._visit(session, human, page_url, referer, index == 0)

            if index == last:
                manifest = await self._observe_manifest(session, human, observer, hop)
                trace.advance(manifest.url)
                trace.advance(manifest.url)
                candidates = observer.candidates
                log.info(
                    "chain_stream_observed",
                    strategy=self.kind,
                    url=manifest.url,
                    total=len(candidates),
                )
                return candidates

            next_url = await self._next_url(session, human, hop, content, page_url)
            trace.advance(next_url)
            log.info("chain_hop_resolved", strategy=self.kind, hop=hop.name, next_url=next_url)
            referer, page_url = page_url, next_url

        raise HopNotFound("hop table is empty")  # pragma: no cover

    # ------------------------------------------------------------------
    # Hop steps
    # ------------------------------------------------------------------

    async def _visit(
        self,
        session: ExtractionSession,
        human: HumanBehavior,
        url: str,
        referer: str | None,
        is_origin: bool,
    ) -> str:
        page = session.page
        try:
            response = await page.goto(url, referer=referer, wait_until="domcontentloaded")
        except PlaywrightTimeoutError as exc:
            raise UpstreamTransientError(f"navigation timed out: {url}") from exc
        except PlaywrightError as exc:
            raise UpstreamTransientError(f"navigation failed: {url}") from exc

        if response is not None and response.status == 404 and is_origin:
            raise UpstreamNotFound(f"origin has no such title: {url}")

        if looks_like_challenge(await page.content()):
            cleared = await wait_for_challenge_clear(page, timeout=self._challenge_timeout)
            if not cleared:
                raise ChallengeUnsolved(f"challenge did not clear at {url}")

        await human.dwell(self._dwell_seconds)
        return await page.content()

    async def _next_url(
        self,
        session: ExtractionSession,
        human: HumanBehavior,
        hop: Hop,
        content: str,
        page_url: str,
    ) -> str:
        try:
            return self._match(session, hop, content, page_url)
        except HopNotFound:
            if not hop.gesture_selectors:
                raise

        if await self._gesture(human, hop.gesture_selectors):
            await human.pause()
            return self._match(session, hop, await session.page.content(), page_url)
        raise HopNotFound(f"no gesture target on {hop.name} page", hop=hop.name)

    def _match(
        self, session: ExtractionSession, hop: Hop, content: str, page_url: str
    ) -> str:
        try:
            return resolve_hop(hop, content, page_url)
        except HopNotFound:
            # Script-created iframes show up as child frames, not markup.
            for frame in session.page.frames:
                if hop.accepted_next_marker in frame.url and is_valid_absolute_url(frame.url):
                    return frame.url
            raise

    async def _gesture(self, human: HumanBehavior, selectors: tuple[str, ...]) -> bool:
        for selector in selectors:
            if await human.click(selector, timeout_ms=1500):
                log.info("chain_gesture", selector=selector)
                return True
        return False

    async def _observe_manifest(
        self,
        session: ExtractionSession,
        human: HumanBehavior,
        observer: NetworkObserver,
        hop: Hop,
    ) -> Candidate:
        if not await observer.wait_for_manifest(timeout=self._manifest_timeout):
            # Some players only request the playlist after a click.
            await self._gesture(human, hop.gesture_selectors or PLAY_BUTTON_SELECTORS)
            await observer.wait_for_manifest(timeout=self._manifest_timeout)

        best = observer.best()
        if best is None:
            raise HopNotFound(f"no manifest observed on {hop.name} page", hop=hop.name)
        return best
