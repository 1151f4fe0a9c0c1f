"""Human-like interaction primitives for an automated page."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

log = structlog.get_logger(__name__)

Point = tuple[float, float]
SleepFn = Callable[[float], Awaitable[None]]

_CONTROL_SPREAD = 200.0  # control points land within +/-100px of the ends
_MIN_STEPS = 20
_MAX_STEPS = 40
_STEP_DELAY = (0.010, 0.030)
_SCROLL_STEP_PX = 10
_SCROLL_DELAY = (0.020, 0.050)
_DWELL_PAUSE = (0.3, 0.8)
_MAX_DWELL_ITERATIONS = 50


def bezier_path(
    start: Point,
    end: Point,
    steps: int,
    rng: random.Random,
) -> list[Point]:
    """Cubic Bezier from *start* to *end* with ``steps + 1`` points.

    Control points are offset from each endpoint by at most
    ``_CONTROL_SPREAD / 2`` on both axes. The first and last points are
    exactly *start* and *end*.
    """
    cp1 = (
        start[0] + (rng.random() - 0.5) * _CONTROL_SPREAD,
        start[1] + (rng.random() - 0.5) * _CONTROL_SPREAD,
    )
    cp2 = (
        end[0] + (rng.random() - 0.5) * _CONTROL_SPREAD,
        end[1] + (rng.random() - 0.5) * _CONTROL_SPREAD,
    )
    points: list[Point] = []
    for i in range(steps + 1):
        t = i / steps
        u = 1 - t
        x = u**3 * start[0] + 3 * u**2 * t * cp1[0] + 3 * u * t**2 * cp2[0] + t**3 * end[0]
        y = u**3 * start[1] + 3 * u**2 * t * cp1[1] + 3 * u * t**2 * cp2[1] + t**3 * end[1]
        points.append((round(x), round(y)))
    return points


class HumanBehavior:
    """Pointer, scroll and click simulation bound to one page.

    *delay_range* is ``(min, max)`` seconds for pauses between actions.
    *sleep* and *rng* are injectable so the timing can be asserted.

    Usage::

        human = HumanBehavior(page, delay_range=(0.5, 3.0))
        await human.dwell(3.0)
        await human.click("#pl_but")
    """

    def __init__(
        self,
        page: Page,
        *,
        delay_range: tuple[float, float] = (0.5, 3.0),
        viewport: tuple[int, int] = (1366, 768),
        rng: random.Random | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        low, high = delay_range
        if low < 0 or low > high:
            raise ValueError("delay_range must satisfy 0 <= min <= max")
        self._page = page
        self._delay_range = delay_range
        self._viewport = viewport
        self._rng = rng or random.Random()  # noqa: S311
        self._sleep = sleep
        self._pos: Point = (viewport[0] / 2, viewport[1] / 2)

    async def _wait(self, low: float, high: float) -> float:
        delay = low + self._rng.random() * (high - low)
        await self._sleep(delay)
        return delay

    async def pause(self) -> float:
        """Sleep a random duration from the configured delay range."""
        return await self._wait(*self._delay_range)

    async def move_to(self, target: Point) -> float:
        """Move the pointer to *target* along a Bezier path."""
        steps = self._rng.randint(_MIN_STEPS, _MAX_STEPS)
        spent = 0.0
        for x, y in bezier_path(self._pos, target, steps, self._rng):
            await self._page.mouse.move(x, y)
            spent += await self._wait(*_STEP_DELAY)
        self._pos = target
        return spent

    async def wander(self) -> float:
        width, height = self._viewport
        target = (self._rng.random() * width, self._rng.random() * height)
        return await self.move_to(target)

    async def smooth_scroll(self, distance: float) -> float:
        steps = int(abs(distance) // _SCROLL_STEP_PX)
        if steps == 0:
            return 0.0
        step = distance / steps
        spent = 0.0
        for _ in range(steps):
            await self._page.mouse.wheel(0, step)
            spent += await self._wait(*_SCROLL_DELAY)
        return spent

    async def dwell(self, duration: float) -> None:
        """Simulated reading: random scrolls and pointer moves for *duration*.

        Elapsed time is the sum of the simulated waits, and the loop is
        capped at a fixed iteration count.
        """
        elapsed = 0.0
        iterations = 0
        while elapsed < duration and iterations < _MAX_DWELL_ITERATIONS:
            iterations += 1
            if self._rng.random() > 0.7:
                elapsed += await self.smooth_scroll(self._rng.random() * 200 - 100)
            if self._rng.random() > 0.5:
                elapsed += await self.wander()
            elapsed += await self._wait(*_DWELL_PAUSE)
        log.debug("human_dwell_done", elapsed=round(elapsed, 2), iterations=iterations)

    async def click(self, selector: str, *, timeout_ms: int = 3000) -> bool:
        """Move to the element centre, pause, click.

        Returns ``False`` when the element is missing or not visible.
        """
        try:
            element = await self._page.wait_for_selector(
                selector, state="visible", timeout=timeout_ms
            )
        except PlaywrightError:
            return False
        if element is None:
            return False
        box = await element.bounding_box()
        if box is None:
            return False

        target = (box["x"] + box["width"] / 2, box["y"] + box["height"] / 2)
        await self.move_to(target)
        await self._wait(0.1, 0.3)
        await self._page.mouse.click(target[0], target[1])
        log.debug("human_click", selector=selector)
        return True
