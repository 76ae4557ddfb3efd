# === FILE: site_archiver/capture/visitor.py ===
"""
RouteVisitor: drives the capture page through one route at a time.

Every route, the homepage included, walks the same phases::

    NAVIGATE → SCROLL → CHART_PROBE → [NETWORK_IDLE_WAIT] → SETTLE_DELAY → CAPTURE_MARKUP → DONE

``NETWORK_IDLE_WAIT`` only runs when chart elements were found, so a chart is
not snapshotted half-drawn. A failed route is abandoned; a failed homepage
aborts the run.
"""
from __future__ import annotations

import enum
from typing import Dict, List, Sequence
from urllib.parse import urljoin

from site_archiver.capture.browser import BrowserPage
from site_archiver.capture.collector import ResourceCollector
from site_archiver.capture.models import CaptureRegistry, RouteRecord
from site_archiver.config import ArchiverConfig
from site_archiver.errors import NavigationError, PageError, RouteNavigationFailure, RunFailure
from site_archiver.logger import logger

__all__ = ("VisitPhase", "RouteVisitor", "SCROLL_SCRIPT", "CHART_SELECTOR")

CHART_SELECTOR = "canvas, svg"

# Scrolls in fixed steps until the distance covered reaches the current
# scroll height; the height is re-read each step so lazily appended content
# extends the walk. maxSteps bounds endless feeds.
SCROLL_SCRIPT = """
({step, interval, maxSteps}) => new Promise((resolve) => {
    let total = 0;
    let steps = 0;
    const timer = setInterval(() => {
        const height = document.body ? document.body.scrollHeight : 0;
        window.scrollBy(0, step);
        total += step;
        steps += 1;
        if (total >= height || steps >= maxSteps) {
            clearInterval(timer);
            resolve(height);
        }
    }, interval);
})
"""


class VisitPhase(enum.Enum):
    NAVIGATE = "navigate"
    SCROLL = "scroll"
    CHART_PROBE = "chart_probe"
    NETWORK_IDLE_WAIT = "network_idle_wait"
    SETTLE_DELAY = "settle_delay"
    CAPTURE_MARKUP = "capture_markup"
    DONE = "done"


class RouteVisitor:
    """Sequential route visits over a single :class:`BrowserPage`."""

    def __init__(
        self,
        page: BrowserPage,
        registry: CaptureRegistry,
        collector: ResourceCollector,
        config: ArchiverConfig,
    ) -> None:
        self.page = page
        self.registry = registry
        self.collector = collector
        self.config = config
        self.timeouts = config.timeouts
        self.base_url = str(config.target_url)
        self.abandoned: Dict[str, str] = {}
        # route -> phases walked, in order; kept for diagnostics and tests
        self.trace: Dict[str, List[VisitPhase]] = {}

    async def visit_homepage(self) -> RouteRecord:
        """Visit ``/``; any failure here is fatal to the run."""
        try:
            return await self.visit("/")
        except RouteNavigationFailure as exc:
            raise RunFailure(f"homepage {self.base_url} could not be loaded: {exc.reason}") from exc

    async def visit_all(self, routes: Sequence[str]) -> List[RouteRecord]:
        records: List[RouteRecord] = []
        for route in routes:
            try:
                records.append(await self.visit(route))
            except RouteNavigationFailure as exc:
                self.abandoned[route] = exc.reason
                logger.warning("Failed to visit route %s: %s", route, exc.reason)
        logger.info("Finished visiting %d routes", len(records))
        try:
            await self.page.wait_for_timeout(self.timeouts.final)
        except PageError as exc:
            logger.warning("Final delay interrupted: %s", exc.reason)
        await self.collector.drain()
        return records

    async def visit(self, route: str) -> RouteRecord:
        """Walk all phases for *route* and store its :class:`RouteRecord`.

        Raises :class:`RouteNavigationFailure` when any phase fails; nothing is
        recorded for the route in that case.
        """
        homepage = route == "/"
        url = self.base_url if homepage else urljoin(self.base_url, route)
        trace = self.trace.setdefault(route, [])
        phase = VisitPhase.NAVIGATE
        had_charts = False

        while True:
            trace.append(phase)
            logger.debug("[%s] %s", route, phase.value)
            if phase is VisitPhase.NAVIGATE:
                await self._navigate(route, url, homepage)
                phase = VisitPhase.SCROLL
                continue
            try:
                if phase is VisitPhase.SCROLL:
                    await self.page.evaluate(SCROLL_SCRIPT, self._scroll_arg())
                    phase = VisitPhase.CHART_PROBE
                elif phase is VisitPhase.CHART_PROBE:
                    had_charts = await self.page.wait_for_selector(CHART_SELECTOR, self.timeouts.chart_probe)
                    if had_charts:
                        logger.info("Chart elements found on %s", route)
                        phase = VisitPhase.NETWORK_IDLE_WAIT
                    else:
                        logger.debug("No charts detected on %s", route)
                        phase = VisitPhase.SETTLE_DELAY
                elif phase is VisitPhase.NETWORK_IDLE_WAIT:
                    idle = await self.page.wait_for_network_idle(
                        self.timeouts.idle_window, self.timeouts.network_idle
                    )
                    if not idle:
                        logger.debug("Network did not go idle on %s, continuing", route)
                    phase = VisitPhase.SETTLE_DELAY
                elif phase is VisitPhase.SETTLE_DELAY:
                    await self.page.wait_for_timeout(self._settle_delay(homepage, had_charts))
                    phase = VisitPhase.CAPTURE_MARKUP
                else:
                    await self.collector.drain()
                    markup = await self.page.content()
                    record = RouteRecord(path=route, markup=markup, had_charts=had_charts)
                    self.registry.record(record)
                    trace.append(VisitPhase.DONE)
                    return record
            except Exception as exc:
                # client-side redirects and crashes destroy the page mid-phase
                raise RouteNavigationFailure(route, f"{phase.value} failed: {exc}") from exc

    async def _navigate(self, route: str, url: str, homepage: bool) -> None:
        timeout = self.timeouts.homepage_navigation if homepage else self.timeouts.route_navigation
        logger.info("Visiting %s", url if homepage else route)
        try:
            await self.page.goto(url, timeout)
        except NavigationError as exc:
            raise RouteNavigationFailure(route, exc.reason) from exc

    def _scroll_arg(self) -> Dict[str, int]:
        return {
            "step": self.config.scroll_step,
            "interval": int(self.config.scroll_interval * 1000),
            "maxSteps": self.config.max_scroll_steps,
        }

    def _settle_delay(self, homepage: bool, had_charts: bool) -> float:
        if had_charts:
            return self.timeouts.chart_settle
        return self.timeouts.homepage_settle if homepage else self.timeouts.route_settle
