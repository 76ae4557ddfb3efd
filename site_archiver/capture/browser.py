# site_archiver/capture/browser.py
"""
Browser abstraction for the capture pipeline.

The pipeline only talks to :class:`BrowserPage`; :func:`launch_browser` provides
the Playwright-backed implementation. Tests substitute a fake page.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Protocol, Set

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Request, Response, async_playwright

from site_archiver.config import ArchiverConfig
from site_archiver.errors import NavigationError, PageError, ResourceReadFailure, RunFailure
from site_archiver.logger import logger

__all__ = (
    "BrowserResponse",
    "BrowserPage",
    "BrowserFactory",
    "PlaywrightPage",
    "launch_browser",
)


class BrowserResponse(Protocol):
    """A network response observed on the page."""

    url: str
    status: int
    resource_type: str

    async def body(self) -> bytes:
        """Full response body; raises ResourceReadFailure when unavailable."""
        ...


ResponseListener = Callable[[BrowserResponse], None]


class BrowserPage(Protocol):
    """Navigate / evaluate / listen-for-response surface used by the pipeline."""

    async def goto(self, url: str, timeout: float) -> None:
        """Navigate and wait for the network to go quiet; raises NavigationError."""
        ...

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run *script* in the page; raises PageError."""
        ...

    async def wait_for_selector(self, selector: str, timeout: float) -> bool:
        """True when *selector* appears within *timeout* seconds."""
        ...

    async def wait_for_network_idle(self, idle_time: float, timeout: float) -> bool:
        """True when no request was in flight for *idle_time* seconds."""
        ...

    async def wait_for_timeout(self, seconds: float) -> None:
        """Sleep in the page; raises PageError when the page is gone."""
        ...

    async def content(self) -> str:
        """Serialized DOM; raises PageError."""
        ...

    def on_response(self, listener: ResponseListener) -> None: ...


BrowserFactory = Callable[[ArchiverConfig], AsyncContextManager[BrowserPage]]


class PlaywrightResponse:
    """Adapter over :class:`playwright.async_api.Response`."""

    __slots__ = ("_response", "url", "status", "resource_type")

    def __init__(self, response: Response) -> None:
        self._response = response
        self.url: str = response.url
        self.status: int = response.status
        self.resource_type: str = response.request.resource_type

    async def body(self) -> bytes:
        try:
            return await self._response.body()
        except PlaywrightError as exc:
            raise ResourceReadFailure(self.url, exc.message) from exc


class _InflightTracker:
    """Counts requests in flight to implement an idle-window wait."""

    def __init__(self, page: Page) -> None:
        self._inflight: Set[Request] = set()
        self._last_change = asyncio.get_running_loop().time()
        page.on("request", self._started)
        page.on("requestfinished", self._finished)
        page.on("requestfailed", self._finished)

    def _started(self, request: Request) -> None:
        self._inflight.add(request)
        self._last_change = asyncio.get_running_loop().time()

    def _finished(self, request: Request) -> None:
        self._inflight.discard(request)
        self._last_change = asyncio.get_running_loop().time()

    async def wait_idle(self, idle_time: float, timeout: float, poll: float = 0.05) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            now = loop.time()
            if not self._inflight and now - self._last_change >= idle_time:
                return True
            if now >= deadline:
                return False
            await asyncio.sleep(poll)


class PlaywrightPage:
    """:class:`BrowserPage` implementation over a Playwright page."""

    def __init__(self, page: Page) -> None:
        self._page = page
        self._tracker = _InflightTracker(page)

    async def goto(self, url: str, timeout: float) -> None:
        try:
            await self._page.goto(url, wait_until="networkidle", timeout=timeout * 1000)
        except PlaywrightError as exc:
            raise NavigationError(url, exc.message) from exc

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            return await self._page.evaluate(script, arg)
        except PlaywrightError as exc:
            raise PageError(exc.message) from exc

    async def wait_for_selector(self, selector: str, timeout: float) -> bool:
        try:
            await self._page.wait_for_selector(selector, state="attached", timeout=timeout * 1000)
        except PlaywrightError:
            return False
        return True

    async def wait_for_network_idle(self, idle_time: float, timeout: float) -> bool:
        return await self._tracker.wait_idle(idle_time, timeout)

    async def wait_for_timeout(self, seconds: float) -> None:
        if seconds <= 0:
            return
        try:
            await self._page.wait_for_timeout(seconds * 1000)
        except PlaywrightError as exc:
            raise PageError(exc.message) from exc

    async def content(self) -> str:
        try:
            return await self._page.content()
        except PlaywrightError as exc:
            raise PageError(exc.message) from exc

    def on_response(self, listener: ResponseListener) -> None:
        self._page.on("response", lambda response: listener(PlaywrightResponse(response)))


@asynccontextmanager
async def launch_browser(config: ArchiverConfig) -> AsyncIterator[BrowserPage]:
    """Start Chromium, yield one page, always close the browser on exit."""
    async with async_playwright() as pw:
        try:
            browser = await pw.chromium.launch(
                headless=config.headless,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
        except PlaywrightError as exc:
            raise RunFailure(f"browser launch failed: {exc.message}") from exc
        logger.debug("Browser launched (headless=%s)", config.headless)
        try:
            context = await browser.new_context(user_agent=config.browser_user_agent)
            page = await context.new_page()
            yield PlaywrightPage(page)
        finally:
            await browser.close()
            logger.debug("Browser closed")

