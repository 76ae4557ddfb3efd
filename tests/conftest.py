# File: tests/conftest.py
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import urlparse

import pytest

from site_archiver.capture.models import CaptureRegistry
from site_archiver.config import ArchiverConfig, TimeoutsConfig
from site_archiver.errors import NavigationError, ResourceReadFailure
from site_archiver.logger import logger
from site_archiver.utils import OriginPolicy

BASE_URL = "https://app.example.com/"


class FakeResponse:
    """Stand-in for a browser response."""

    def __init__(
        self,
        url: str,
        body: bytes = b"",
        resource_type: str = "script",
        status: int = 200,
        error: Optional[str] = None,
    ) -> None:
        self.url = url
        self.status = status
        self.resource_type = resource_type
        self._body = body
        self._error = error

    async def body(self) -> bytes:
        if self._error is not None:
            raise ResourceReadFailure(self.url, self._error)
        return self._body


class FakePage:
    """In-memory BrowserPage: each path has markup and the responses its navigation emits."""

    def __init__(
        self,
        site: Dict[str, str],
        responses: Optional[Dict[str, List[FakeResponse]]] = None,
        failing: Iterable[str] = (),
        charts: Iterable[str] = (),
    ) -> None:
        self.site = site
        self.responses = responses or {}
        self.failing = set(failing)
        self.charts = set(charts)
        self.listeners: List[Callable] = []
        self.visited: List[str] = []
        self.waits: List[float] = []
        self.idle_waits: List[str] = []
        self.scrolls: List[dict] = []
        self.current: Optional[str] = None
        self.closed = False

    async def goto(self, url: str, timeout: float) -> None:
        path = urlparse(url).path or "/"
        self.visited.append(path)
        if path in self.failing:
            raise NavigationError(url, f"Timeout {int(timeout * 1000)}ms exceeded")
        self.current = path
        for response in self.responses.get(path, []):
            for listener in self.listeners:
                listener(response)

    async def evaluate(self, script: str, arg=None):
        self.scrolls.append(arg)
        return 0

    async def wait_for_selector(self, selector: str, timeout: float) -> bool:
        return self.current in self.charts

    async def wait_for_network_idle(self, idle_time: float, timeout: float) -> bool:
        self.idle_waits.append(self.current)
        return True

    async def wait_for_timeout(self, seconds: float) -> None:
        self.waits.append(seconds)

    async def content(self) -> str:
        return self.site.get(self.current, "<html><body></body></html>")

    def on_response(self, listener) -> None:
        self.listeners.append(listener)


def fake_browser(page: FakePage):
    """Browser factory yielding *page* and recording teardown."""

    @asynccontextmanager
    async def factory(config):
        try:
            yield page
        finally:
            page.closed = True

    return factory


@pytest.fixture()
def config(tmp_path: Path) -> ArchiverConfig:
    return ArchiverConfig(
        target_url=BASE_URL,
        staging_root=tmp_path / "staging",
        timeouts=TimeoutsConfig(
            chart_probe=0.1,
            network_idle=0.1,
            idle_window=0.05,
            chart_settle=0.01,
            homepage_settle=0.02,
            route_settle=0.03,
            final=0.04,
        ),
    )


@pytest.fixture()
def policy(config: ArchiverConfig) -> OriginPolicy:
    return OriginPolicy.from_config(config)


@pytest.fixture()
def registry() -> CaptureRegistry:
    return CaptureRegistry()


@pytest.fixture()
def archiver_caplog(caplog):
    """caplog wired to the project logger (which does not propagate to root)."""
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger=logger.name)
    yield caplog
    logger.removeHandler(caplog.handler)
