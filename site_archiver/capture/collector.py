# site_archiver/capture/collector.py
"""
ResourceCollector: records every network response of the capture page
into the run's :class:`~site_archiver.capture.models.CaptureRegistry`.
"""
from __future__ import annotations

import asyncio
from typing import Set
from urllib.parse import urlparse

from site_archiver.capture.browser import BrowserPage, BrowserResponse
from site_archiver.capture.models import CapturedResource, CaptureRegistry
from site_archiver.errors import ResourceReadFailure
from site_archiver.logger import logger
from site_archiver.utils import OriginPolicy, is_http_url

__all__ = ("ResourceCollector",)

_NO_CONTENT = 204


class ResourceCollector:
    """Response listener for one capture run.

    Each response is handled in its own task; :meth:`drain` is the barrier that
    makes every write scheduled so far visible to the caller.
    """

    def __init__(self, registry: CaptureRegistry, policy: OriginPolicy) -> None:
        self.registry = registry
        self.policy = policy
        self._pending: Set[asyncio.Task[None]] = set()
        self.failed: int = 0

    def attach(self, page: BrowserPage) -> None:
        page.on_response(self._on_response)

    def _on_response(self, response: BrowserResponse) -> None:
        task = asyncio.get_running_loop().create_task(self.handle(response))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait until all responses seen so far are stored (or dropped)."""
        while self._pending:
            results = await asyncio.gather(*list(self._pending), return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    # read failures are handled in handle(); anything here is unexpected
                    self.failed += 1
                    logger.warning("Response handler failed: %r", result)

    def should_capture(self, response: BrowserResponse) -> bool:
        url = response.url
        if not is_http_url(url):
            return False
        if self.policy.is_blocked_url(url):
            logger.debug("Skipping analytics: %s", urlparse(url).hostname)
            return False
        if response.resource_type == "document":
            path = urlparse(url).path or "/"
            if path in self.registry.known_routes:
                logger.debug("Skipping route document: %s", path)
                return False
        return True

    async def handle(self, response: BrowserResponse) -> None:
        if not self.should_capture(response):
            return
        try:
            if response.status == _NO_CONTENT:
                raise ResourceReadFailure(response.url, "no content")
            body = await response.body()
        except ResourceReadFailure as exc:
            if exc.benign:
                logger.debug("No body for %s (%s)", exc.url, exc.reason)
            else:
                self.failed += 1
                logger.warning("Failed to capture %s: %s", exc.url, exc.reason)
            return
        self.registry.store(CapturedResource(response.url, body, response.resource_type))
        logger.debug("Captured: %.80s", response.url)
