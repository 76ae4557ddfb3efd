# === FILE: site_archiver/capture/run.py ===
"""
CaptureRun: one end-to-end capture of a single site.

Owns the run's registry, browser page and staging directory; nothing is
shared between runs, so concurrent runs need no locking.
"""
from __future__ import annotations

import re
import shutil
import tempfile
import time
from pathlib import Path
from typing import Optional

from site_archiver.capture.browser import BrowserFactory, launch_browser
from site_archiver.capture.collector import ResourceCollector
from site_archiver.capture.discovery import RouteDiscoverer
from site_archiver.capture.models import CaptureRegistry, RouteSet, StagingFolder
from site_archiver.capture.visitor import RouteVisitor
from site_archiver.config import ArchiverConfig
from site_archiver.errors import InvalidProjectId, RunFailure
from site_archiver.logger import logger
from site_archiver.materializer import AssetMaterializer
from site_archiver.rewrite.rewriter import PathRewriter
from site_archiver.utils import OriginPolicy

__all__ = ("CaptureRun", "staging_directory")

_PROJECT_ID_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def staging_directory(config: ArchiverConfig, project_id: Optional[str] = None) -> Path:
    """Create the run's staging directory.

    With *project_id* it is ``<staging_root>/<project_id>`` (emptied if left over
    from an earlier run), otherwise a fresh temporary directory.
    """
    root = Path(config.staging_root) if config.staging_root else Path(tempfile.gettempdir())
    root.mkdir(parents=True, exist_ok=True)
    if project_id is None:
        return Path(tempfile.mkdtemp(prefix="site-archiver-", dir=root))

    if ".." in project_id or not _PROJECT_ID_RE.match(project_id):
        raise InvalidProjectId(f"invalid project id {project_id!r}: potential path traversal")
    target = (root / project_id).resolve()
    if target.parent != root.resolve():
        raise InvalidProjectId(f"invalid project id {project_id!r}: path traversal detected")
    if target.exists():
        shutil.rmtree(target)
    target.mkdir()
    return target


class CaptureRun:
    """Browser capture → route discovery → route visits → materialization."""

    def __init__(
        self,
        config: ArchiverConfig,
        project_id: Optional[str] = None,
        browser_factory: BrowserFactory = launch_browser,
    ) -> None:
        self.config = config
        self.project_id = project_id
        self.browser_factory = browser_factory
        self.registry = CaptureRegistry()
        self.policy = OriginPolicy.from_config(config)
        self.routes: RouteSet = ()
        self.abandoned: dict[str, str] = {}

    async def run(self) -> StagingFolder:
        """Execute the run; raises :class:`RunFailure` when nothing can be archived."""
        url = str(self.config.target_url)
        start = time.monotonic()
        staging = staging_directory(self.config, self.project_id)
        logger.info("Capture of %s into %s", url, staging)
        try:
            await self._capture()
            rewriter = PathRewriter(self.policy, tuple(self.config.passthrough_hosts))
            folder = AssetMaterializer(staging, rewriter, self.policy).materialize(self.registry)
        except BaseException as exc:
            shutil.rmtree(staging, ignore_errors=True)
            if isinstance(exc, RunFailure):
                logger.error("Capture of %s failed: %s", url, exc)
            raise
        duration = time.monotonic() - start
        logger.info(
            "Capture complete: %d resources, %d routes in %.2f s",
            len(self.registry.resources), len(self.registry.routes), duration,
        )
        return folder

    async def _capture(self) -> None:
        async with self.browser_factory(self.config) as page:
            collector = ResourceCollector(self.registry, self.policy)
            collector.attach(page)
            visitor = RouteVisitor(page, self.registry, collector, self.config)

            homepage = await visitor.visit_homepage()
            await collector.drain()

            discoverer = RouteDiscoverer(
                self.policy,
                max_routes=self.config.max_routes,
                reserved_prefixes=self.config.reserved_prefixes,
            )
            self.routes = discoverer.discover(homepage.markup, self.registry.scripts())
            # route documents are captured as rendered markup, not as raw responses
            self.registry.known_routes.update(self.routes)

            await visitor.visit_all(self.routes)
            self.abandoned = dict(visitor.abandoned)
        logger.info("Captured %d resources", len(self.registry.resources))
