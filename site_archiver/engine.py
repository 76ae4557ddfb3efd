# File: site_archiver/engine.py
"""site_archiver.engine: orchestration of fingerprint, capture and hand-off to storage."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from site_archiver.capture.browser import BrowserFactory, launch_browser
from site_archiver.capture.models import Fingerprint
from site_archiver.capture.run import CaptureRun
from site_archiver.config import ArchiverConfig, load_config
from site_archiver.fingerprint import VersionFingerprinter
from site_archiver.logger import logger

__all__ = ["Engine", "ArchiveReport", "Uploader"]


class Uploader(Protocol):
    """Permanent-storage client; returns an opaque identifier for the folder."""

    async def upload(self, folder: Path, project_id: Optional[str], fingerprint: Optional[str]) -> str: ...


@dataclass(slots=True)
class ArchiveReport:
    """Outcome of one archive request."""

    target_url: str
    staging_dir: str
    fingerprint: Optional[str] = None
    manifest_id: Optional[str] = None
    routes: List[str] = field(default_factory=list)
    abandoned_routes: Dict[str, str] = field(default_factory=dict)
    files: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def json(self, *, pretty: bool = False) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, indent=2 if pretty else None)


class Engine:
    """Facade for the CLI and tests: fingerprint, capture, optional upload."""

    @staticmethod
    def load_config(path: Optional[str], **overrides: Any) -> ArchiverConfig:
        return load_config(path, **overrides)

    def __init__(
        self,
        config: ArchiverConfig,
        browser_factory: BrowserFactory = launch_browser,
        fingerprinter: Optional[VersionFingerprinter] = None,
    ) -> None:
        self.config = config
        self.browser_factory = browser_factory
        self.fingerprinter = fingerprinter or VersionFingerprinter(config)

    async def fingerprint(self) -> Optional[Fingerprint]:
        return await self.fingerprinter.compute()

    async def archive(
        self,
        project_id: Optional[str] = None,
        uploader: Optional[Uploader] = None,
    ) -> ArchiveReport:
        """Fingerprint the live site, capture it, and hand the folder to *uploader* if given.

        The staging folder is left in place; removing it after upload is the
        caller's job.
        """
        fingerprint = await self.fingerprint()
        digest = fingerprint.digest if fingerprint else None

        run = CaptureRun(self.config, project_id=project_id, browser_factory=self.browser_factory)
        folder = await run.run()

        report = ArchiveReport(
            target_url=str(self.config.target_url),
            staging_dir=str(folder.root),
            fingerprint=digest,
            routes=list(folder.routes),
            abandoned_routes=dict(run.abandoned),
            files=[str(p) for p in folder.files],
            skipped=list(folder.skipped),
        )

        if uploader is not None:
            logger.info("Uploading %s", folder.root)
            report.manifest_id = await uploader.upload(folder.root, project_id, digest)
            logger.info("Upload complete: %s", report.manifest_id)
        return report
