# site_archiver/capture/models.py
"""
Data models shared by the capture pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Set, Tuple
from urllib.parse import urlparse


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class CapturedResource:
    """A fully read network response: exact URL, body bytes and browser resource type."""

    url: str
    body: bytes
    resource_type: str


@dataclass(slots=True, frozen=True)
class RouteRecord:
    """Rendered markup of one successfully visited route."""

    path: str
    markup: str
    had_charts: bool = False
    visited_at: datetime = field(default_factory=_utcnow)


RouteSet = Tuple[str, ...]


@dataclass(slots=True)
class CaptureRegistry:
    """Mutable state of one capture run.

    One instance per :class:`~site_archiver.capture.run.CaptureRun`; every stage
    receives it explicitly.
    """

    resources: Dict[str, CapturedResource] = field(default_factory=dict)
    routes: Dict[str, RouteRecord] = field(default_factory=dict)
    known_routes: Set[str] = field(default_factory=lambda: {"/"})

    def store(self, resource: CapturedResource) -> None:
        # last write wins
        self.resources[resource.url] = resource

    def record(self, route: RouteRecord) -> None:
        self.routes[route.path] = route

    def scripts(self) -> List[CapturedResource]:
        return [
            r for r in self.resources.values()
            if urlparse(r.url).path.lower().endswith((".js", ".mjs"))
        ]


@dataclass(slots=True)
class StagingFolder:
    """Outcome of materialization."""

    root: Path
    files: List[Path] = field(default_factory=list)
    routes: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class Fingerprint:
    """SHA-256 digest of the live homepage markup."""

    digest: str
    computed_at: datetime = field(default_factory=_utcnow)
