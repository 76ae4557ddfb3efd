"""site_archiver.errors: exceptions raised across the capture pipeline.

Only :class:`RunFailure` leaves a capture run; the rest degrade the output
(a missing route, resource or rewrite) and are logged where they are caught.
"""
from __future__ import annotations

from typing import Final

__all__ = [
    "ArchiverError",
    "RunFailure",
    "NavigationError",
    "PageError",
    "RouteNavigationFailure",
    "ResourceReadFailure",
    "RewriteFailure",
    "FingerprintFailure",
    "InvalidProjectId",
]

# Fragments of browser error messages that mean "there was never a body to read".
BENIGN_READ_ERRORS: Final[tuple[str, ...]] = (
    "no data found for resource",
    "unavailable for redirect",
    "evicted from inspector cache",
    "no resource with given identifier",
    "no content",
)


class ArchiverError(Exception):
    """Base class for SiteArchiver errors."""


class RunFailure(ArchiverError):
    """Fatal: the browser could not start or the homepage could not be loaded."""


class NavigationError(ArchiverError):
    """A page navigation timed out or hit a network error."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"navigation to {url} failed: {reason}")
        self.url = url
        self.reason = reason


class PageError(ArchiverError):
    """An in-page operation failed after navigation (e.g. the document was replaced)."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"page operation failed: {reason}")
        self.reason = reason


class RouteNavigationFailure(ArchiverError):
    """A single route was abandoned; the run goes on."""

    def __init__(self, route: str, reason: str) -> None:
        super().__init__(f"route {route} abandoned: {reason}")
        self.route = route
        self.reason = reason


class ResourceReadFailure(ArchiverError):
    """The body of a captured response could not be read."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"could not read {url}: {reason}")
        self.url = url
        self.reason = reason

    @property
    def benign(self) -> bool:
        reason = self.reason.lower()
        return any(fragment in reason for fragment in BENIGN_READ_ERRORS)


class RewriteFailure(ArchiverError):
    """A resource or markup file could not be rewritten and is kept as-is."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"could not rewrite {name}: {reason}")
        self.name = name
        self.reason = reason


class FingerprintFailure(ArchiverError):
    """The live homepage could not be fetched for fingerprinting."""


class InvalidProjectId(ArchiverError, ValueError):
    """A project id would escape the staging root."""
