"""site_archiver.capture: browser-driven capture of a client-rendered site."""

from __future__ import annotations

from .models import CapturedResource, CaptureRegistry, Fingerprint, RouteRecord, StagingFolder
from .run import CaptureRun

__all__ = [
    "CaptureRun",
    "CaptureRegistry",
    "CapturedResource",
    "RouteRecord",
    "StagingFolder",
    "Fingerprint",
]
