# File: site_archiver/materializer.py
"""site_archiver.materializer: writes the capture registry to a staging folder.

Layout of the staging folder::

    index.html                      homepage markup
    <route>/index.html              markup of every visited route
    <same-origin path>              captured same-origin resources
    _external/<host>/<path>         captured cross-origin resources

A static file server can serve it as-is: directory-style navigation resolves
to ``index.html`` without rewrite rules.
"""
from __future__ import annotations

import posixpath
from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlparse

from site_archiver.capture.models import CaptureRegistry, RouteRecord, StagingFolder
from site_archiver.errors import RewriteFailure
from site_archiver.logger import logger
from site_archiver.rewrite.rewriter import PathRewriter
from site_archiver.utils import OriginPolicy

__all__ = ["AssetMaterializer", "map_resource_path", "route_markup_path"]


def _confine(path: str) -> Optional[PurePosixPath]:
    """Normalize *path* to a relative path that cannot leave the staging root."""
    if "\x00" in path:
        return None
    norm = posixpath.normpath("/" + path.lstrip("/"))
    if norm == "/":
        return None
    return PurePosixPath(norm.lstrip("/"))


def map_resource_path(url: str, policy: OriginPolicy) -> Optional[PurePosixPath]:
    """Relative staging path for a captured resource URL (None if unmappable)."""
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    path = unquote(parsed.path) or "/"

    if policy.is_same_origin(host):
        if path == "/":
            return PurePosixPath("index.html")
        if path.endswith("/"):
            path += "index.html"
        return _confine(path)

    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return _confine(policy.external_path(host, path))


def route_markup_path(route: str) -> Optional[PurePosixPath]:
    if route in ("", "/"):
        return PurePosixPath("index.html")
    confined = _confine(route)
    if confined is None:
        return None
    return confined / "index.html"


class AssetMaterializer:
    """Writes resources and route markup below ``root``.

    File/directory collisions (``/docs`` captured as a file and
    ``/docs/intro.js`` needing ``docs/`` as a directory) are resolved in place:
    a file that blocks a needed directory is replaced by the directory; a file
    whose target is already a directory is skipped.
    """

    def __init__(self, root: Path, rewriter: PathRewriter, policy: OriginPolicy) -> None:
        self.root = Path(root)
        self.rewriter = rewriter
        self.policy = policy

    def materialize(self, registry: CaptureRegistry) -> StagingFolder:
        folder = StagingFolder(root=self.root)
        self.root.mkdir(parents=True, exist_ok=True)

        for url, resource in registry.resources.items():
            if self.policy.is_blocked_url(url):
                logger.debug("Skipping analytics resource: %.80s", url)
                folder.skipped.append(url)
                continue
            rel = map_resource_path(url, self.policy)
            if rel is None:
                folder.skipped.append(url)
                continue
            try:
                body = self.rewriter.rewrite_resource(rel.name, resource.body)
            except RewriteFailure as exc:
                logger.warning("%s; keeping original", exc)
                body = resource.body
            if self._write(rel, body):
                folder.files.append(rel)
            else:
                folder.skipped.append(url)

        for record in registry.routes.values():
            rel = route_markup_path(record.path)
            if rel is None:
                logger.warning("Route %s has no valid staging path, skipped", record.path)
                folder.skipped.append(record.path)
                continue
            if self._write(rel, self._route_markup(record)):
                folder.routes.append(record.path)
                logger.debug("Saved HTML: %s", rel)

        logger.info(
            "Materialized %d resources and %d routes into %s (%d skipped)",
            len(folder.files), len(folder.routes), self.root, len(folder.skipped),
        )
        return folder

    def _route_markup(self, record: RouteRecord) -> bytes:
        try:
            return self.rewriter.rewrite_markup(record.markup).encode("utf-8")
        except ValueError as exc:
            logger.warning("Could not rewrite markup of %s: %s; keeping original", record.path, exc)
            return record.markup.encode("utf-8", errors="replace")

    def _write(self, rel: PurePosixPath, data: bytes) -> bool:
        target = self.root.joinpath(*rel.parts)
        try:
            self._ensure_parent(target)
            if target.is_dir():
                logger.info("Directory already occupies %s, file skipped", rel)
                return False
            target.write_bytes(data)
        except (OSError, ValueError) as exc:
            # ValueError: names the filesystem rejects outright (embedded NUL)
            logger.warning("Failed to save %s: %s", rel, exc)
            return False
        return True

    def _ensure_parent(self, target: Path) -> None:
        parent = target.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
            return
        except (FileExistsError, NotADirectoryError):
            pass
        # a captured file sits where a directory is needed
        current = self.root
        for part in parent.relative_to(self.root).parts:
            current = current / part
            if current.is_file():
                logger.info("Removing file blocking directory: %s", current.relative_to(self.root))
                current.unlink()
        parent.mkdir(parents=True, exist_ok=True)
