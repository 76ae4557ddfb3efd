"""
Route discovery for client-rendered applications.

Candidates come from three places, in this order:

* ``<a href>`` links of the rendered homepage (root-relative or same-origin);
* inline ``<script>`` blocks, matched against router literals;
* captured script bundles, matched against the same literals plus bare
  ``"/segment"`` strings.

Bundle text is minified and noisy, so bundle-only candidates go through an
extra filter (reserved prefixes, length bound). Everything is normalized
(query and fragment removed, parameterized and wildcard routes rejected),
deduplicated in first-seen order and capped.
"""
from __future__ import annotations

import re
from typing import Iterable, Iterator, List, Optional, Sequence
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from site_archiver.capture.models import CapturedResource, RouteSet
from site_archiver.logger import logger
from site_archiver.utils import OriginPolicy, remove_duplicates, strip_query_fragment

__all__ = ("RouteDiscoverer", "normalize_route", "INLINE_ROUTE_PATTERNS", "BUNDLE_ROUTE_PATTERNS")

_SEGMENT = r"(/[a-zA-Z0-9_/-]+)"

INLINE_ROUTE_PATTERNS: Sequence[re.Pattern[str]] = (
    re.compile(r"path:\s*[\"']" + _SEGMENT + r"[\"']"),
    re.compile(r"to=[\"']" + _SEGMENT + r"[\"']"),
    re.compile(r"navigate\([\"']" + _SEGMENT + r"[\"']"),
    re.compile(r"\{\s*path:\s*[\"']" + _SEGMENT + r"[\"']"),
    re.compile(r"<Route[^>]+path=[\"']" + _SEGMENT + r"[\"']"),
)

BUNDLE_ROUTE_PATTERNS: Sequence[re.Pattern[str]] = (
    re.compile(r"path:\s*[\"']" + _SEGMENT + r"[\"']"),
    re.compile(r"to:\s*[\"']" + _SEGMENT + r"[\"']"),
    re.compile(r"navigate\([\"']" + _SEGMENT + r"[\"']"),
    re.compile(r"\"(/[a-zA-Z0-9_-]+)\""),
)

# third-party bundles known to be full of unrelated path literals
_IGNORED_BUNDLES = ("flock.js",)

_MAX_BUNDLE_ROUTE_LEN = 50


def normalize_route(candidate: str) -> Optional[str]:
    """Return the route path for *candidate*, or None if it is not a visitable route."""
    route = strip_query_fragment(candidate.strip())
    if not route or route == "/" or not route.startswith("/") or route.startswith("//"):
        return None
    if ":" in route or "*" in route:
        return None
    return route


def _matches(patterns: Iterable[re.Pattern[str]], text: str) -> Iterator[str]:
    for pattern in patterns:
        for match in pattern.finditer(text):
            yield match.group(1)


class RouteDiscoverer:
    """Builds the :data:`RouteSet` for a capture run."""

    def __init__(
        self,
        policy: OriginPolicy,
        max_routes: int = 50,
        reserved_prefixes: Sequence[str] = ("/assets", "/api"),
    ) -> None:
        self.policy = policy
        self.max_routes = max_routes
        self.reserved_prefixes = tuple(reserved_prefixes)

    # -- sources ---------------------------------------------------------

    def from_links(self, soup: BeautifulSoup) -> List[str]:
        routes: List[str] = []
        for tag in soup.find_all("a", href=True):
            if not isinstance(tag, Tag):
                continue
            href = tag.get("href")
            if not isinstance(href, str):
                continue
            href = href.strip()
            if href.startswith("/") and not href.startswith("//"):
                candidate = href
            else:
                parsed = urlparse(href)
                if parsed.scheme not in ("http", "https"):
                    continue
                if (parsed.hostname or "").lower() != self.policy.host:
                    continue
                candidate = parsed.path
            route = normalize_route(candidate)
            if route:
                routes.append(route)
        return routes

    def from_inline_scripts(self, soup: BeautifulSoup) -> List[str]:
        text = "\n".join(
            (tag.string or "") for tag in soup.find_all("script")
            if isinstance(tag, Tag) and not tag.has_attr("src")
        )
        return [r for r in map(normalize_route, _matches(INLINE_ROUTE_PATTERNS, text)) if r]

    def from_bundles(self, bundles: Iterable[CapturedResource]) -> List[str]:
        routes: List[str] = []
        for bundle in bundles:
            if urlparse(bundle.url).path.endswith(_IGNORED_BUNDLES):
                continue
            try:
                text = bundle.body.decode("utf-8")
            except UnicodeDecodeError:
                logger.debug("Bundle is not UTF-8, skipped: %s", bundle.url)
                continue
            for candidate in _matches(BUNDLE_ROUTE_PATTERNS, text):
                route = normalize_route(candidate)
                if route and self._plausible_bundle_route(route):
                    routes.append(route)
        return routes

    def _plausible_bundle_route(self, route: str) -> bool:
        if route.startswith(self.reserved_prefixes):
            return False
        return 1 < len(route) < _MAX_BUNDLE_ROUTE_LEN

    # -- public API ------------------------------------------------------

    def discover(self, homepage_markup: str, bundles: Iterable[CapturedResource] = ()) -> RouteSet:
        """Union of all sources, deduplicated in discovery order, capped at ``max_routes``."""
        soup = BeautifulSoup(homepage_markup, "html.parser")
        dom_routes = remove_duplicates(self.from_links(soup) + self.from_inline_scripts(soup))
        logger.info("Found %d unique routes from DOM: %s", len(dom_routes), ", ".join(dom_routes))

        bundle_routes = [r for r in remove_duplicates(self.from_bundles(bundles)) if r not in dom_routes]
        if bundle_routes:
            logger.info(
                "Found %d additional routes from JS: %s", len(bundle_routes), ", ".join(bundle_routes)
            )

        routes = dom_routes + bundle_routes
        if len(routes) > self.max_routes:
            logger.info(
                "Route cap %d reached, dropping %d routes", self.max_routes, len(routes) - self.max_routes
            )
        return tuple(routes[: self.max_routes])
