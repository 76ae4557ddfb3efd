# File: site_archiver/utils.py
"""site_archiver.utils: URL classification helpers shared by collector, rewriter and materializer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Iterable, List, Optional, Sequence
from urllib.parse import urlparse

from site_archiver.logger import logger

__all__: Sequence[str] = (
    "EXTERNAL_PREFIX",
    "OriginPolicy",
    "strip_query_fragment",
    "is_http_url",
    "remove_duplicates",
)

EXTERNAL_PREFIX = "/_external"


def strip_query_fragment(path: str) -> str:
    """Drop ``?query`` and ``#fragment`` from a path or URL."""
    return path.split("?", 1)[0].split("#", 1)[0]


def is_http_url(url: str) -> bool:
    return urlparse(url).scheme in ("http", "https")


def _host_matches(host: str, fragments: Iterable[str]) -> bool:
    return any(fragment in host for fragment in fragments)


@dataclass(slots=True, frozen=True)
class OriginPolicy:
    """Decides how a hostname is treated by the pipeline.

    * same-origin – the archived host, or any host under ``site_domain``;
    * blocked – analytics/ads hosts (substring match), never captured or rewritten;
    * external – everything else, localized under :data:`EXTERNAL_PREFIX`.
    """

    host: str
    site_domain: Optional[str] = None
    analytics_hosts: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, config) -> OriginPolicy:
        return cls(
            host=config.target_host,
            site_domain=config.site_domain,
            analytics_hosts=tuple(config.analytics_hosts),
        )

    def is_same_origin(self, host: str) -> bool:
        host = host.lower()
        if host == self.host:
            return True
        if self.site_domain:
            return host == self.site_domain or host.endswith("." + self.site_domain)
        return False

    def is_blocked(self, host: str) -> bool:
        return _host_matches(host.lower(), self.analytics_hosts)

    def is_blocked_url(self, url: str) -> bool:
        parsed = urlparse(url)
        return self.is_blocked(parsed.hostname or "") or "/pagead/" in parsed.path

    def external_path(self, host: str, path: str) -> str:
        """``/_external/<host><path>`` for a cross-origin reference."""
        if not path.startswith("/"):
            path = "/" + path
        return f"{EXTERNAL_PREFIX}/{host}{path}"


def remove_duplicates(items: Collection[str]) -> List[str]:
    """Remove duplicates while keeping first-seen order."""
    unique = list(dict.fromkeys(items))
    removed = len(items) - len(unique)
    if removed:
        logger.debug("Removed %d duplicate entries", removed)
    return unique
