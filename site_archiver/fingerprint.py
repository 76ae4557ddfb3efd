# site_archiver/fingerprint.py
"""
VersionFingerprinter: SHA-256 of the live homepage markup, for change detection.

The fetch is independent of the browser capture. Any failure yields ``None``
("no fingerprint available") instead of an exception.
"""
from __future__ import annotations

import asyncio
import hashlib
from typing import Optional, Union

from aiohttp import ClientError, ClientSession, ClientTimeout

from site_archiver.capture.models import Fingerprint
from site_archiver.config import ArchiverConfig
from site_archiver.errors import FingerprintFailure
from site_archiver.logger import logger

__all__ = ["VersionFingerprinter", "compute_digest"]


def compute_digest(content: Union[str, bytes]) -> str:
    """Hex SHA-256 of *content* (text is hashed as UTF-8)."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


class VersionFingerprinter:
    """Fetches the homepage once and digests the raw body."""

    def __init__(self, config: ArchiverConfig, session: Optional[ClientSession] = None) -> None:
        self.config = config
        self._session = session

    async def fetch(self, url: str) -> bytes:
        timeout = ClientTimeout(total=self.config.timeouts.fingerprint)
        headers = {"User-Agent": self.config.user_agent}
        session = self._session or ClientSession(timeout=timeout, headers=headers)
        try:
            async with session.get(url, timeout=timeout, headers=headers) as resp:
                if resp.status != 200:
                    raise FingerprintFailure(f"HTTP {resp.status} when fetching {url}")
                return await resp.read()
        except (ClientError, asyncio.TimeoutError) as exc:
            raise FingerprintFailure(f"request to {url} failed: {exc!r}") from exc
        finally:
            if self._session is None:
                await session.close()

    async def compute(self, url: Optional[str] = None) -> Optional[Fingerprint]:
        url = url or str(self.config.target_url)
        logger.info("Fetching HTML from %s for fingerprint", url)
        try:
            body = await self.fetch(url)
        except FingerprintFailure as exc:
            logger.warning("Failed to compute HTML hash for %s: %s", url, exc)
            logger.warning("Continuing without fingerprint (change detection disabled for this run)")
            return None
        fingerprint = Fingerprint(digest=compute_digest(body))
        logger.info("Computed hash: %s...", fingerprint.digest[:16])
        return fingerprint
