# File: tests/test_fingerprint.py
from __future__ import annotations

import asyncio
import hashlib
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import web
from site_archiver.config import ArchiverConfig, TimeoutsConfig
from site_archiver.fingerprint import VersionFingerprinter, compute_digest

HOMEPAGE = "<!doctype html><html><head><title>Demo</title></head><body><div id=root></div></body></html>"


async def _serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "localhost", port)
    await site.start()
    try:
        yield f"http://localhost:{port}"
    finally:
        await runner.cleanup()


@pytest_asyncio.fixture
async def homepage_server(unused_tcp_port: int) -> AsyncIterator[tuple[str, list[str]]]:
    app = web.Application()
    seen_agents: list[str] = []

    async def handle_root(request):
        seen_agents.append(request.headers.get("User-Agent", ""))
        return web.Response(text=HOMEPAGE, content_type="text/html")

    async def handle_broken(_):
        return web.Response(status=500, text="oops")

    async def handle_slow(_):
        await asyncio.sleep(2)
        return web.Response(text=HOMEPAGE, content_type="text/html")

    app.router.add_get("/", handle_root)
    app.router.add_get("/broken", handle_broken)
    app.router.add_get("/slow", handle_slow)

    async for url in _serve_app(app, unused_tcp_port):
        yield url, seen_agents


def make_config(url: str, timeout: float = 2.0) -> ArchiverConfig:
    return ArchiverConfig(
        target_url=url,
        user_agent="ArchiverTest/1.0",
        timeouts=TimeoutsConfig(fingerprint=timeout),
    )


def test_compute_digest_text_and_bytes():
    expected = hashlib.sha256(HOMEPAGE.encode("utf-8")).hexdigest()
    assert compute_digest(HOMEPAGE) == expected
    assert compute_digest(HOMEPAGE.encode("utf-8")) == expected
    assert len(expected) == 64


@pytest.mark.asyncio()
async def test_fingerprint_of_live_homepage(homepage_server):
    base, agents = homepage_server
    fingerprint = await VersionFingerprinter(make_config(f"{base}/")).compute()
    assert fingerprint is not None
    assert fingerprint.digest == compute_digest(HOMEPAGE)
    assert agents == ["ArchiverTest/1.0"]


@pytest.mark.asyncio()
async def test_fingerprint_is_stable(homepage_server):
    base, _ = homepage_server
    fingerprinter = VersionFingerprinter(make_config(f"{base}/"))
    first = await fingerprinter.compute()
    second = await fingerprinter.compute()
    assert first.digest == second.digest


@pytest.mark.asyncio()
async def test_http_error_yields_none(homepage_server, archiver_caplog):
    base, _ = homepage_server
    fingerprint = await VersionFingerprinter(make_config(f"{base}/")).compute(f"{base}/broken")
    assert fingerprint is None
    assert any("HTTP 500" in r.getMessage() for r in archiver_caplog.records)


@pytest.mark.asyncio()
async def test_timeout_yields_none(homepage_server):
    base, _ = homepage_server
    fingerprinter = VersionFingerprinter(make_config(f"{base}/", timeout=0.3))
    assert await fingerprinter.compute(f"{base}/slow") is None


@pytest.mark.asyncio()
async def test_unreachable_host_yields_none(unused_tcp_port):
    fingerprinter = VersionFingerprinter(make_config(f"http://localhost:{unused_tcp_port}/"))
    assert await fingerprinter.compute() is None
