# File: tests/test_materializer.py
from __future__ import annotations

from pathlib import PurePosixPath

import pytest
from conftest import BASE_URL
from site_archiver.capture.models import CapturedResource, RouteRecord
from site_archiver.materializer import AssetMaterializer, map_resource_path, route_markup_path
from site_archiver.rewrite.rewriter import PathRewriter


@pytest.fixture()
def materializer(tmp_path, policy) -> AssetMaterializer:
    rewriter = PathRewriter(policy, passthrough_hosts=("google", "facebook"))
    return AssetMaterializer(tmp_path / "out", rewriter, policy)


def add(registry, url: str, body: bytes, resource_type: str = "script") -> None:
    registry.store(CapturedResource(url, body, resource_type))


@pytest.mark.parametrize(
    "url,expected",
    [
        (BASE_URL, "index.html"),
        (f"{BASE_URL}assets/index-abc.js?v=3#x", "assets/index-abc.js"),
        (f"{BASE_URL}docs/", "docs/index.html"),
        ("https://fonts.gstatic.com/s/inter.woff2", "_external/fonts.gstatic.com/s/inter.woff2"),
        ("https://cdn.example.net/dir/", "_external/cdn.example.net/dir"),
        ("https://cdn.example.net", "_external/cdn.example.net"),
        (f"{BASE_URL}../../etc/passwd", "etc/passwd"),
        (f"{BASE_URL}a/%2e%2e/%2e%2e/%2e%2e/secret.txt", "secret.txt"),
    ],
)
def test_map_resource_path(policy, url, expected):
    assert map_resource_path(url, policy) == PurePosixPath(expected)


@pytest.mark.parametrize(
    "route,expected",
    [("/", "index.html"), ("/about", "about/index.html"), ("/a/b", "a/b/index.html"), ("/../x", "x/index.html")],
)
def test_route_markup_path(route, expected):
    assert route_markup_path(route) == PurePosixPath(expected)


def test_materialize_resources_and_routes(materializer, registry):
    add(registry, f"{BASE_URL}assets/index.js", b'import("https://app.example.com/assets/lazy.js")')
    add(registry, f"{BASE_URL}assets/index.css", b"body{background:url(https://cdn.example.net/bg.png)}", "stylesheet")
    add(registry, "https://cdn.example.net/bg.png", b"\x89PNG", "image")
    registry.record(RouteRecord("/", '<link href="https://app.example.com/assets/index.css">'))
    registry.record(RouteRecord("/about", '<svg stroke="rgb(var(--primary))"></svg>'))

    folder = materializer.materialize(registry)
    root = materializer.root

    assert (root / "assets/index.js").read_bytes() == b'import("/assets/lazy.js")'
    assert (root / "assets/index.css").read_text() == "body{background:url(/_external/cdn.example.net/bg.png)}"
    assert (root / "_external/cdn.example.net/bg.png").read_bytes() == b"\x89PNG"
    assert (root / "index.html").read_text() == '<link href="/assets/index.css">'
    assert (root / "about/index.html").read_text() == '<svg stroke="hsl(var(--primary))"></svg>'
    assert folder.routes == ["/", "/about"]
    assert len(folder.files) == 3
    assert folder.skipped == []


def test_last_captured_payload_is_written(materializer, registry):
    url = f"{BASE_URL}data.json"
    add(registry, url, b'{"v": 1}', "fetch")
    add(registry, url, b'{"v": 2}', "fetch")
    materializer.materialize(registry)
    assert (materializer.root / "data.json").read_bytes() == b'{"v": 2}'


def test_blocked_resources_are_not_written(materializer, registry):
    add(registry, "https://www.googletagmanager.com/gtm.js", b"gtm")
    folder = materializer.materialize(registry)
    assert not (materializer.root / "_external").exists()
    assert folder.skipped == ["https://www.googletagmanager.com/gtm.js"]


def test_file_blocking_directory_is_replaced(materializer, registry, archiver_caplog):
    add(registry, f"{BASE_URL}docs", b"doc listing", "fetch")
    add(registry, f"{BASE_URL}docs/intro.js", b"intro()")
    materializer.materialize(registry)
    root = materializer.root
    assert (root / "docs").is_dir()
    assert (root / "docs/intro.js").read_bytes() == b"intro()"
    assert any("Removing file blocking directory" in r.getMessage() for r in archiver_caplog.records)


def test_file_targeting_existing_directory_is_skipped(materializer, registry):
    add(registry, f"{BASE_URL}guide/intro.js", b"intro()")
    add(registry, f"{BASE_URL}guide", b"guide", "fetch")
    folder = materializer.materialize(registry)
    assert (materializer.root / "guide/intro.js").read_bytes() == b"intro()"
    assert f"{BASE_URL}guide" in folder.skipped


def test_undecodable_script_is_kept_verbatim(materializer, registry, archiver_caplog):
    body = b"\xff\xfe https://app.example.com/x.js"
    add(registry, f"{BASE_URL}assets/bin.js", body)
    materializer.materialize(registry)
    assert (materializer.root / "assets/bin.js").read_bytes() == body
    assert any(r.levelname == "WARNING" and "bin.js" in r.getMessage() for r in archiver_caplog.records)


def test_output_never_leaves_root(materializer, registry, tmp_path):
    add(registry, f"{BASE_URL}..%2f..%2fescape.txt", b"nope", "fetch")
    materializer.materialize(registry)
    assert not (tmp_path / "escape.txt").exists()
    assert not (tmp_path.parent / "escape.txt").exists()


@pytest.mark.parametrize("route", ["/..", "/../..", "/a\x00b"])
def test_route_without_staging_path(route):
    assert route_markup_path(route) is None


def test_nul_in_resource_url_is_skipped(materializer, registry):
    bad = "https://cdn.example.net/a%00b.js"
    add(registry, bad, b"bad()")
    add(registry, "https://cdn.example.net/ok.js", b"ok()")
    folder = materializer.materialize(registry)
    assert (materializer.root / "_external/cdn.example.net/ok.js").read_bytes() == b"ok()"
    assert folder.skipped == [bad]


def test_unconfinable_route_does_not_replace_homepage(materializer, registry, archiver_caplog):
    registry.record(RouteRecord("/", "<p>home</p>"))
    registry.record(RouteRecord("/..", "<p>escaped</p>"))
    folder = materializer.materialize(registry)
    assert (materializer.root / "index.html").read_text() == "<p>home</p>"
    assert folder.routes == ["/"]
    assert "/.." in folder.skipped
    assert any("no valid staging path" in r.getMessage() for r in archiver_caplog.records)


def test_write_rejects_nul_name(materializer, archiver_caplog):
    materializer.root.mkdir(parents=True)
    assert materializer._write(PurePosixPath("a\x00b.js"), b"x") is False
    assert any("Failed to save" in r.getMessage() for r in archiver_caplog.records)
