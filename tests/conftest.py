"""Shared fixtures: a built single-page app on disk and a fake backend."""

import pytest
from helpers import FakeBackend

from gatehouse.upstream.endpoint import ServiceEndpoint


@pytest.fixture
def static_dir(tmp_path):
    """A build directory the way a front-end bundler leaves it."""
    build = tmp_path / "build"
    build.mkdir()

    (build / "index.html").write_text("<div id='root'></div>")
    (build / "favicon.ico").write_bytes(b"\x00\x00\x01\x00")
    (build / "manifest.json").write_text('{"name": "guess"}')

    assets = build / "static"
    assets.mkdir()
    (assets / "main.js").write_text("console.log('guess');")
    (assets / "main.css").write_text("body { margin: 0; }")

    docs = build / "docs"
    docs.mkdir()
    (docs / "index.html").write_text("<h1>Docs</h1>")

    return build


@pytest.fixture
def backend() -> ServiceEndpoint:
    return ServiceEndpoint("backend", "backend", 5000)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()
