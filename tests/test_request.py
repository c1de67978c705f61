"""Tests for gatehouse.http.request — frozen request with async body."""

from typing import Any

import pytest

from gatehouse.errors import ClientDisconnected, PayloadTooLarge
from gatehouse.http.request import Request


def _scope(**overrides: Any) -> dict[str, Any]:
    scope: dict[str, Any] = {
        "type": "http",
        "method": "GET",
        "path": "/api/status",
        "query_string": b"",
        "headers": [],
        "http_version": "1.1",
        "scheme": "http",
        "server": ("gateway", 80),
        "client": ("203.0.113.9", 51234),
    }
    scope.update(overrides)
    return scope


def _receiver(*messages: dict[str, Any]):
    queue = list(messages)

    async def receive() -> dict[str, Any]:
        return queue.pop(0)

    return receive


class TestMetadata:
    def test_host_from_header(self) -> None:
        request = Request.from_asgi(_scope(headers=[(b"host", b"guess.example")]), _receiver())
        assert request.host == "guess.example"

    def test_host_from_server_default_port(self) -> None:
        assert Request.from_asgi(_scope(), _receiver()).host == "gateway"

    def test_host_from_server_other_port(self) -> None:
        request = Request.from_asgi(_scope(server=("gateway", 8080)), _receiver())
        assert request.host == "gateway:8080"

    def test_host_fallback(self) -> None:
        assert Request.from_asgi(_scope(server=None), _receiver()).host == "localhost"

    def test_client_addr(self) -> None:
        assert Request.from_asgi(_scope(), _receiver()).client_addr == "203.0.113.9"
        assert Request.from_asgi(_scope(client=None), _receiver()).client_addr is None

    def test_raw_path(self) -> None:
        request = Request.from_asgi(_scope(raw_path=b"/api/a%2Fb"), _receiver())
        assert request.raw_path == b"/api/a%2Fb"
        assert Request.from_asgi(_scope(), _receiver()).raw_path is None

    def test_url_includes_query(self) -> None:
        request = Request.from_asgi(_scope(query_string=b"limit=5"), _receiver())
        assert request.url == "/api/status?limit=5"

    def test_content_length(self) -> None:
        request = Request.from_asgi(_scope(headers=[(b"content-length", b"12")]), _receiver())
        assert request.content_length == 12
        bad = Request.from_asgi(_scope(headers=[(b"content-length", b"x")]), _receiver())
        assert bad.content_length is None


class TestBody:
    async def test_reads_chunks_once(self) -> None:
        receive = _receiver(
            {"type": "http.request", "body": b"hel", "more_body": True},
            {"type": "http.request", "body": b"lo", "more_body": False},
        )
        request = Request.from_asgi(_scope(method="POST"), receive)
        assert await request.body() == b"hello"
        assert await request.body() == b"hello"

    async def test_declared_length_over_limit(self) -> None:
        request = Request.from_asgi(
            _scope(method="POST", headers=[(b"content-length", b"100")]),
            _receiver({"type": "http.request", "body": b"x" * 100}),
        )
        with pytest.raises(PayloadTooLarge):
            await request.body(max_size=10)

    async def test_streamed_length_over_limit(self) -> None:
        request = Request.from_asgi(
            _scope(method="POST"),
            _receiver(
                {"type": "http.request", "body": b"x" * 8, "more_body": True},
                {"type": "http.request", "body": b"x" * 8, "more_body": False},
            ),
        )
        with pytest.raises(PayloadTooLarge):
            await request.body(max_size=10)

    async def test_disconnect_while_reading(self) -> None:
        request = Request.from_asgi(
            _scope(method="POST"),
            _receiver(
                {"type": "http.request", "body": b"x", "more_body": True},
                {"type": "http.disconnect"},
            ),
        )
        with pytest.raises(ClientDisconnected):
            await request.body()
