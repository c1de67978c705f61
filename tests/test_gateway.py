"""End-to-end tests for gatehouse.app.Gateway through the ASGI interface."""

import json
from collections.abc import AsyncIterator
from pathlib import Path

import anyio
import httpx
import pytest
from helpers import U, FakeBackend, ScriptedProber

from gatehouse.app import Gateway
from gatehouse.config import DatastoreConfig, GatewayConfig, ProbeConfig
from gatehouse.errors import ConfigurationError
from gatehouse.http.request import Request
from gatehouse.http.response import StreamingResponse
from gatehouse.middleware.protocol import AnyResponse, Next
from gatehouse.testing import TestClient
from gatehouse.upstream.endpoint import ServiceEndpoint


def _gateway(static_dir: Path, fake: FakeBackend, **config) -> Gateway:
    config.setdefault("access_log", False)
    gateway = Gateway(GatewayConfig(**config), transport=fake.transport)
    gateway.static("/", static_dir)
    pool = gateway.upstream("/api")
    pool.register(ServiceEndpoint("backend", "backend", 5000))
    return gateway


async def _wait_for(predicate) -> None:
    with anyio.fail_after(2):
        while not predicate():
            await anyio.sleep(0.005)


class TestForwarding:
    async def test_prefix_is_stripped(self, static_dir, fake_backend) -> None:
        async with TestClient(_gateway(static_dir, fake_backend)) as client:
            response = await client.get("/api/status")

        assert response.status == 200
        assert json.loads(response.text) == {"path": "/status"}
        assert fake_backend.last.url.path == "/status"
        assert fake_backend.last.url.host == "backend"
        assert fake_backend.last.url.port == 5000

    async def test_bare_prefix_forwards_root(self, static_dir, fake_backend) -> None:
        async with TestClient(_gateway(static_dir, fake_backend)) as client:
            await client.get("/api")
        assert fake_backend.last.url.path == "/"

    async def test_query_string_preserved(self, static_dir, fake_backend) -> None:
        async with TestClient(_gateway(static_dir, fake_backend)) as client:
            await client.get("/api/games?limit=5&sort=desc")
        assert fake_backend.last.url.query == b"limit=5&sort=desc"

    async def test_method_and_body_forwarded(self, static_dir, fake_backend) -> None:
        async with TestClient(_gateway(static_dir, fake_backend)) as client:
            await client.post("/api/guess", json={"number": 42})

        upstream = fake_backend.last
        assert upstream.method == "POST"
        assert json.loads(upstream.content) == {"number": 42}
        assert upstream.headers["content-type"] == "application/json"
        assert upstream.headers["content-length"] == str(len(upstream.content))

    async def test_forwarded_headers(self, static_dir, fake_backend) -> None:
        async with TestClient(_gateway(static_dir, fake_backend)) as client:
            await client.request(
                "GET",
                "/api/status",
                headers={"host": "guess.example", "x-forwarded-for": "198.51.100.7"},
                client=("203.0.113.9", 40000),
            )

        headers = fake_backend.last.headers
        assert headers["host"] == "guess.example"
        assert headers["x-real-ip"] == "203.0.113.9"
        assert headers["x-forwarded-for"] == "198.51.100.7, 203.0.113.9"
        assert headers["x-forwarded-proto"] == "http"

    async def test_escaped_slash_reaches_backend(self, static_dir, fake_backend) -> None:
        async with TestClient(_gateway(static_dir, fake_backend)) as client:
            response = await client.get("/api/files/a%2Fb")

        assert response.status == 200
        assert fake_backend.last.url.raw_path == b"/files/a%2Fb"

    async def test_prefix_kept_when_not_stripping(self, static_dir, fake_backend) -> None:
        gateway = Gateway(GatewayConfig(access_log=False), transport=fake_backend.transport)
        gateway.static("/", static_dir)
        pool = gateway.upstream("/api", strip_prefix=False)
        pool.register(ServiceEndpoint("backend", "backend", 5000))

        async with TestClient(gateway) as client:
            await client.get("/api/status")
        assert fake_backend.last.url.path == "/api/status"

    async def test_upstream_response_relayed(self, static_dir) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                418,
                headers={"x-upstream": "yes", "keep-alive": "timeout=5"},
                text="short and stout",
            )

        async with TestClient(_gateway(static_dir, FakeBackend(handler))) as client:
            response = await client.get("/api/teapot")

        assert response.status == 418
        assert response.text == "short and stout"
        assert response.header("x-upstream") == "yes"
        assert response.header("keep-alive") is None

    async def test_round_robin_across_members(self, static_dir, fake_backend) -> None:
        gateway = _gateway(static_dir, fake_backend)
        gateway.pools["/api"].register(ServiceEndpoint("backend-2", "backend-2", 5000))

        async with TestClient(gateway) as client:
            for _ in range(4):
                await client.get("/api/status")

        hosts = [r.url.host for r in fake_backend.requests]
        assert hosts == ["backend", "backend-2", "backend", "backend-2"]


class TestDispatchErrors:
    async def test_empty_pool_is_503(self, static_dir, fake_backend) -> None:
        gateway = Gateway(GatewayConfig(access_log=False), transport=fake_backend.transport)
        gateway.static("/", static_dir)
        gateway.upstream("/api")

        async with TestClient(gateway) as client:
            response = await client.get("/api/status")

        assert response.status == 503
        assert response.header("retry-after") == "5"
        assert fake_backend.requests == []

    async def test_connect_error_is_502_without_retry(self, static_dir) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fake = FakeBackend(handler)
        gateway = _gateway(static_dir, fake)
        gateway.pools["/api"].register(ServiceEndpoint("backend-2", "backend-2", 5000))

        async with TestClient(gateway) as client:
            response = await client.get("/api/status")

        assert response.status == 502
        assert len(fake.requests) == 1

    async def test_timeout_is_504(self, static_dir) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with TestClient(_gateway(static_dir, FakeBackend(handler))) as client:
            response = await client.get("/api/slow")

        assert response.status == 504

    async def test_body_over_limit_is_413(self, static_dir, fake_backend) -> None:
        gateway = _gateway(static_dir, fake_backend, max_body_size=4)
        async with TestClient(gateway) as client:
            response = await client.post("/api/guess", body=b"0123456789")

        assert response.status == 413
        assert fake_backend.requests == []

    async def test_custom_error_handler(self, static_dir, fake_backend) -> None:
        gateway = Gateway(GatewayConfig(access_log=False), transport=fake_backend.transport)
        gateway.static("/", static_dir)
        gateway.upstream("/api")

        @gateway.error(503)
        def unavailable(request: Request) -> str:
            return f"backend starting, retry {request.path}"

        async with TestClient(gateway) as client:
            response = await client.get("/api/status")

        assert response.status == 503
        assert response.text == "backend starting, retry /api/status"
        assert response.header("retry-after") == "5"


class TestStatic:
    async def test_index(self, static_dir, fake_backend) -> None:
        async with TestClient(_gateway(static_dir, fake_backend)) as client:
            response = await client.get("/")
        assert response.status == 200
        assert response.text == "<div id='root'></div>"
        assert response.content_type.startswith("text/html")

    async def test_missing_file_falls_back_to_index(self, static_dir, fake_backend) -> None:
        async with TestClient(_gateway(static_dir, fake_backend)) as client:
            response = await client.get("/missing-file")
        assert response.status == 200
        assert response.text == "<div id='root'></div>"
        assert fake_backend.requests == []

    async def test_lookalike_prefix_is_static(self, static_dir, fake_backend) -> None:
        async with TestClient(_gateway(static_dir, fake_backend)) as client:
            response = await client.get("/apix")
        assert response.status == 200
        assert fake_backend.requests == []

    async def test_asset(self, static_dir, fake_backend) -> None:
        async with TestClient(_gateway(static_dir, fake_backend)) as client:
            response = await client.get("/static/main.css")
        assert response.text == "body { margin: 0; }"

    async def test_head_has_length_but_no_body(self, static_dir, fake_backend) -> None:
        async with TestClient(_gateway(static_dir, fake_backend)) as client:
            response = await client.head("/")
        assert response.status == 200
        assert response.body == b""
        assert response.header("content-length") == str(len("<div id='root'></div>"))

    async def test_post_to_static_is_405(self, static_dir, fake_backend) -> None:
        async with TestClient(_gateway(static_dir, fake_backend)) as client:
            response = await client.post("/index.html", body=b"x")
        assert response.status == 405
        assert response.header("allow") == "GET, HEAD"


class TestMiddleware:
    async def test_wraps_static_and_upstream(self, static_dir, fake_backend) -> None:
        gateway = _gateway(static_dir, fake_backend)

        async def server_header(request: Request, next: Next) -> AnyResponse:
            response = await next(request)
            return response.with_header("Server", "gatehouse")

        gateway.add_middleware(server_header)

        async with TestClient(gateway) as client:
            static = await client.get("/")
            upstream = await client.get("/api/status")

        assert static.header("server") == "gatehouse"
        assert upstream.header("server") == "gatehouse"

    async def test_broken_stream_does_not_escape(
        self, static_dir, fake_backend, caplog: pytest.LogCaptureFixture
    ) -> None:
        gateway = _gateway(static_dir, fake_backend)

        async def broken() -> AsyncIterator[bytes]:
            yield b"partial"
            raise RuntimeError("relay bug")

        async def replace_body(request: Request, next: Next) -> AnyResponse:
            return StreamingResponse(chunks=broken(), status=200)

        gateway.add_middleware(replace_body)

        async with TestClient(gateway) as client:
            response = await client.get("/api/status")

        assert response.status == 200
        assert response.body == b"partial"
        assert "failed mid-response" in caplog.text

    async def test_access_log(self, static_dir, fake_backend, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level("INFO", logger="gatehouse.access")
        gateway = _gateway(static_dir, fake_backend, access_log=True)

        async with TestClient(gateway) as client:
            await client.get("/api/status?x=1", headers={"user-agent": "curl/8.5"})
            await client.get("/api/missing", headers={"user-agent": "curl/8.5"})

        lines = [r.getMessage() for r in caplog.records if r.name == "gatehouse.access"]
        assert lines[0].startswith('127.0.0.1 "GET /api/status?x=1 HTTP/1.1" 200')
        assert '"curl/8.5"' in lines[0]

    async def test_access_log_records_error_status(
        self, static_dir, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level("INFO", logger="gatehouse.access")
        gateway = Gateway(GatewayConfig(), transport=FakeBackend().transport)
        gateway.static("/", static_dir)
        gateway.upstream("/api")

        async with TestClient(gateway) as client:
            await client.get("/api/status")

        lines = [r.getMessage() for r in caplog.records if r.name == "gatehouse.access"]
        assert '"GET /api/status HTTP/1.1" 503' in lines[0]


class TestLifecycle:
    async def test_hooks_and_background_tasks(self, static_dir, fake_backend) -> None:
        gateway = _gateway(static_dir, fake_backend)
        events: list[str] = []

        @gateway.on_startup
        def started() -> None:
            events.append("startup")

        @gateway.on_shutdown
        async def stopped() -> None:
            events.append("shutdown")

        @gateway.background
        async def ticker() -> None:
            events.append("background")
            await anyio.sleep_forever()

        async with TestClient(gateway):
            await _wait_for(lambda: "background" in events)
            assert events[0] == "startup"

        assert events[-1] == "shutdown"

    async def test_startup_failure_reported(self, static_dir, fake_backend) -> None:
        gateway = _gateway(static_dir, fake_backend)

        @gateway.on_startup
        def broken() -> None:
            raise RuntimeError("no config")

        with pytest.raises(RuntimeError, match="no config"):
            async with TestClient(gateway):
                pass

    async def test_frozen_after_start(self, static_dir, fake_backend) -> None:
        gateway = _gateway(static_dir, fake_backend)
        async with TestClient(gateway):
            with pytest.raises(RuntimeError, match="Cannot modify"):
                gateway.static("/docs", static_dir)

    def test_missing_root_rule(self, fake_backend) -> None:
        gateway = Gateway(transport=fake_backend.transport)
        gateway.upstream("/api")
        with pytest.raises(ConfigurationError):
            gateway.rules  # noqa: B018

    def test_rules(self, static_dir, fake_backend) -> None:
        gateway = _gateway(static_dir, fake_backend)
        assert [r.prefix for r in gateway.rules] == ["/api", "/"]


class TestFromConfig:
    def _config(self, static_dir: Path, **overrides) -> GatewayConfig:
        values = {
            "static_dir": static_dir,
            "upstreams": (ServiceEndpoint("backend", "backend", 5000),),
            "probe": ProbeConfig(interval=0.01, timeout=1.0, retries=2),
            "access_log": False,
        }
        values.update(overrides)
        return GatewayConfig(**values)

    async def test_upstream_registered_once_healthy(self, static_dir, fake_backend) -> None:
        gateway = Gateway.from_config(self._config(static_dir), transport=fake_backend.transport)
        pool = gateway.pools["/api"]

        async with TestClient(gateway) as client:
            await _wait_for(lambda: len(pool) == 1)
            response = await client.get("/api/status")

        assert response.status == 200
        assert fake_backend.requests[0].url.path == "/health"
        assert gateway.supervisor is not None
        assert gateway.supervisor.gates["backend"].released

    async def test_unhealthy_upstream_never_registered(self, static_dir) -> None:
        fake = FakeBackend(lambda request: httpx.Response(503))
        gateway = Gateway.from_config(self._config(static_dir), transport=fake.transport)

        async with TestClient(gateway) as client:
            assert gateway.supervisor is not None
            await _wait_for(lambda: gateway.supervisor.gates["backend"].failed)
            response = await client.get("/api/status")
            assert response.status == 503
            assert (await client.get("/")).status == 200

        assert len(fake.requests) == 3

    async def test_datastore_gate_blocks_backend(
        self, static_dir, fake_backend, caplog: pytest.LogCaptureFixture
    ) -> None:
        config = self._config(static_dir, datastore=DatastoreConfig(host="db"))
        prober = ScriptedProber(U)
        gateway = Gateway.from_config(
            config, transport=fake_backend.transport, datastore_prober=prober
        )

        async with TestClient(gateway) as client:
            assert gateway.supervisor is not None
            await _wait_for(lambda: gateway.supervisor.gates["datastore"].failed)
            response = await client.get("/api/status")

        assert response.status == 503
        assert len(prober.calls) == 3
        assert fake_backend.requests == []
        assert "dependent routes will answer 503" in caplog.text

    async def test_no_health_path_registers_immediately(self, static_dir, fake_backend) -> None:
        config = self._config(static_dir, upstream_health_path="")
        gateway = Gateway.from_config(config, transport=fake_backend.transport)

        async with TestClient(gateway) as client:
            await _wait_for(lambda: len(gateway.pools["/api"]) == 1)
            await client.get("/api/status")

        assert [r.url.path for r in fake_backend.requests] == ["/status"]
