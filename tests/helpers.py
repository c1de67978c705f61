"""Test doubles shared across test modules."""

from collections.abc import Callable

import httpx

from gatehouse.health.probe import ProbeResult
from gatehouse.upstream.endpoint import ServiceEndpoint

R = ProbeResult.READY
U = ProbeResult.UNREADY


class FakeBackend:
    """An ``httpx.MockTransport`` handler that records what it receives."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self._handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._handler is not None:
            return self._handler(request)
        if request.url.path == "/health":
            return httpx.Response(200, text="ok")
        return httpx.Response(200, json={"path": request.url.path})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


class ScriptedProber:
    """Returns a fixed sequence of results, then repeats the last one."""

    def __init__(self, *results: ProbeResult) -> None:
        self.results = list(results)
        self.calls: list[ServiceEndpoint] = []

    async def probe(self, endpoint: ServiceEndpoint) -> ProbeResult:
        self.calls.append(endpoint)
        index = min(len(self.calls), len(self.results)) - 1
        return self.results[index]
