"""Readiness probes.

A prober answers one question (is this endpoint ready right now?) and
never raises to the caller. Every attempt is bounded by a per-attempt
timeout; a timeout, a refused connection or a bad answer all count as
``UNREADY``.

Three probers ship:

    TCPProber       -- the port accepts connections
    PostgresProber  -- PostgreSQL accepts a login and answers ``SELECT 1``
    HTTPProber      -- an HTTP health endpoint answers 2xx
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from enum import Enum
from typing import TYPE_CHECKING, Protocol

import anyio
import httpx

if TYPE_CHECKING:
    from gatehouse.upstream.endpoint import ServiceEndpoint

logger = logging.getLogger("gatehouse.health")


class ProbeResult(Enum):
    READY = "ready"
    UNREADY = "unready"


class Prober(Protocol):
    """Protocol for readiness probes.

    Any object with an async ``probe(endpoint)`` method qualifies::

        class AlwaysReady:
            async def probe(self, endpoint: ServiceEndpoint) -> ProbeResult:
                return ProbeResult.READY
    """

    async def probe(self, endpoint: ServiceEndpoint) -> ProbeResult: ...


class TCPProber:
    """Ready when a TCP connection to the endpoint opens within ``timeout``."""

    __slots__ = ("timeout",)

    def __init__(self, timeout: float = 5.0) -> None:
        self.timeout = timeout

    async def probe(self, endpoint: ServiceEndpoint) -> ProbeResult:
        try:
            with anyio.fail_after(self.timeout):
                stream = await anyio.connect_tcp(endpoint.host, endpoint.port)
                await stream.aclose()
        except (OSError, TimeoutError) as exc:
            logger.debug("tcp probe %s: %s", endpoint, str(exc) or type(exc).__name__)
            return ProbeResult.UNREADY
        return ProbeResult.READY


class PostgresProber:
    """Ready when PostgreSQL accepts the probe login and answers a query.

    Equivalent to ``pg_isready -U <user> -d <database>`` plus a
    ``SELECT 1`` round trip, so a server that is listening but still
    starting up reports ``UNREADY``.
    """

    __slots__ = ("database", "password", "timeout", "user")

    def __init__(
        self,
        user: str = "postgres",
        password: str = "",
        database: str = "postgres",
        *,
        timeout: float = 5.0,
    ) -> None:
        self.user = user
        self.password = password
        self.database = database
        self.timeout = timeout

    async def probe(self, endpoint: ServiceEndpoint) -> ProbeResult:
        import asyncpg

        try:
            with anyio.fail_after(self.timeout):
                conn = await asyncpg.connect(
                    host=endpoint.host,
                    port=endpoint.port,
                    user=self.user,
                    password=self.password or None,
                    database=self.database,
                    timeout=self.timeout,
                )
                try:
                    await conn.fetchval("SELECT 1")
                finally:
                    await conn.close(timeout=self.timeout)
        except (
            asyncpg.InvalidAuthorizationSpecificationError,
            asyncpg.InvalidPasswordError,
            asyncpg.InvalidCatalogNameError,
        ) as exc:
            # Listening but rejecting the probe login; this will not heal by itself.
            logger.warning("postgres probe %s: %s", endpoint, exc)
            return ProbeResult.UNREADY
        except (OSError, TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            logger.debug("postgres probe %s: %s", endpoint, str(exc) or type(exc).__name__)
            return ProbeResult.UNREADY
        return ProbeResult.READY


class HTTPProber:
    """Ready when ``GET <endpoint><path>`` answers with a 2xx status.

    Used against the backend's lightweight health endpoint. Pass
    ``transport`` to route probes through a custom httpx transport
    (tests use ``httpx.MockTransport``).
    """

    __slots__ = ("path", "timeout", "transport")

    def __init__(
        self,
        path: str = "/health",
        *,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.path = "/" + path.lstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def probe(self, endpoint: ServiceEndpoint) -> ProbeResult:
        url = f"{endpoint.url}{self.path}"
        try:
            with anyio.fail_after(self.timeout):
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self.transport
                ) as client:
                    response = await client.get(url)
        except (httpx.HTTPError, OSError, TimeoutError) as exc:
            logger.debug("http probe %s: %s", url, str(exc) or type(exc).__name__)
            return ProbeResult.UNREADY

        if response.is_success:
            return ProbeResult.READY
        logger.debug("http probe %s: status %d", url, response.status_code)
        return ProbeResult.UNREADY


async def poll(
    prober: Prober,
    endpoint: ServiceEndpoint,
    *,
    interval: float,
) -> AsyncGenerator[ProbeResult]:
    """Probe *endpoint* forever, one result per *interval* seconds.

    The first probe runs immediately. The interval is measured from the
    start of each attempt, so a slow probe does not stretch the cadence.
    """
    while True:
        started = anyio.current_time()
        yield await prober.probe(endpoint)
        elapsed = anyio.current_time() - started
        await anyio.sleep(max(0.0, interval - elapsed))
