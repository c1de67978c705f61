"""Request forwarding to the upstream pool.

One shared ``httpx.AsyncClient`` per gateway, opened during lifespan
startup (or lazily on first use) and closed at shutdown. Each request is
sent once: a failed attempt becomes an error response and is never
replayed against another pool member.

Error mapping::

    PoolEmpty                      -> 503 Service Unavailable
    httpx.TimeoutException         -> 504 Gateway Timeout
    any other httpx.TransportError -> 502 Bad Gateway
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from urllib.parse import unquote

import anyio
import httpx

from gatehouse._internal.asgi import cancel_on_disconnect
from gatehouse.errors import (
    BadGateway,
    ClientDisconnected,
    GatewayTimeout,
    HTTPError,
    PoolEmpty,
    ServiceUnavailable,
)
from gatehouse.http.headers import forwarded_headers, strip_hop_by_hop
from gatehouse.http.request import Request
from gatehouse.http.response import StreamingResponse
from gatehouse.routing.route import RouteMatch, UpstreamTarget, split_path
from gatehouse.upstream.endpoint import ServiceEndpoint

logger = logging.getLogger("gatehouse.upstream")


class Forwarder:
    """Dispatch requests matched to an ``UpstreamTarget``.

    Usage::

        async with Forwarder(request_timeout=30.0) as forwarder:
            response = await forwarder.forward(request, match)

    Pass ``transport`` to route dispatch through a custom httpx transport
    (tests use ``httpx.MockTransport``).
    """

    __slots__ = (
        "_client",
        "_connect_timeout",
        "_max_body_size",
        "_request_timeout",
        "_transport",
    )

    def __init__(
        self,
        *,
        connect_timeout: float = 5.0,
        request_timeout: float = 60.0,
        max_body_size: int | None = 16 * 1024 * 1024,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._connect_timeout = connect_timeout
        self._request_timeout = request_timeout
        self._max_body_size = max_body_size
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    # -- Lifecycle --

    def open(self) -> httpx.AsyncClient:
        """Create the shared client if it does not exist yet."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._request_timeout, connect=self._connect_timeout),
                transport=self._transport,
                follow_redirects=False,
                trust_env=False,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()

    async def __aenter__(self) -> Forwarder:
        self.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    # -- Dispatch --

    async def forward(self, request: Request, match: RouteMatch) -> StreamingResponse:
        """Send *request* to the next pool member and relay its response.

        Raises an ``HTTPError`` subclass for pool and dispatch failures,
        and ``ClientDisconnected`` if the client leaves before the upstream
        answers (the upstream request is then abandoned).
        """
        target = match.rule.target
        if not isinstance(target, UpstreamTarget):
            msg = f"Rule {match.rule.prefix!r} does not target an upstream pool"
            raise TypeError(msg)

        body = await request.body(max_size=self._max_body_size)

        try:
            endpoint = target.pool.next()
        except PoolEmpty as exc:
            logger.warning("%s %s: %s", request.method, request.path, exc)
            raise ServiceUnavailable("No upstream available") from exc

        client = self.open()
        url = httpx.URL(
            scheme="http",
            host=endpoint.host,
            port=endpoint.port,
            path=upstream_path(request, match),
        )
        if request.query_string:
            url = url.copy_with(query=request.query_string)
        upstream_request = client.build_request(
            request.method,
            url,
            headers=forwarded_headers(
                request.headers,
                host=request.host,
                client_addr=request.client_addr,
                scheme=request.scheme,
            ),
            content=body,
        )

        outcome: httpx.Response | HTTPError | None = None
        async with anyio.create_task_group() as tg:
            tg.start_soon(cancel_on_disconnect, request._receive, tg.cancel_scope)
            outcome = await self._send(client, upstream_request, endpoint)
            tg.cancel_scope.cancel()

        if outcome is None:
            logger.info(
                "%s %s: client left before %s answered", request.method, request.path, endpoint
            )
            raise ClientDisconnected
        if isinstance(outcome, HTTPError):
            raise outcome

        headers = tuple(
            (name.decode("latin-1"), value.decode("latin-1"))
            for name, value in strip_hop_by_hop(outcome.headers.raw)
        )
        return StreamingResponse(
            chunks=_body_chunks(outcome),
            status=outcome.status_code,
            headers=headers,
            on_close=outcome.aclose,
        )

    async def _send(
        self,
        client: httpx.AsyncClient,
        upstream_request: httpx.Request,
        endpoint: ServiceEndpoint,
    ) -> httpx.Response | HTTPError:
        """Send once; translate transport failures into gateway errors."""
        try:
            return await client.send(upstream_request, stream=True)
        except httpx.TimeoutException as exc:
            logger.warning("upstream %s timed out: %s", endpoint, exc)
            return GatewayTimeout(f"Upstream {endpoint.name} timed out")
        except httpx.TransportError as exc:
            logger.warning("upstream %s failed: %s", endpoint, exc)
            return BadGateway(f"Upstream {endpoint.name} unreachable")


def upstream_path(request: Request, match: RouteMatch) -> str:
    """The path to send upstream, percent-escapes preserved.

    Built from the ASGI ``raw_path`` so an escaped slash (``a%2Fb``)
    stays one segment. Falls back to the decoded match when the server
    gives no ``raw_path`` or its leading segments do not decode to the
    matched prefix.
    """
    if request.raw_path is None:
        return match.forward_path

    raw = request.raw_path.decode("latin-1")
    target = match.rule.target
    if isinstance(target, UpstreamTarget) and not target.strip_prefix:
        return raw

    prefix = split_path(match.rule.prefix)
    parts = split_path(raw)
    if [unquote(part) for part in parts[: len(prefix)]] != prefix:
        return match.forward_path

    rest = parts[len(prefix) :]
    path = "/" + "/".join(rest)
    if rest and raw.endswith("/"):
        path += "/"
    return path


def _body_chunks(response: httpx.Response) -> AsyncIterator[bytes]:
    # In-process transports hand back responses whose body is already read
    if response.is_stream_consumed:
        return _buffered(response.content)
    return response.aiter_raw()


async def _buffered(content: bytes) -> AsyncIterator[bytes]:
    yield content
