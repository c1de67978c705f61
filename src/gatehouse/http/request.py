"""Immutable HTTP request.

Frozen metadata with async body access. The request is honest about
what it is: received data that doesn't change.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import Any

from gatehouse._internal.asgi import Receive
from gatehouse.errors import ClientDisconnected, PayloadTooLarge
from gatehouse.http.headers import Headers


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Metadata (method, path, headers, etc.) is frozen at creation.
    Body is accessed asynchronously via ``.body()`` or ``.stream()``.
    """

    method: str
    path: str
    query_string: bytes
    headers: Headers
    http_version: str
    scheme: str
    server: tuple[str, int] | None
    client: tuple[str, int] | None

    # Private: ASGI receive callable for body streaming
    _receive: Receive

    # Path bytes exactly as sent, percent-escapes intact (ASGI ``raw_path``)
    raw_path: bytes | None = None

    # Private: mutable cache for the body
    # (dict contents are mutable even though the field reference is frozen)
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    # -- Computed properties --

    @property
    def host(self) -> str:
        """The ``Host`` the client asked for, or the listener address."""
        value = self.headers.get("host")
        if value:
            return value
        if self.server is not None:
            host, port = self.server
            default_port = 443 if self.scheme == "https" else 80
            return host if port == default_port else f"{host}:{port}"
        return "localhost"

    @property
    def client_addr(self) -> str | None:
        """The originating client address as seen by the listener."""
        return self.client[0] if self.client else None

    @property
    def content_length(self) -> int | None:
        """The Content-Length header as int."""
        value = self.headers.get("content-length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @property
    def url(self) -> str:
        """Path plus query string, as received."""
        if self.query_string:
            return f"{self.path}?{self.query_string.decode('latin-1')}"
        return self.path

    # -- Async body access --

    async def body(self, *, max_size: int | None = None) -> bytes:
        """Read the full request body.

        Result is cached: the ASGI receive is consumed once, then the same
        bytes are returned on subsequent calls. Raises ``PayloadTooLarge``
        as soon as more than *max_size* bytes are declared or received.
        """
        if "_body" in self._cache:
            return self._cache["_body"]

        if max_size is not None and (self.content_length or 0) > max_size:
            raise PayloadTooLarge(max_size)

        chunks: list[bytes] = []
        size = 0
        async for chunk in self.stream():
            size += len(chunk)
            if max_size is not None and size > max_size:
                raise PayloadTooLarge(max_size)
            chunks.append(chunk)

        result = b"".join(chunks)
        self._cache["_body"] = result
        return result

    async def stream(self) -> AsyncGenerator[bytes]:
        """Stream the request body in chunks."""
        while True:
            message = await self._receive()
            if message["type"] == "http.disconnect":
                raise ClientDisconnected
            body = message.get("body", b"")
            if body:
                yield body
            if not message.get("more_body", False):
                break

    # -- Factory --

    @classmethod
    def from_asgi(cls, scope: dict[str, Any], receive: Receive) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        server = scope.get("server")
        client = scope.get("client")
        return cls(
            method=scope["method"],
            path=scope["path"],
            query_string=scope.get("query_string", b""),
            headers=Headers(scope.get("headers", ())),
            http_version=scope.get("http_version", "1.1"),
            scheme=scope.get("scheme", "http"),
            server=tuple(server) if server else None,
            client=tuple(client) if client else None,
            _receive=receive,
            raw_path=scope.get("raw_path"),
        )
