"""Gatehouse exception hierarchy.

Shared across the router, the forwarder, the health gate and the CLI so
every module raises and catches the same types.
"""

from dataclasses import dataclass


class GatehouseError(Exception):
    """Base for all gatehouse-specific errors."""


class ConfigurationError(GatehouseError):
    """Raised when gateway configuration is invalid.

    Typically raised while reading the environment or during
    ``Gateway._freeze()`` at startup.
    """


class AmbiguousRouteError(ConfigurationError):
    """Two route rules normalise to the same path prefix."""

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        super().__init__(f"Route prefix {prefix!r} is registered more than once.")


class PoolEmpty(GatehouseError):  # noqa: N818
    """No endpoint is registered in the upstream pool."""

    def __init__(self, pool: str) -> None:
        self.pool = pool
        super().__init__(f"Upstream pool {pool!r} has no registered endpoints.")


class GateExhausted(GatehouseError):  # noqa: N818
    """The startup gate gave up waiting for its dependency.

    Terminal: the dependent process must not be started.
    """

    def __init__(self, target: str, attempts: int) -> None:
        self.target = target
        self.attempts = attempts
        super().__init__(f"{target} did not become ready after {attempts} probe(s).")


class ClientDisconnected(GatehouseError):  # noqa: N818
    """The client went away before a response was produced."""


@dataclass(frozen=True, slots=True)
class HTTPError(GatehouseError):
    """An error that maps directly to an HTTP status code.

    Raised by the router, the static target and the forwarder. The ASGI
    handler catches these and turns them into plain-text responses.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818
    """404: nothing to serve for the request path."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class MethodNotAllowed(HTTPError):  # noqa: N818
    """405: the target exists but not for this HTTP method."""

    def __init__(self, allowed: frozenset[str], detail: str = "") -> None:
        allow_value = ", ".join(sorted(allowed))
        super().__init__(
            status=405,
            detail=detail or f"Method not allowed. Allowed methods: {allow_value}",
            headers=(("Allow", allow_value),),
        )


class PayloadTooLarge(HTTPError):  # noqa: N818
    """413: request body exceeds the configured limit."""

    def __init__(self, limit: int) -> None:
        super().__init__(status=413, detail=f"Request body exceeds {limit} bytes")


class BadGateway(HTTPError):  # noqa: N818
    """502: the upstream refused, reset or garbled the exchange."""

    def __init__(self, detail: str = "Bad Gateway") -> None:
        super().__init__(status=502, detail=detail)


class ServiceUnavailable(HTTPError):  # noqa: N818
    """503: no upstream is available to take the request."""

    def __init__(self, detail: str = "Service Unavailable", retry_after: int = 5) -> None:
        super().__init__(
            status=503,
            detail=detail,
            headers=(("Retry-After", str(retry_after)),),
        )


class GatewayTimeout(HTTPError):  # noqa: N818
    """504: the upstream did not answer in time."""

    def __init__(self, detail: str = "Gateway Timeout") -> None:
        super().__init__(status=504, detail=detail)
