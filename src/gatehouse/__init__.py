"""Gatehouse: the front door of a three-tier web deployment.

Holds the application tier back until the datastore answers, then routes
traffic: static assets (with an index fallback for client-side routing)
and ``/api`` forwarded to a round-robin pool of backends.

Basic usage::

    from gatehouse import Gateway, ServiceEndpoint

    gateway = Gateway()
    gateway.static("/", "./build")
    pool = gateway.upstream("/api")
    pool.register(ServiceEndpoint("backend", "backend", 5000))

    gateway.run()

The standard deployment, configured from ``GATEHOUSE_*`` variables::

    gateway = Gateway.from_config()
"""

__version__ = "0.1.0"
__all__ = [
    "AnyResponse",
    "BadGateway",
    "ConfigurationError",
    "DatastoreConfig",
    "GateExhausted",
    "GatehouseError",
    "Gateway",
    "GatewayConfig",
    "GatewayTimeout",
    "HTTPError",
    "HTTPProber",
    "HealthStatus",
    "Middleware",
    "Next",
    "NotFound",
    "PoolEmpty",
    "PostgresProber",
    "ProbeConfig",
    "ProbeResult",
    "Request",
    "Response",
    "RouteRule",
    "Router",
    "ServiceEndpoint",
    "ServiceUnavailable",
    "StartupGate",
    "StreamingResponse",
    "Supervisor",
    "TCPProber",
    "UpstreamPool",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import gatehouse`` fast while providing a clean top-level API.
    """
    if name == "Gateway":
        from gatehouse.app import Gateway

        return Gateway

    if name in ("DatastoreConfig", "GatewayConfig", "ProbeConfig"):
        from gatehouse import config as _config

        return getattr(_config, name)

    if name == "Request":
        from gatehouse.http.request import Request

        return Request

    if name in ("Response", "StreamingResponse"):
        from gatehouse.http import response as _resp

        return getattr(_resp, name)

    if name in ("HTTPProber", "PostgresProber", "ProbeResult", "TCPProber"):
        from gatehouse.health import probe as _probe

        return getattr(_probe, name)

    if name in ("HealthStatus", "StartupGate"):
        from gatehouse.health import gate as _gate

        return getattr(_gate, name)

    if name in ("RouteRule", "Router"):
        from gatehouse import routing as _routing

        return getattr(_routing, name)

    if name in ("ServiceEndpoint", "UpstreamPool"):
        from gatehouse import upstream as _upstream

        return getattr(_upstream, name)

    if name == "Supervisor":
        from gatehouse.supervisor import Supervisor

        return Supervisor

    if name in ("AnyResponse", "Middleware", "Next"):
        from gatehouse.middleware import protocol as _mw

        return getattr(_mw, name)

    if name in (
        "BadGateway",
        "ConfigurationError",
        "GateExhausted",
        "GatehouseError",
        "GatewayTimeout",
        "HTTPError",
        "NotFound",
        "PoolEmpty",
        "ServiceUnavailable",
    ):
        from gatehouse import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
