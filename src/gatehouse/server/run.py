"""Serve a live Gateway object with uvicorn."""

from __future__ import annotations


def run_server(
    app: object,
    host: str,
    port: int,
    *,
    log_level: str = "info",
    access_log: bool = False,
) -> None:
    """Start a uvicorn server with the given gateway.

    ``uvicorn.run()`` also takes an import string, but the gateway is a
    live object, so ``uvicorn.Server`` is driven directly with the ASGI
    callable. Lifespan is always on: it runs the startup gate and the
    supervisor.

    Args:
        app: ASGI callable (Gateway instance).
        host: Bind host address.
        port: Bind port number.
        log_level: uvicorn log level name.
        access_log: uvicorn's own access log. Off by default since the
            gateway writes one through ``gatehouse.access``.
    """
    import uvicorn

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        lifespan="on",
        log_level=log_level,
        access_log=access_log,
        proxy_headers=False,
    )
    server = uvicorn.Server(config)
    server.run()
