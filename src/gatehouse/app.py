"""Gateway application class.

Mutable during setup (route rules, middleware, hooks, background tasks).
Frozen at runtime when gateway.run() or __call__() is first invoked.
"""

from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import Any

import anyio
import httpx

from gatehouse._internal.asgi import Receive, Scope, Send
from gatehouse.config import GatewayConfig
from gatehouse.errors import GateExhausted
from gatehouse.health.probe import HTTPProber, PostgresProber, Prober
from gatehouse.middleware.access_log import AccessLog
from gatehouse.middleware.protocol import Middleware
from gatehouse.routing.route import RouteRule, StaticTarget, UpstreamTarget
from gatehouse.routing.router import Router
from gatehouse.server.handler import handle_request
from gatehouse.static import StaticFiles
from gatehouse.supervisor import BackendProcess, Supervisor
from gatehouse.upstream.forward import Forwarder
from gatehouse.upstream.pool import UpstreamPool

logger = logging.getLogger("gatehouse.server")

type ErrorHandler = Callable[..., Any]
type BackgroundTask = Callable[[], Awaitable[Any]]


class Gateway:
    """The front door.

    Mutable during setup (route rules, middleware, hooks).
    Frozen at runtime when ``gateway.run()`` or ``__call__()`` is first
    invoked.

    Usage::

        gateway = Gateway()
        gateway.static("/", "./build")
        pool = gateway.upstream("/api")
        pool.register(ServiceEndpoint("backend", "backend", 5000))

    Thread safety:
        The freeze transition uses a Lock + double-check to ensure exactly
        one thread compiles the route table, even when several ASGI
        workers call ``__call__()`` concurrently on first request.
    """

    __slots__ = (
        "_background_tasks",
        "_error_handlers",
        "_freeze_lock",
        "_frozen",
        "_middleware",
        "_middleware_list",
        "_pending_rules",
        "_pools",
        # Compiled state (populated by _freeze)
        "_router",
        "_shutdown_hooks",
        "_startup_hooks",
        "_static_files",
        "config",
        "debug",
        "forwarder",
        "supervisor",
    )

    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        debug: bool = False,
    ) -> None:
        self.config: GatewayConfig = config or GatewayConfig()
        self.debug = debug
        self.forwarder = Forwarder(
            connect_timeout=self.config.connect_timeout,
            request_timeout=self.config.request_timeout,
            max_body_size=self.config.max_body_size,
            transport=transport,
        )
        self.supervisor: Supervisor | None = None
        self._pending_rules: list[RouteRule] = []
        self._pools: dict[str, UpstreamPool] = {}
        self._middleware_list: list[Middleware] = []
        self._error_handlers: dict[int | type, ErrorHandler] = {}
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._background_tasks: list[BackgroundTask] = []
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()

        # Compiled state, set during _freeze()
        self._router: Router | None = None
        self._static_files: dict[str, StaticFiles] = {}
        self._middleware: tuple[Callable[..., Any], ...] = ()

    @classmethod
    def from_config(
        cls,
        config: GatewayConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        datastore_prober: Prober | None = None,
    ) -> Gateway:
        """Build the standard three-tier front door.

        ``/`` serves ``static_dir`` with index fallback, ``api_prefix``
        forwards to the upstream pool, and a supervisor gates on the
        datastore, launches ``backend_command`` if set, then registers
        each upstream once its health endpoint answers.
        """
        config = config or GatewayConfig.from_env()
        gateway = cls(config, transport=transport)
        gateway.static("/", config.static_dir, index=config.index)
        pool = gateway.upstream(config.api_prefix, UpstreamPool(config.api_prefix.strip("/") or "api"))

        datastore = config.datastore
        if datastore is not None and datastore_prober is None:
            datastore_prober = PostgresProber(
                datastore.user,
                datastore.password,
                datastore.database,
                timeout=config.probe.timeout,
            )

        upstream_prober = None
        if config.upstream_health_path:
            upstream_prober = HTTPProber(
                config.upstream_health_path,
                timeout=config.probe.timeout,
                transport=transport,
            )

        supervisor = Supervisor(
            pool,
            config.upstreams,
            probe=config.probe,
            upstream_prober=upstream_prober,
            datastore=datastore.endpoint if datastore is not None else None,
            datastore_prober=datastore_prober if datastore is not None else None,
            process=BackendProcess(config.backend_command) if config.backend_command else None,
        )
        gateway.supervisor = supervisor
        gateway.background(supervisor.run)
        return gateway

    # -- Route registration --

    def static(
        self,
        prefix: str,
        directory: str | Path,
        *,
        index: str | None = None,
        fallback: bool = True,
        cache_control: str = "public, max-age=3600",
    ) -> None:
        """Serve files under ``directory`` for paths below ``prefix``."""
        self._check_not_frozen()
        target = StaticTarget(
            Path(directory),
            index=index or self.config.index,
            fallback=fallback,
            cache_control=cache_control,
        )
        self._pending_rules.append(RouteRule(prefix, target))

    def upstream(
        self,
        prefix: str,
        pool: UpstreamPool | None = None,
        *,
        strip_prefix: bool = True,
    ) -> UpstreamPool:
        """Forward paths below ``prefix`` to ``pool``; returns the pool."""
        self._check_not_frozen()
        pool = pool if pool is not None else UpstreamPool(prefix.strip("/") or "default")
        rule = RouteRule(prefix, UpstreamTarget(pool, strip_prefix=strip_prefix))
        self._pending_rules.append(rule)
        self._pools[rule.prefix] = pool
        return pool

    @property
    def pools(self) -> Mapping[str, UpstreamPool]:
        """Upstream pools keyed by normalized route prefix."""
        return dict(self._pools)

    @property
    def rules(self) -> list[RouteRule]:
        """The compiled route table, deepest prefix first."""
        self._ensure_frozen()
        assert self._router is not None
        return self._router.rules

    # -- Error handlers --

    def error(
        self,
        code_or_exception: int | type[Exception],
    ) -> Callable[[ErrorHandler], ErrorHandler]:
        """Register an error handler via decorator."""

        def decorator(func: ErrorHandler) -> ErrorHandler:
            self._check_not_frozen()
            self._error_handlers[code_or_exception] = func
            return func

        return decorator

    # -- Middleware --

    def add_middleware(self, middleware: Middleware) -> None:
        """Add a middleware to the pipeline."""
        self._check_not_frozen()
        self._middleware_list.append(middleware)

    # -- Lifecycle hooks --

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync startup hook via decorator.

        Hooks run in registration order during ASGI lifespan startup,
        before the server begins accepting HTTP requests.
        """
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync shutdown hook via decorator."""
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    def background(self, func: BackgroundTask) -> BackgroundTask:
        """Run ``func`` for the lifetime of the server.

        Background tasks start after the startup hooks and are cancelled
        at shutdown. A task that ends with ``GateExhausted`` is logged at
        CRITICAL; the gateway keeps serving, and routes whose pool never
        filled answer 503.

        Usage::

            @gateway.background
            async def watch():
                ...
        """
        self._check_not_frozen()
        self._background_tasks.append(func)
        return func

    # -- Server --

    def run(self, host: str | None = None, port: int | None = None) -> None:
        """Compile the gateway and serve it until interrupted."""
        self._ensure_frozen()

        from gatehouse.server.run import run_server

        run_server(
            self,
            host=host or self.config.host,
            port=port or self.config.port,
            log_level=self.config.log_level,
        )

    # -- ASGI interface --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point.

        Handles the lifespan scope directly, then delegates HTTP scopes to
        the request handler pipeline.
        """
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        self._ensure_frozen()

        assert self._router is not None

        await handle_request(
            scope,
            receive,
            send,
            router=self._router,
            static_files=self._static_files,
            forwarder=self.forwarder,
            middleware=self._middleware,
            error_handlers=self._error_handlers,
            debug=self.debug,
        )

    async def _handle_lifespan(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
    ) -> None:
        """Run the ASGI lifespan protocol.

        Freezes the gateway at startup (before first HTTP request), runs
        the startup hooks, opens the upstream client, and keeps the
        background tasks running until the server asks to shut down.
        """
        self._ensure_frozen()

        message = await receive()
        if message["type"] != "lifespan.startup":
            return
        try:
            await _run_hooks(self._startup_hooks)
            self.forwarder.open()
        except Exception as exc:
            logger.exception("startup failed")
            await send({"type": "lifespan.startup.failed", "message": str(exc)})
            return

        async with anyio.create_task_group() as tg:
            for task in self._background_tasks:
                tg.start_soon(_run_background, task)
            await send({"type": "lifespan.startup.complete"})

            while message["type"] != "lifespan.shutdown":
                message = await receive()
            tg.cancel_scope.cancel()

        try:
            await _run_hooks(self._shutdown_hooks)
        finally:
            await self.forwarder.aclose()
        await send({"type": "lifespan.shutdown.complete"})

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking."""
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Compile the gateway into its frozen runtime state.

        MUST only be called while holding _freeze_lock.
        """
        # 1. Compile route table; duplicate prefixes or a missing root
        #    rule fail here, before any request is served
        router = Router()
        for rule in self._pending_rules:
            router.add(rule)
        router.compile()
        self._router = router

        # 2. One file server per static rule
        self._static_files = {
            rule.prefix: StaticFiles.from_target(rule.target)
            for rule in router.rules
            if isinstance(rule.target, StaticTarget)
        }

        # 3. Capture middleware as immutable tuple, access log outermost
        middleware_list: list[Middleware] = list(self._middleware_list)
        if self.config.access_log:
            middleware_list.insert(0, AccessLog())
        self._middleware = tuple(middleware_list)

        self._frozen = True

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the gateway after it has started serving requests. "
                "Register routes, middleware, and hooks before calling gateway.run()."
            )
            raise RuntimeError(msg)


async def _run_hooks(hooks: list[Callable[..., Any]]) -> None:
    for hook in hooks:
        result = hook()
        if inspect.isawaitable(result):
            await result


async def _run_background(task: BackgroundTask) -> None:
    try:
        await task()
    except GateExhausted as exc:
        logger.critical("%s; dependent routes will answer 503", exc)
    except Exception:
        logger.exception("background task %s crashed", getattr(task, "__qualname__", task))
