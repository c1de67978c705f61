"""ASGI handler: translates ASGI scope/messages to gatehouse types.

The only component that touches raw ASGI directly. Converts scope dicts
to typed Request objects, dispatches through middleware and the route
table, and sends the Response back through ASGI send().
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from gatehouse._internal.asgi import Receive, Scope, Send
from gatehouse.errors import ClientDisconnected, HTTPError
from gatehouse.http.request import Request
from gatehouse.http.response import StreamingResponse
from gatehouse.middleware.protocol import AnyResponse, Next
from gatehouse.routing.route import StaticTarget
from gatehouse.routing.router import Router
from gatehouse.server.errors import handle_http_error, handle_internal_error
from gatehouse.server.sender import send_response, send_streaming_response
from gatehouse.static import StaticFiles
from gatehouse.upstream.forward import Forwarder

logger = logging.getLogger("gatehouse.server")


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    router: Router,
    static_files: Mapping[str, StaticFiles],
    forwarder: Forwarder,
    middleware: tuple[Callable[..., Any], ...],
    error_handlers: dict[int | type, Callable[..., Any]],
    debug: bool,
) -> None:
    """Process a single HTTP request through the full pipeline."""
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive)

    try:
        # Innermost handler: route table dispatch
        async def dispatch(req: Request) -> AnyResponse:
            match = router.match(req.path)
            if isinstance(match.rule.target, StaticTarget):
                return await static_files[match.rule.prefix](req, match.remainder)
            return await forwarder.forward(req, match)

        # Wrap middleware around the dispatch
        handler = dispatch
        for mw in reversed(middleware):
            outer = handler
            mw_ref = mw

            async def make_next(req: Request, _mw: Any = mw_ref, _next: Next = outer) -> AnyResponse:
                return await _mw(req, _next)

            handler = make_next

        # Execute the full pipeline
        response = await handler(request)

    except ClientDisconnected:
        logger.debug("client disconnected: %s %s", request.method, request.path)
        return
    except HTTPError as exc:
        response = await handle_http_error(exc, request, error_handlers)
    except Exception as exc:
        response = await handle_internal_error(exc, request, error_handlers, debug)

    try:
        if isinstance(response, StreamingResponse):
            await send_streaming_response(response, send, receive)
        else:
            await send_response(response, send, head=request.method == "HEAD")
    except Exception:
        # Status line may already be out; nothing left to tell the client
        logger.exception("sending response failed: %s %s", request.method, request.path)
