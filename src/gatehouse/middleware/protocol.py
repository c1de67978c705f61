"""Middleware protocol and Next type alias.

A middleware is any callable matching::

    async def my_mw(request: Request, next: Next) -> AnyResponse: ...

No base class required. The gateway checks the shape, not the lineage.

The ``next`` callable may return a buffered ``Response`` (static files,
errors) or a ``StreamingResponse`` (relayed upstream answers). Both share
the ``.with_header()`` / ``.with_status()`` chainable API, so middleware
can modify them uniformly.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol

from gatehouse.http.request import Request
from gatehouse.http.response import Response, StreamingResponse

# Any response type the pipeline can produce
type AnyResponse = Response | StreamingResponse

# The next handler in the middleware chain
type Next = Callable[[Request], Awaitable[AnyResponse]]


class Middleware(Protocol):
    """Protocol for gateway middleware.

    Accepts both functions and callable objects::

        # Function middleware
        async def server_header(request: Request, next: Next) -> AnyResponse:
            response = await next(request)
            return response.with_header("Server", "gatehouse")

        # Class middleware
        class Deny:
            async def __call__(self, request: Request, next: Next) -> AnyResponse:
                ...
    """

    async def __call__(self, request: Request, next: Next) -> AnyResponse: ...
