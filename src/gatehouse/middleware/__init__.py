"""Middleware — Protocol-based, no inheritance required.

A middleware is any callable matching:
    async def mw(request: Request, next: Next) -> AnyResponse

Built-in middleware:
    AccessLog -- one combined-format line per request
"""

from gatehouse.middleware.access_log import AccessLog
from gatehouse.middleware.protocol import AnyResponse, Middleware, Next

__all__ = [
    "AccessLog",
    "AnyResponse",
    "Middleware",
    "Next",
]
