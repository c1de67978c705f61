"""Access logging middleware.

One line per request on the ``gatehouse.access`` logger, in a shape
close to the combined log format front-door servers write::

    203.0.113.9 "GET /api/status HTTP/1.1" 200 17 "-" "curl/8.5" 0.012s
"""

import logging
import time

from gatehouse.errors import HTTPError
from gatehouse.http.request import Request
from gatehouse.middleware.protocol import AnyResponse, Next

logger = logging.getLogger("gatehouse.access")


class AccessLog:
    """Log every request with its status and timing."""

    __slots__ = ("_logger",)

    def __init__(self, logger_: logging.Logger | None = None) -> None:
        self._logger = logger_ or logger

    async def __call__(self, request: Request, next: Next) -> AnyResponse:
        start = time.monotonic()
        try:
            response = await next(request)
        except HTTPError as exc:
            self._log(request, exc.status, None, start)
            raise
        self._log(request, response.status, response.header("content-length"), start)
        return response

    def _log(self, request: Request, status: int, size: str | None, start: float) -> None:
        if not self._logger.isEnabledFor(logging.INFO):
            return
        self._logger.info(
            '%s "%s %s HTTP/%s" %d %s "%s" "%s" %.3fs',
            request.client_addr or "-",
            request.method,
            request.url,
            request.http_version,
            status,
            size or "-",
            request.headers.get("referer", "-"),
            request.headers.get("user-agent", "-"),
            time.monotonic() - start,
        )
