"""Static asset serving for the front door's static tier.

Resolves the path below the matched prefix inside an asset root. Paths
with no matching file fall back to the index document so a single-page
application can route on the client.

Security: resolves symlinks and verifies the final path is within the
configured directory to prevent path traversal.
"""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path

from gatehouse.errors import MethodNotAllowed, NotFound
from gatehouse.http.request import Request
from gatehouse.http.response import Response
from gatehouse.routing.route import StaticTarget

logger = logging.getLogger("gatehouse.server")

_ALLOWED = frozenset({"GET", "HEAD"})


class StaticFiles:
    """Serve files from a directory, with index-document fallback.

    Usage::

        files = StaticFiles("./build")
        response = await files(request, "/css/app.css")
        response = await files(request, "/game/42")  # -> build/index.html
    """

    __slots__ = ("_cache_control", "_directory", "_fallback", "_index")

    def __init__(
        self,
        directory: str | Path,
        *,
        index: str = "index.html",
        fallback: bool = True,
        cache_control: str = "public, max-age=3600",
    ) -> None:
        self._directory = Path(directory).resolve()
        self._index = index
        self._fallback = fallback
        self._cache_control = cache_control

    @classmethod
    def from_target(cls, target: StaticTarget) -> StaticFiles:
        return cls(
            target.directory,
            index=target.index,
            fallback=target.fallback,
            cache_control=target.cache_control,
        )

    @property
    def directory(self) -> Path:
        return self._directory

    async def __call__(self, request: Request, relative: str) -> Response:
        """Serve *relative* (the path below the matched prefix)."""
        if request.method not in _ALLOWED:
            raise MethodNotAllowed(_ALLOWED)

        relative = relative.lstrip("/")

        # Resolve the file path and check for traversal
        try:
            file_path = (self._directory / relative).resolve() if relative else self._directory
        except (OSError, ValueError):
            return self._not_found(request)
        if not file_path.is_relative_to(self._directory):
            logger.warning("traversal attempt blocked: %s", request.path)
            return Response(body="Forbidden", status=403)

        # Names the filesystem rejects (ENAMETOOLONG and the like) are missing files
        try:
            is_dir = file_path.is_dir()
            is_file = not is_dir and file_path.is_file()
        except OSError:
            return self._not_found(request)

        # Directory: try index file or redirect for trailing slash
        if is_dir:
            index_path = file_path / self._index
            if not request.path.endswith("/") and relative and index_path.is_file():
                return Response(body="", status=301).with_header("Location", request.path + "/")
            if index_path.is_file():
                return self._serve_file(index_path, cache_control="no-cache")
            return self._not_found(request)

        if is_file:
            return self._serve_file(file_path)

        return self._not_found(request)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _serve_file(self, file_path: Path, *, cache_control: str | None = None) -> Response:
        """Read a file and build a response."""
        content_type, _ = mimetypes.guess_type(str(file_path))
        if content_type is None:
            content_type = "application/octet-stream"
        elif content_type.startswith("text/") or content_type in (
            "application/javascript",
            "application/json",
        ):
            content_type += "; charset=utf-8"

        body = file_path.read_bytes()

        return Response(body=body, content_type=content_type).with_header(
            "Cache-Control", cache_control or self._cache_control
        )

    def _not_found(self, request: Request) -> Response:
        """Serve the index document in place of a missing file, or 404."""
        if self._fallback:
            index_path = self._directory / self._index
            if index_path.is_file():
                return self._serve_file(index_path, cache_control="no-cache")
        raise NotFound(f"No file for {request.path!r}")
