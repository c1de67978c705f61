"""RouteRule, its targets, and RouteMatch frozen dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gatehouse.upstream.pool import UpstreamPool


def split_path(path: str) -> list[str]:
    """Split a URL path into non-empty segments.

    Examples::

        "/"            -> []
        "/api/status"  -> ["api", "status"]
        "//api//x/"    -> ["api", "x"]
    """
    return [part for part in path.split("/") if part]


def normalize_prefix(prefix: str) -> str:
    """Canonical form of a route prefix: leading slash, no trailing slash.

    ``"/api/"``, ``"api"`` and ``"/api"`` all normalise to ``"/api"``;
    the root is ``"/"``.
    """
    return "/" + "/".join(split_path(prefix))


@dataclass(frozen=True, slots=True)
class StaticTarget:
    """Serve files from ``directory``.

    When ``fallback`` is set, paths with no matching file get the
    ``index`` document, so client-side routes of a single-page app
    resolve.
    """

    directory: Path
    index: str = "index.html"
    fallback: bool = True
    cache_control: str = "public, max-age=3600"

    def __post_init__(self) -> None:
        object.__setattr__(self, "directory", Path(self.directory))


@dataclass(frozen=True, slots=True)
class UpstreamTarget:
    """Forward to a member of ``pool``.

    With ``strip_prefix`` the matched prefix is removed before forwarding
    (``/api/status`` reaches the backend as ``/status``).
    """

    pool: UpstreamPool = field(compare=False)
    strip_prefix: bool = True


type Target = StaticTarget | UpstreamTarget


@dataclass(frozen=True, slots=True)
class RouteRule:
    """A prefix and what serves it. Immutable once created.

    The prefix is normalised on construction, so ``RouteRule("/api/", ...)``
    and ``RouteRule("/api", ...)`` claim the same paths.
    """

    prefix: str
    target: Target

    def __post_init__(self) -> None:
        object.__setattr__(self, "prefix", normalize_prefix(self.prefix))

    @property
    def depth(self) -> int:
        """Number of path segments in the prefix (root is 0)."""
        return len(split_path(self.prefix))


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of matching a request path against the route table."""

    rule: RouteRule
    path: str
    remainder: str

    @property
    def forward_path(self) -> str:
        """Path to send upstream: the remainder when the rule strips its prefix."""
        target = self.rule.target
        if isinstance(target, UpstreamTarget) and not target.strip_prefix:
            return self.path
        return self.remainder
