"""Routing — an immutable, pre-validated longest-prefix route table.

Rules are registered during setup and compiled into a segment trie when
the gateway freezes. Each path matches exactly one rule.
"""

from gatehouse.routing.route import (
    RouteMatch,
    RouteRule,
    StaticTarget,
    Target,
    UpstreamTarget,
    normalize_prefix,
)
from gatehouse.routing.router import Router

__all__ = [
    "RouteMatch",
    "RouteRule",
    "Router",
    "StaticTarget",
    "Target",
    "UpstreamTarget",
    "normalize_prefix",
]
