"""Upstream tier: endpoints, the round-robin pool, and request forwarding."""

from gatehouse.upstream.endpoint import ServiceEndpoint, parse_endpoint
from gatehouse.upstream.forward import Forwarder
from gatehouse.upstream.pool import UpstreamPool

__all__ = [
    "Forwarder",
    "ServiceEndpoint",
    "UpstreamPool",
    "parse_endpoint",
]
