"""Upstream pool with round-robin selection.

Membership is copy-on-write: ``register`` and ``deregister`` swap in a new
tuple, so ``next()`` always picks from a consistent snapshot.
"""

import logging
import threading

from gatehouse.errors import PoolEmpty
from gatehouse.upstream.endpoint import ServiceEndpoint

logger = logging.getLogger("gatehouse.upstream")


class UpstreamPool:
    """An ordered set of backend endpoints the proxy may dispatch to.

    Usage::

        pool = UpstreamPool("backend")
        pool.register(ServiceEndpoint("a", "10.0.0.1", 5000))
        pool.register(ServiceEndpoint("b", "10.0.0.2", 5000))
        pool.next()  # a
        pool.next()  # b

    Thread safety:
        All mutation and the cursor advance in ``next()`` happen under a
        single ``threading.Lock``; concurrent dispatchers never observe a
        torn cursor or receive an endpoint that is no longer a member.
    """

    __slots__ = ("_cursor", "_lock", "_members", "name")

    def __init__(self, name: str = "default", members: tuple[ServiceEndpoint, ...] = ()) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._members: tuple[ServiceEndpoint, ...] = ()
        self._cursor = 0
        for endpoint in members:
            self.register(endpoint)

    def register(self, endpoint: ServiceEndpoint) -> bool:
        """Add *endpoint* to the rotation. Returns False if already present."""
        with self._lock:
            if endpoint in self._members:
                return False
            self._members = (*self._members, endpoint)
        logger.info("pool %s: registered %s", self.name, endpoint)
        return True

    def deregister(self, endpoint: ServiceEndpoint) -> bool:
        """Remove *endpoint* from the rotation. Returns False if absent."""
        with self._lock:
            if endpoint not in self._members:
                return False
            index = self._members.index(endpoint)
            self._members = tuple(m for m in self._members if m != endpoint)
            # Keep the remaining members in the same rotation order.
            if index < self._cursor:
                self._cursor -= 1
            if self._cursor >= len(self._members):
                self._cursor = 0
        logger.info("pool %s: deregistered %s", self.name, endpoint)
        return True

    def next(self) -> ServiceEndpoint:
        """Return the next endpoint in round-robin order.

        Raises ``PoolEmpty`` when nothing is registered.
        """
        with self._lock:
            if not self._members:
                raise PoolEmpty(self.name)
            endpoint = self._members[self._cursor % len(self._members)]
            self._cursor = (self._cursor + 1) % len(self._members)
        return endpoint

    @property
    def members(self) -> tuple[ServiceEndpoint, ...]:
        """Snapshot of the currently registered endpoints."""
        return self._members

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, endpoint: object) -> bool:
        return endpoint in self._members

    def __repr__(self) -> str:
        members = ", ".join(str(m) for m in self._members)
        return f"UpstreamPool({self.name!r}, [{members}])"
