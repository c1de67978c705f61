"""Startup gate — holds a dependent process until its dependency is ready.

States::

    UNKNOWN ──probe──> UNREADY ──probe──> ... ──> FAILED (terminal)
       │                  │
       └────── READY <────┘  (terminal, exactly once)

Transitions are monotonic: once READY or FAILED, later reports are
ignored. The gate never re-checks a dependency after releasing it.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING

from gatehouse.errors import GateExhausted
from gatehouse.health.probe import ProbeResult, poll

if TYPE_CHECKING:
    from gatehouse.health.probe import Prober
    from gatehouse.upstream.endpoint import ServiceEndpoint

logger = logging.getLogger("gatehouse.health")


class HealthStatus(Enum):
    UNKNOWN = "unknown"
    READY = "ready"
    UNREADY = "unready"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (HealthStatus.READY, HealthStatus.FAILED)


class StartupGate:
    """Explicit state machine between a dependency and its dependent.

    Fed one probe result at a time through ``report()``. Up to
    ``max_retries`` UNREADY reports are tolerated; the next one fails
    the gate.

    Usage::

        gate = StartupGate("datastore", max_retries=5)
        await gate.run(PostgresProber(), endpoint, interval=10.0)
        start_backend()  # only reached once the gate is READY

    Thread safety:
        ``report()`` and the status properties read and write under one
        ``threading.Lock``, so no reader sees WAITING after the READY
        transition has been made.
    """

    __slots__ = ("_failures", "_lock", "_reports", "_status", "max_retries", "target")

    def __init__(self, target: str, max_retries: int = 5) -> None:
        if max_retries < 0:
            msg = f"max_retries must be >= 0, got {max_retries}"
            raise ValueError(msg)
        self.target = target
        self.max_retries = max_retries
        self._lock = threading.Lock()
        self._status = HealthStatus.UNKNOWN
        self._failures = 0
        self._reports = 0

    # -- State --

    @property
    def status(self) -> HealthStatus:
        with self._lock:
            return self._status

    @property
    def failures(self) -> int:
        """UNREADY reports counted while waiting."""
        with self._lock:
            return self._failures

    @property
    def released(self) -> bool:
        """True once the dependent may start."""
        return self.status is HealthStatus.READY

    @property
    def failed(self) -> bool:
        return self.status is HealthStatus.FAILED

    # -- Transitions --

    def report(self, result: ProbeResult) -> HealthStatus:
        """Apply one probe result and return the resulting status."""
        with self._lock:
            if self._status.terminal:
                return self._status

            self._reports += 1
            if result is ProbeResult.READY:
                self._status = HealthStatus.READY
                logger.info("%s is ready after %d probe(s)", self.target, self._reports)
                return self._status

            self._failures += 1
            if self._failures > self.max_retries:
                self._status = HealthStatus.FAILED
                logger.critical(
                    "%s failed readiness: %d consecutive unready probe(s), limit %d",
                    self.target,
                    self._failures,
                    self.max_retries,
                )
            else:
                self._status = HealthStatus.UNREADY
                logger.debug(
                    "%s not ready (%d/%d)", self.target, self._failures, self.max_retries
                )
            return self._status

    async def run(
        self,
        prober: Prober,
        endpoint: ServiceEndpoint,
        *,
        interval: float,
    ) -> HealthStatus:
        """Probe *endpoint* every *interval* seconds until the gate settles.

        Returns ``HealthStatus.READY``. Raises ``GateExhausted`` when the
        retry ceiling is exceeded.
        """
        status = self.status
        if not status.terminal:
            logger.info("waiting for %s at %s", self.target, endpoint.address)
            results = poll(prober, endpoint, interval=interval)
            try:
                async for result in results:
                    status = self.report(result)
                    if status.terminal:
                        break
            finally:
                await results.aclose()

        if status is HealthStatus.FAILED:
            raise GateExhausted(self.target, self._reports)
        return status

    def __repr__(self) -> str:
        return f"StartupGate({self.target!r}, status={self.status.value}, failures={self.failures})"
