"""Readiness — probes and the startup gate they drive.

    Prober        -- protocol: ``async probe(endpoint) -> ProbeResult``
    TCPProber     -- port accepts connections
    PostgresProber -- PostgreSQL answers ``SELECT 1``
    HTTPProber    -- health endpoint answers 2xx
    StartupGate   -- WAITING -> READY | FAILED state machine
"""

from gatehouse.health.gate import HealthStatus, StartupGate
from gatehouse.health.probe import (
    HTTPProber,
    PostgresProber,
    Prober,
    ProbeResult,
    TCPProber,
    poll,
)

__all__ = [
    "HTTPProber",
    "HealthStatus",
    "PostgresProber",
    "ProbeResult",
    "Prober",
    "StartupGate",
    "TCPProber",
    "poll",
]
