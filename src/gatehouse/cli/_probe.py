"""``gatehouse probe``: a single readiness probe.

Suited to a container health-check command: prints the verdict and
exits 0 when ready, 1 when not.
"""

import argparse

import anyio

from gatehouse.cli import EXIT_UNREADY
from gatehouse.cli._target import resolve_target
from gatehouse.health.probe import ProbeResult


def run_probe(args: argparse.Namespace) -> None:
    """Probe ``args.target`` once and exit with the verdict."""
    endpoint, prober, _ = resolve_target(args)
    result = anyio.run(prober.probe, endpoint)
    print(f"{endpoint}: {result.value}")
    raise SystemExit(0 if result is ProbeResult.READY else EXIT_UNREADY)
