"""``gatehouse wait``: hold a process back until its dependency is ready.

Runs the startup gate against the datastore. When the gate opens the
given command replaces this process (``exec``), so it keeps the
container's PID and signals. When the gate exhausts its retries the
command is never started::

    gatehouse wait --env-prefix FLASK_DB_ -- flask run --host 0.0.0.0
"""

import argparse
import functools
import os
import sys

import anyio

from gatehouse.cli import EXIT_GATE_EXHAUSTED, EXIT_UNREADY
from gatehouse.cli._target import resolve_target
from gatehouse.errors import GateExhausted
from gatehouse.health.gate import StartupGate


def run_wait(args: argparse.Namespace) -> None:
    """Gate on ``args.target``, then exec ``args.exec_command`` (if any)."""
    command = list(args.exec_command)
    if command and command[0] == "--":
        command = command[1:]

    endpoint, prober, probe_config = resolve_target(args, env_prefix=args.env_prefix)
    gate = StartupGate(endpoint.name, max_retries=probe_config.retries)

    try:
        anyio.run(functools.partial(gate.run, prober, endpoint, interval=probe_config.interval))
    except GateExhausted as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_GATE_EXHAUSTED) from exc

    if not command:
        return

    try:
        os.execvp(command[0], command)
    except OSError as exc:
        print(f"Error: cannot exec {command[0]!r}: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_UNREADY) from exc
