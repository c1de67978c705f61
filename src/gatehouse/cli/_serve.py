"""``gatehouse serve``: run the front door under uvicorn."""

import argparse
import sys

from gatehouse.cli import EXIT_CONFIG
from gatehouse.cli._resolve import resolve_gateway
from gatehouse.errors import ConfigurationError


def run_serve(args: argparse.Namespace) -> None:
    """Resolve the gateway, compile its route table and serve it.

    The route table compiles before the server binds, so a duplicate or
    missing root rule exits without opening a socket.
    """
    gateway = resolve_gateway(args.app)
    try:
        gateway.rules  # noqa: B018
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_CONFIG) from exc

    gateway.run(host=args.host, port=args.port)
