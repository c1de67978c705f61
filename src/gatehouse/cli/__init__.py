"""Gatehouse CLI: health-check probes, the startup gate, and the server.

Entry point registered as ``gatehouse`` in ``pyproject.toml``::

    [project.scripts]
    gatehouse = "gatehouse.cli:main"

Exit codes::

    0  ready / served / gate opened
    1  probe answered unready, or the command could not start
    2  usage or configuration error
    3  startup gate exhausted its retries
"""

import argparse
import logging
import os
import sys

EXIT_UNREADY = 1
EXIT_CONFIG = 2
EXIT_GATE_EXHAUSTED = 3

_TARGETS = ("db", "tcp", "http")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``gatehouse`` command."""
    parser = argparse.ArgumentParser(
        prog="gatehouse",
        description="Gatehouse: readiness gate and front door for a three-tier deployment.",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("GATEHOUSE_LOG_LEVEL", "info"),
        help="Root log level (default: info)",
    )
    subparsers = parser.add_subparsers(dest="command")

    # -- gatehouse probe --------------------------------------------------
    probe_parser = subparsers.add_parser(
        "probe", help="Probe a dependency once (exit 0 ready, 1 unready)"
    )
    _add_target_arguments(probe_parser)
    probe_parser.add_argument(
        "--path", default="/health", help="Health path for --target http"
    )

    # -- gatehouse wait ---------------------------------------------------
    wait_parser = subparsers.add_parser(
        "wait", help="Hold until the datastore is ready, then exec a command"
    )
    _add_target_arguments(wait_parser)
    wait_parser.add_argument(
        "--env-prefix",
        default="GATEHOUSE_DB_",
        help="Datastore variable prefix (FLASK_DB_ reads the backend's own)",
    )
    wait_parser.add_argument(
        "exec_command",
        nargs=argparse.REMAINDER,
        metavar="-- command",
        help="Command to exec once the gate opens",
    )

    # -- gatehouse serve --------------------------------------------------
    serve_parser = subparsers.add_parser("serve", help="Run the front door")
    serve_parser.add_argument("--host", default=None, help="Bind host address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port number")
    serve_parser.add_argument(
        "app",
        nargs="?",
        default=None,
        help="Import string (e.g. mysite:gateway); built from GATEHOUSE_* when omitted",
    )

    # -- gatehouse routes -------------------------------------------------
    routes_parser = subparsers.add_parser("routes", help="Print the compiled route table")
    routes_parser.add_argument(
        "app",
        nargs="?",
        default=None,
        help="Import string (e.g. mysite:gateway); built from GATEHOUSE_* when omitted",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "probe":
        from gatehouse.cli._probe import run_probe

        run_probe(args)
    elif args.command == "wait":
        from gatehouse.cli._wait import run_wait

        run_wait(args)
    elif args.command == "serve":
        from gatehouse.cli._serve import run_serve

        run_serve(args)
    elif args.command == "routes":
        from gatehouse.cli._routes import run_routes

        run_routes(args)


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--target",
        choices=_TARGETS,
        default="db",
        help="db: authenticated Postgres check, tcp: port accepts, http: 2xx on --path",
    )
    parser.add_argument("--host", default=None, help="Override the target host")
    parser.add_argument("--port", type=int, default=None, help="Override the target port")
    parser.add_argument(
        "--timeout", type=float, default=None, help="Probe timeout in seconds"
    )
