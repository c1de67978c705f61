"""Probe target resolution shared by ``gatehouse probe`` and ``gatehouse wait``.

Endpoints and credentials come from the environment; ``--host``,
``--port`` and ``--timeout`` override them.
"""

import argparse
import dataclasses
import sys

from gatehouse.cli import EXIT_CONFIG
from gatehouse.config import DatastoreConfig, GatewayConfig, ProbeConfig
from gatehouse.errors import ConfigurationError
from gatehouse.health.probe import HTTPProber, PostgresProber, Prober, TCPProber
from gatehouse.upstream.endpoint import ServiceEndpoint


def resolve_target(
    args: argparse.Namespace,
    *,
    env_prefix: str = "GATEHOUSE_DB_",
) -> tuple[ServiceEndpoint, Prober, ProbeConfig]:
    """Build the endpoint, prober and probe tuning for ``args.target``.

    Exits with ``EXIT_CONFIG`` on invalid configuration.
    """
    try:
        probe_config = ProbeConfig.from_env()
        if args.timeout is not None:
            probe_config = dataclasses.replace(probe_config, timeout=args.timeout)

        if args.target == "http":
            upstreams = GatewayConfig.from_env().upstreams
            if not upstreams:
                msg = "No upstream configured for --target http"
                raise ConfigurationError(msg)
            endpoint = upstreams[0]
            prober: Prober = HTTPProber(
                getattr(args, "path", "/health"), timeout=probe_config.timeout
            )
        else:
            datastore = DatastoreConfig.from_env(prefix=env_prefix)
            endpoint = datastore.endpoint
            if args.target == "db":
                prober = PostgresProber(
                    datastore.user,
                    datastore.password,
                    datastore.database,
                    timeout=probe_config.timeout,
                )
            else:
                prober = TCPProber(timeout=probe_config.timeout)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_CONFIG) from exc

    if args.host is not None or args.port is not None:
        endpoint = dataclasses.replace(
            endpoint,
            host=args.host or endpoint.host,
            port=args.port or endpoint.port,
        )
    return endpoint, prober, probe_config
