"""Gateway configuration.

Frozen dataclasses: immutable after creation, IDE-autocompletable,
no string-key dict lookups. Each one can also be read from the
environment with ``from_env()``::

    config = GatewayConfig.from_env()
    db = DatastoreConfig.from_env(prefix="FLASK_DB_")

Unset or empty variables keep the dataclass default.
"""

from __future__ import annotations

import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from gatehouse.errors import ConfigurationError
from gatehouse.upstream.endpoint import ServiceEndpoint, parse_endpoint


def _env_str(env: Mapping[str, str], name: str) -> str | None:
    return env.get(name) or None


def _env_float(env: Mapping[str, str], name: str) -> float | None:
    value = env.get(name)
    if not value:
        return None
    try:
        # Accept duration notation such as "10s".
        return float(value.strip().removesuffix("s"))
    except ValueError:
        msg = f"{name}={value!r} is not a number"
        raise ConfigurationError(msg) from None


def _env_int(env: Mapping[str, str], name: str) -> int | None:
    value = env.get(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        msg = f"{name}={value!r} is not an integer"
        raise ConfigurationError(msg) from None


def _env_bool(env: Mapping[str, str], name: str) -> bool | None:
    value = env.get(name)
    if not value:
        return None
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    msg = f"{name}={value!r} is not a boolean"
    raise ConfigurationError(msg)


def _present(**values: Any) -> dict[str, Any]:
    """Drop unset values so the dataclass defaults apply."""
    return {key: value for key, value in values.items() if value is not None}


@dataclass(frozen=True, slots=True)
class ProbeConfig:
    """Health-check tuning shared by every startup gate.

    Defaults mirror a typical container health check::

        interval: 10s, timeout: 5s, retries: 5
    """

    interval: float = 10.0
    timeout: float = 5.0
    retries: int = 5

    def __post_init__(self) -> None:
        if self.interval <= 0:
            msg = f"Probe interval must be positive, got {self.interval}"
            raise ConfigurationError(msg)
        if self.timeout <= 0:
            msg = f"Probe timeout must be positive, got {self.timeout}"
            raise ConfigurationError(msg)
        if self.retries < 0:
            msg = f"Probe retries must be >= 0, got {self.retries}"
            raise ConfigurationError(msg)

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, *, prefix: str = "GATEHOUSE_"
    ) -> ProbeConfig:
        env = os.environ if environ is None else environ
        return cls(
            **_present(
                interval=_env_float(env, f"{prefix}HEALTH_INTERVAL"),
                timeout=_env_float(env, f"{prefix}HEALTH_TIMEOUT"),
                retries=_env_int(env, f"{prefix}HEALTH_RETRIES"),
            )
        )


@dataclass(frozen=True, slots=True)
class DatastoreConfig:
    """Where the datastore lives and how to authenticate the liveness probe.

    The credentials are used for nothing but the probe.
    """

    host: str = "db"
    port: int = 5432
    user: str = "postgres"
    password: str = field(default="", repr=False)
    database: str = "postgres"

    @property
    def endpoint(self) -> ServiceEndpoint:
        return ServiceEndpoint(name="datastore", host=self.host, port=self.port)

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, *, prefix: str = "GATEHOUSE_DB_"
    ) -> DatastoreConfig:
        env = os.environ if environ is None else environ
        return cls(
            **_present(
                host=_env_str(env, f"{prefix}HOST"),
                port=_env_int(env, f"{prefix}PORT"),
                user=_env_str(env, f"{prefix}USER"),
                password=_env_str(env, f"{prefix}PASSWORD"),
                database=_env_str(env, f"{prefix}NAME"),
            )
        )


@dataclass(frozen=True, slots=True)
class GatewayConfig:
    """Front door configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = GatewayConfig(port=8080, static_dir="build")
    """

    # Listener
    host: str = "0.0.0.0"
    port: int = 80

    # Static tier
    static_dir: str | Path = "static"
    index: str = "index.html"

    # Application tier
    api_prefix: str = "/api"
    upstreams: tuple[ServiceEndpoint, ...] = (ServiceEndpoint("backend", "backend", 5000),)
    upstream_health_path: str = "/health"  # "" registers upstreams without probing
    backend_command: tuple[str, ...] = ()

    # Dispatch limits
    connect_timeout: float = 5.0
    request_timeout: float = 60.0
    max_body_size: int = 16 * 1024 * 1024  # 16 MB

    # Readiness
    probe: ProbeConfig = ProbeConfig()
    datastore: DatastoreConfig | None = None

    # Logging
    log_level: str = "info"
    access_log: bool = True

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, *, prefix: str = "GATEHOUSE_"
    ) -> GatewayConfig:
        """Read ``GATEHOUSE_*`` variables.

        ``GATEHOUSE_UPSTREAMS`` is a comma separated list of
        ``[name=]host:port``. The datastore section is present only when
        ``GATEHOUSE_DB_HOST`` is set.
        """
        env = os.environ if environ is None else environ

        upstreams = None
        if raw := env.get(f"{prefix}UPSTREAMS", "").strip():
            upstreams = tuple(parse_endpoint(item) for item in raw.split(",") if item.strip())

        datastore = None
        if env.get(f"{prefix}DB_HOST"):
            datastore = DatastoreConfig.from_env(env, prefix=f"{prefix}DB_")

        backend_command = None
        if command := env.get(f"{prefix}BACKEND_COMMAND", "").strip():
            backend_command = tuple(shlex.split(command))

        return cls(
            **_present(
                host=_env_str(env, f"{prefix}HOST"),
                port=_env_int(env, f"{prefix}PORT"),
                static_dir=_env_str(env, f"{prefix}STATIC_DIR"),
                index=_env_str(env, f"{prefix}INDEX"),
                api_prefix=_env_str(env, f"{prefix}API_PREFIX"),
                upstreams=upstreams,
                upstream_health_path=env.get(f"{prefix}UPSTREAM_HEALTH_PATH"),
                backend_command=backend_command,
                connect_timeout=_env_float(env, f"{prefix}CONNECT_TIMEOUT"),
                request_timeout=_env_float(env, f"{prefix}REQUEST_TIMEOUT"),
                max_body_size=_env_int(env, f"{prefix}MAX_BODY_SIZE"),
                probe=ProbeConfig.from_env(env, prefix=prefix),
                datastore=datastore,
                log_level=_env_str(env, f"{prefix}LOG_LEVEL"),
                access_log=_env_bool(env, f"{prefix}ACCESS_LOG"),
            )
        )
