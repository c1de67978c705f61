"""Startup sequencing for the application tier.

The supervisor enforces the dependency-readiness contract:

1. gate on the datastore; if the gate fails, stop here (the backend is
   never launched and ``GateExhausted`` propagates);
2. launch the backend process, if the gateway owns one;
3. gate on each upstream's health endpoint and register it in the pool
   once it answers;
4. while the launched backend lives, keep it registered; when it exits,
   deregister its upstreams.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

import anyio
from anyio.abc import Process

from gatehouse.config import ProbeConfig
from gatehouse.errors import GateExhausted
from gatehouse.health.gate import StartupGate

if TYPE_CHECKING:
    from gatehouse.health.probe import Prober
    from gatehouse.upstream.endpoint import ServiceEndpoint
    from gatehouse.upstream.pool import UpstreamPool

logger = logging.getLogger("gatehouse.supervisor")


class BackendProcess:
    """A child process started only after the datastore gate opens.

    Inherits the gateway's stdout/stderr; ``env`` is layered over the
    current environment.
    """

    __slots__ = ("_process", "command", "env")

    def __init__(self, command: Sequence[str], env: Mapping[str, str] | None = None) -> None:
        if not command:
            msg = "BackendProcess needs a command"
            raise ValueError(msg)
        self.command = tuple(command)
        self.env = dict(env or {})
        self._process: Process | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process is not None else None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        if self._process is not None:
            msg = "Backend process already started"
            raise RuntimeError(msg)
        self._process = await anyio.open_process(
            list(self.command),
            stdin=subprocess.DEVNULL,
            stdout=None,
            stderr=None,
            env={**os.environ, **self.env},
        )
        logger.info("started backend pid %d: %s", self._process.pid, " ".join(self.command))

    async def wait(self) -> int:
        if self._process is None:
            msg = "Backend process not started"
            raise RuntimeError(msg)
        return await self._process.wait()

    async def terminate(self, grace: float = 10.0) -> None:
        """SIGTERM, then SIGKILL if the process outlives *grace* seconds."""
        if not self.running:
            return
        assert self._process is not None
        self._process.terminate()
        with anyio.move_on_after(grace):
            await self._process.wait()
            return
        logger.warning("backend pid %d ignored SIGTERM; killing", self._process.pid)
        self._process.kill()
        await self._process.wait()


class Supervisor:
    """Sequence datastore readiness, backend launch and pool registration.

    Usage::

        supervisor = Supervisor(
            pool,
            (ServiceEndpoint("backend", "backend", 5000),),
            probe=ProbeConfig(),
            upstream_prober=HTTPProber("/health"),
            datastore=db.endpoint,
            datastore_prober=PostgresProber(db.user, db.password, db.database),
        )
        await supervisor.run()
    """

    __slots__ = (
        "datastore",
        "datastore_prober",
        "gates",
        "pool",
        "probe",
        "process",
        "upstream_prober",
        "upstreams",
    )

    def __init__(
        self,
        pool: UpstreamPool,
        upstreams: Sequence[ServiceEndpoint],
        *,
        probe: ProbeConfig | None = None,
        upstream_prober: Prober | None = None,
        datastore: ServiceEndpoint | None = None,
        datastore_prober: Prober | None = None,
        process: BackendProcess | None = None,
    ) -> None:
        if datastore is not None and datastore_prober is None:
            msg = "A datastore endpoint needs a datastore_prober"
            raise ValueError(msg)
        self.pool = pool
        self.upstreams = tuple(upstreams)
        self.probe = probe or ProbeConfig()
        self.upstream_prober = upstream_prober
        self.datastore = datastore
        self.datastore_prober = datastore_prober
        self.process = process
        self.gates: dict[str, StartupGate] = {}

    async def run(self) -> None:
        """Run the full startup sequence, then watch the backend process.

        Raises ``GateExhausted`` if the datastore never becomes ready, or
        if no upstream does.
        """
        if self.datastore is not None:
            assert self.datastore_prober is not None
            gate = self._gate(self.datastore)
            await gate.run(self.datastore_prober, self.datastore, interval=self.probe.interval)

        try:
            if self.process is not None:
                await self.process.start()

            failures: list[GateExhausted] = []
            async with anyio.create_task_group() as tg:
                for endpoint in self.upstreams:
                    tg.start_soon(self._admit, endpoint, failures)

            if failures and len(failures) == len(self.upstreams):
                raise failures[0]

            if self.process is not None:
                code = await self.process.wait()
                logger.error("backend exited with code %d", code)
                for endpoint in self.upstreams:
                    self.pool.deregister(endpoint)
        finally:
            if self.process is not None:
                with anyio.CancelScope(shield=True):
                    await self.process.terminate()

    async def _admit(self, endpoint: ServiceEndpoint, failures: list[GateExhausted]) -> None:
        """Gate on one upstream's health endpoint, then register it."""
        if self.upstream_prober is not None:
            try:
                await self._gate(endpoint).run(
                    self.upstream_prober, endpoint, interval=self.probe.interval
                )
            except GateExhausted as exc:
                failures.append(exc)
                return
        self.pool.register(endpoint)

    def _gate(self, endpoint: ServiceEndpoint) -> StartupGate:
        gate = StartupGate(endpoint.name, max_retries=self.probe.retries)
        self.gates[endpoint.name] = gate
        return gate
