"""Runtime context passed explicitly to grid, field and solver setup."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional

import numba

from ..errors import ConfigurationError
from .topology import GridTopology, HaloTransport, finalize_topology, init_topology

__all__ = ["RuntimeContext"]

logger = logging.getLogger(__name__)

Backend = Literal["threads", "serial"]


@dataclass
class RuntimeContext:
    """Backend selection and distributed-topology handle of one run.

    ``backend="threads"`` lets the stencil kernels use ``threads`` numba
    threads (all cores when ``None``); ``"serial"`` pins them to one thread.
    """

    topology: GridTopology
    backend: Backend = "threads"
    threads: Optional[int] = None

    @classmethod
    def create(
        cls,
        nx: int,
        ny: int,
        *,
        backend: Backend = "threads",
        threads: Optional[int] = None,
        partition_count: int = 1,
        transport: HaloTransport | None = None,
    ) -> "RuntimeContext":
        if backend not in ("threads", "serial"):
            raise ConfigurationError(f"unknown backend {backend!r}; expected 'threads' or 'serial'")
        topology = init_topology(nx, ny, partition_count, transport=transport)
        ctx = cls(topology=topology, backend=backend, threads=threads)
        ctx.activate()
        return ctx

    def activate(self) -> None:
        """Apply the backend thread setting to numba."""

        if self.backend == "serial":
            n_threads = 1
        elif self.threads is None:
            n_threads = numba.config.NUMBA_NUM_THREADS
        else:
            if self.threads < 1:
                raise ConfigurationError("runtime.threads must be at least 1")
            n_threads = min(int(self.threads), numba.config.NUMBA_NUM_THREADS)
        numba.set_num_threads(n_threads)
        logger.debug("RuntimeContext: backend=%s numba threads=%d", self.backend, n_threads)

    def close(self) -> None:
        finalize_topology(self.topology)
