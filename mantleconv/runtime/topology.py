"""Grid-partition topology and the halo-exchange synchronisation points.

Every partition runs the same sequence of driver stages in lock-step.  A
:class:`GridTopology` owns the transport that moves ghost values between
neighbouring partitions; :func:`halo_exchange` is a blocking barrier that
returns only once the transport has finished.  Any transport failure is fatal
and surfaces as :class:`~mantleconv.errors.CommunicationFault`.

:class:`LocalTransport` serves a single partition.  :class:`MPITransport`
exchanges ghost rows of a slab decomposition over an mpi4py communicator
(optional ``mpi`` extra); other decompositions plug in their own
:class:`HaloTransport`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence, Tuple

import numpy as np

from ..errors import CommunicationFault, ConfigurationError

__all__ = [
    "HaloTransport",
    "LocalTransport",
    "MPITransport",
    "init_mpi_topology",
    "GridTopology",
    "init_topology",
    "finalize_topology",
    "halo_exchange",
    "allreduce_max",
]

logger = logging.getLogger(__name__)


class HaloTransport(Protocol):
    """Moves ghost values of ``fields`` between neighbouring partitions."""

    def exchange(self, fields: Sequence[np.ndarray]) -> None: ...

    def allreduce_max(self, value: float) -> float: ...


class LocalTransport:
    """Transport for a single, non-periodic partition.

    With no neighbours the ghost values are owned by the boundary conditions,
    so an exchange only checks that every field is a writable array.
    """

    def exchange(self, fields: Sequence[np.ndarray]) -> None:
        for arr in fields:
            if not isinstance(arr, np.ndarray):
                raise TypeError(f"halo exchange expects numpy arrays, got {type(arr).__name__}")
            if not arr.flags.writeable:
                raise ValueError("halo exchange target is read-only")

    def allreduce_max(self, value: float) -> float:
        return float(value)


def _import_mpi():
    try:
        from mpi4py import MPI
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise ConfigurationError("mpi4py is required for MPITransport (install the 'mpi' extra)") from exc
    return MPI


class MPITransport:
    """Transport for a slab decomposition along the first grid axis.

    Every partition stores ``width`` ghost rows at both ends of axis 0.  An
    exchange sends the first owned rows to the left neighbour and the last
    owned rows to the right one, and fills the ghost rows with what the
    neighbours sent.  Ghost rows on the outer boundary of the global domain
    are left to the boundary conditions.
    """

    def __init__(self, comm=None, *, width: int = 1) -> None:
        if width < 1:
            raise ConfigurationError("halo width must be at least 1")
        self.MPI = _import_mpi()
        self.comm = comm if comm is not None else self.MPI.COMM_WORLD
        self.rank = int(self.comm.Get_rank())
        self.size = int(self.comm.Get_size())
        self.width = int(width)
        self.left = self.rank - 1 if self.rank > 0 else self.MPI.PROC_NULL
        self.right = self.rank + 1 if self.rank < self.size - 1 else self.MPI.PROC_NULL

    def _shift(self, send: np.ndarray, dest: int, ghost: np.ndarray, source: int, tag: int) -> None:
        recv = np.empty_like(ghost)
        self.comm.Sendrecv(
            np.ascontiguousarray(send), dest=dest, sendtag=tag, recvbuf=recv, source=source, recvtag=tag
        )
        if source != self.MPI.PROC_NULL:
            ghost[...] = recv

    def exchange(self, fields: Sequence[np.ndarray]) -> None:
        w = self.width
        for k, arr in enumerate(fields):
            if arr.shape[0] < 3 * w:
                raise ValueError(f"field with {arr.shape[0]} rows is too small for halo width {w}")
            self._shift(arr[w : 2 * w], self.left, arr[-w:], self.right, tag=2 * k)
            self._shift(arr[-2 * w : -w], self.right, arr[:w], self.left, tag=2 * k + 1)

    def allreduce_max(self, value: float) -> float:
        return float(self.comm.allreduce(float(value), op=self.MPI.MAX))


@dataclass
class GridTopology:
    """Partition layout of the global grid and its transport handle."""

    nxyz: Tuple[int, int]
    partition_count: int
    rank: int
    transport: HaloTransport
    active: bool = True
    exchanges: int = 0


def init_topology(
    nx: int,
    ny: int,
    partition_count: int = 1,
    *,
    rank: int = 0,
    transport: HaloTransport | None = None,
) -> GridTopology:
    """Create the process-group topology; call once at process start."""

    if partition_count < 1:
        raise ConfigurationError("partition_count must be at least 1")
    if transport is None:
        if partition_count != 1:
            raise ConfigurationError(
                "LocalTransport serves a single partition; supply a transport for decomposed runs"
            )
        transport = LocalTransport()
    logger.debug("init_topology: nx=%d ny=%d partitions=%d rank=%d", nx, ny, partition_count, rank)
    return GridTopology(nxyz=(int(nx), int(ny)), partition_count=int(partition_count), rank=int(rank), transport=transport)


def init_mpi_topology(nx: int, ny: int, comm=None, *, width: int = 1) -> GridTopology:
    """Topology of this rank in a slab decomposition over ``comm``.

    ``nx`` and ``ny`` are the cell counts of the local slab.
    """

    transport = MPITransport(comm, width=width)
    return init_topology(nx, ny, transport.size, rank=transport.rank, transport=transport)


def finalize_topology(topology: GridTopology) -> None:
    """Release the topology; call once at process end."""

    topology.active = False
    logger.debug("finalize_topology: %d halo exchanges completed", topology.exchanges)


def halo_exchange(topology: GridTopology, *fields: np.ndarray) -> None:
    """Synchronise the ghost values of ``fields`` across all partitions.

    Raises
    ------
    CommunicationFault
        If the topology was finalised or the transport failed.  No retry is
        attempted.
    """

    if not topology.active:
        raise CommunicationFault("halo exchange on a finalised topology")
    try:
        topology.transport.exchange(fields)
    except Exception as exc:
        raise CommunicationFault(f"halo exchange failed on rank {topology.rank}: {exc}") from exc
    topology.exchanges += 1


def allreduce_max(topology: GridTopology, value: float) -> float:
    """Return the maximum of ``value`` over all partitions."""

    if not topology.active:
        raise CommunicationFault("reduction on a finalised topology")
    try:
        return float(topology.transport.allreduce_max(float(value)))
    except Exception as exc:
        raise CommunicationFault(f"max reduction failed on rank {topology.rank}: {exc}") from exc
