"""Runtime helpers used by the convection driver."""

from .progress import ProgressReporter
from .history import ColumnarBuffer, RunHistory
from .context import RuntimeContext
from .topology import GridTopology, LocalTransport, MPITransport, halo_exchange, init_topology, finalize_topology
from .helpers import (
    rms,
    relative,
    format_exception_short,
    log_stage,
)

__all__ = [
    "ProgressReporter",
    "ColumnarBuffer",
    "RunHistory",
    "RuntimeContext",
    "GridTopology",
    "LocalTransport",
    "MPITransport",
    "halo_exchange",
    "init_topology",
    "finalize_topology",
    "rms",
    "relative",
    "format_exception_short",
    "log_stage",
]
