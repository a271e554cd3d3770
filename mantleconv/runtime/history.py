"""Per-iteration run history of the convection driver."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pyarrow as pa

ITERATION_COLUMNS = (
    "it",
    "t",
    "dt",
    "stokes_err",
    "stokes_iterations",
    "stokes_converged",
    "thermal_err",
    "thermal_iterations",
    "thermal_converged",
    "T_mean",
    "V_rms",
)


class ColumnarBuffer:
    """Append-only table of scalar records.

    Columns are created on first sight; cells a record does not provide read
    back as ``None``.  Column order is the declared order followed by the
    order of first appearance.
    """

    def __init__(self, columns: Iterable[str] | None = None) -> None:
        self._names: List[str] = list(dict.fromkeys(columns or ()))
        self._rows: List[Dict[str, Any]] = []

    def __len__(self) -> int:
        return len(self._rows)

    @property
    def row_count(self) -> int:
        return len(self._rows)

    def columns(self) -> List[str]:
        return list(self._names)

    def append_row(self, record: Mapping[str, Any]) -> None:
        self._names.extend(name for name in record if name not in self._names)
        self._rows.append(dict(record))

    def column(self, name: str) -> List[Any]:
        if name not in self._names:
            raise KeyError(name)
        return [row.get(name) for row in self._rows]

    def last(self) -> Optional[Dict[str, Any]]:
        return self._complete(self._rows[-1]) if self._rows else None

    def clear(self) -> None:
        self._rows.clear()

    def to_records(self) -> List[Dict[str, Any]]:
        return [self._complete(row) for row in self._rows]

    def to_table(self, ensure_columns: Iterable[str] | None = None) -> pa.Table:
        """Return the buffer as a :class:`pyarrow.Table`.

        ``ensure_columns`` come first and are materialised as all-null
        columns when no record provided them.
        """

        names = list(dict.fromkeys([*(ensure_columns or ()), *self._names]))
        return pa.Table.from_pydict({name: [row.get(name) for row in self._rows] for name in names})

    def _complete(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        return {name: row.get(name) for name in self._names}


@dataclass
class RunHistory:
    """Iteration table, visited driver stages and wall time of one run."""

    iterations: ColumnarBuffer = field(default_factory=lambda: ColumnarBuffer(ITERATION_COLUMNS))
    stages: List[str] = field(default_factory=list)
    total_time_elapsed: float = 0.0

    def to_table(self) -> pa.Table:
        return self.iterations.to_table(ensure_columns=ITERATION_COLUMNS)


__all__ = ["ColumnarBuffer", "RunHistory", "ITERATION_COLUMNS"]
