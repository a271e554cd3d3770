"""Uniform 2-D staggered grid for the mantle convection model.

Axis 0 is the horizontal ``x`` direction and axis 1 the vertical ``y``
direction.  With the default origin ``(0, -ly)`` the surface sits at ``y = 0``
and depth is ``|y|``.  Cell centres carry pressure, viscosity and the centre
temperature; vertices (nodes) carry the node temperature.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from .errors import InvalidDomainError

__all__ = ["Grid", "build_grid"]


@dataclass(frozen=True)
class Grid:
    """Immutable uniform grid.

    Parameters
    ----------
    origin:
        Coordinates of the lower-left corner (m).
    lengths:
        Physical extents ``(lx, ly)`` (m).
    ni:
        Cell counts ``(nx, ny)``.
    di:
        Uniform spacing ``(dx, dy)`` (m).
    xci:
        Cell-centre coordinates along each axis; lengths ``nx`` and ``ny``.
    xvi:
        Vertex coordinates along each axis; lengths ``nx+1`` and ``ny+1``.
    """

    origin: Tuple[float, float]
    lengths: Tuple[float, float]
    ni: Tuple[int, int]
    di: Tuple[float, float]
    xci: Tuple[np.ndarray, np.ndarray]
    xvi: Tuple[np.ndarray, np.ndarray]

    @property
    def lx(self) -> float:
        return self.lengths[0]

    @property
    def ly(self) -> float:
        return self.lengths[1]

    @property
    def nx(self) -> int:
        return self.ni[0]

    @property
    def ny(self) -> int:
        return self.ni[1]

    @property
    def dx(self) -> float:
        return self.di[0]

    @property
    def dy(self) -> float:
        return self.di[1]

    def center_depth(self) -> np.ndarray:
        """Return the depth ``|y|`` of every cell centre, shape ``(nx, ny)``."""

        return np.broadcast_to(np.abs(self.xci[1])[None, :], self.ni).copy()

    @classmethod
    def from_aspect_ratio(cls, ny: int, ly: float, aspect_ratio: float, nx: int | None = None) -> "Grid":
        """Construct a box of depth ``ly`` whose width is ``aspect_ratio * ly``.

        The origin is placed at ``(0, -ly)`` so that the top boundary is the
        surface.  ``nx`` defaults to ``ny * aspect_ratio`` cells.
        """

        if nx is None:
            nx = int(round(ny * aspect_ratio))
        lx = ly * aspect_ratio
        return build_grid((0.0, -ly), (lx, ly), (nx, ny))


def _validate(extents: Sequence[float], cell_counts: Sequence[int]) -> None:
    if len(extents) != 2 or len(cell_counts) != 2:
        raise InvalidDomainError("extents and cell_counts must both have two entries")
    for axis, length in zip("xy", extents):
        length_val = float(length)
        if not math.isfinite(length_val) or length_val <= 0.0:
            raise InvalidDomainError(f"domain extent along {axis} must be positive and finite, got {length!r}")
    for axis, count in zip("xy", cell_counts):
        if int(count) != count or int(count) <= 0:
            raise InvalidDomainError(f"cell count along {axis} must be a positive integer, got {count!r}")


def build_grid(
    origin: Sequence[float],
    extents: Sequence[float],
    cell_counts: Sequence[int],
) -> Grid:
    """Return the :class:`Grid` spanning ``origin`` to ``origin + extents``.

    Cell centre ``i`` sits at ``origin + (i + 0.5) * spacing`` and vertex ``i``
    at ``origin + i * spacing``.

    Raises
    ------
    InvalidDomainError
        If an extent or a cell count is not positive.
    """

    _validate(extents, cell_counts)
    if len(origin) != 2:
        raise InvalidDomainError("origin must have two coordinates")
    origin_t = (float(origin[0]), float(origin[1]))
    lengths = (float(extents[0]), float(extents[1]))
    ni = (int(cell_counts[0]), int(cell_counts[1]))
    di = (lengths[0] / ni[0], lengths[1] / ni[1])

    xci = tuple(o + (np.arange(n, dtype=float) + 0.5) * d for o, n, d in zip(origin_t, ni, di))
    xvi = tuple(o + np.arange(n + 1, dtype=float) * d for o, n, d in zip(origin_t, ni, di))
    for arr in (*xci, *xvi):
        arr.setflags(write=False)
    return Grid(origin=origin_t, lengths=lengths, ni=ni, di=di, xci=xci, xvi=xvi)
