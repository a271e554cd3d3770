"""Numba-accelerated stencil kernels for the staggered-grid solvers.

Every kernel is a parallel-for over the 2-D index range of its output: the
outer index is distributed with ``prange`` and the loop body only reads and
writes the entries belonging to its own ``(i, j)``.  A kernel returns once all
threads finished, so callers may read the results immediately.

Array layout (axis 0 is ``x``)
------------------------------
* cell centres ``(nx, ny)``: ``P``, ``∇V``, ``τxx``, ``τyy``, ``η``, ``ρg``
* vertices ``(nx+1, ny+1)``: ``τxy``, ``εxy``, ``ηv``, node temperature
* ``Vx`` ``(nx+1, ny+2)`` and ``Vy`` ``(nx+2, ny+1)``, each with one ghost
  row carrying the tangential boundary condition
* temperature ``T`` ``(nx+3, ny+1)``: node values offset by one ghost row

Notes
-----
* All kernels use ``cache=True`` to persist compiled bytecode across runs.
* ``parallel=True`` threads honour ``numba.set_num_threads``.
"""
from __future__ import annotations

import math

import numpy as np
from numba import njit, prange

__all__ = [
    "circular_perturbation_numba",
    "temperature2center_numba",
    "thermal_flux_numba",
    "thermal_update_numba",
    "divergence_numba",
    "pressure_numba",
    "strain_rate_numba",
    "stress_numba",
    "velocity_numba",
    "velocity_bcs_numba",
    "maxloc_numba",
    "center2vertex_numba",
    "velocity2vertex_numba",
    "second_invariant_numba",
    "weno5_rhs_numba",
]


# ---------------------------------------------------------------------------
# Initial conditions
# ---------------------------------------------------------------------------


@njit(cache=True, parallel=True)
def circular_perturbation_numba(
    T: np.ndarray,
    factor: float,
    xc: float,
    yc: float,
    r2: float,
    x: np.ndarray,
    y: np.ndarray,
    offset: int,
    n_rows: int,
) -> None:
    """Scale ``T[i + offset, j]`` by ``factor`` for nodes inside the circle."""

    ny = T.shape[1]
    for i in prange(n_rows):
        for j in range(ny):
            dx = x[i] - xc
            dy = y[j] - yc
            if dx * dx + dy * dy <= r2:
                T[i + offset, j] *= factor


# ---------------------------------------------------------------------------
# Thermal diffusion
# ---------------------------------------------------------------------------


@njit(cache=True, parallel=True)
def temperature2center_numba(Tc: np.ndarray, T: np.ndarray, offset: int) -> None:
    """Average the four nodes around each cell into ``Tc``."""

    nx, ny = Tc.shape
    for i in prange(nx):
        for j in range(ny):
            ii = i + offset
            Tc[i, j] = 0.25 * (T[ii, j] + T[ii + 1, j] + T[ii, j + 1] + T[ii + 1, j + 1])


@njit(cache=True, parallel=True)
def thermal_flux_numba(
    qTx: np.ndarray,
    qTy: np.ndarray,
    T: np.ndarray,
    kappa: float,
    theta: float,
    _dx: float,
    _dy: float,
) -> None:
    """Relax the diffusive fluxes towards ``-κ∇T``."""

    _one_theta = 1.0 / (1.0 + theta)
    nqx, ny1 = qTx.shape
    for i in prange(nqx):
        for j in range(ny1):
            grad = (T[i + 1, j] - T[i, j]) * _dx
            qTx[i, j] = (qTx[i, j] * theta - kappa * grad) * _one_theta
    nx1, nqy = qTy.shape
    for i in prange(nx1):
        for j in range(nqy):
            grad = (T[i + 1, j + 1] - T[i + 1, j]) * _dy
            qTy[i, j] = (qTy[i, j] * theta - kappa * grad) * _one_theta


@njit(cache=True, parallel=True)
def thermal_update_numba(
    T: np.ndarray,
    T0: np.ndarray,
    R: np.ndarray,
    qTx: np.ndarray,
    qTy: np.ndarray,
    _dt: float,
    beta: float,
    _dx: float,
    _dy: float,
    i0: int,
    i1: int,
    j0: int,
    j1: int,
) -> None:
    """Pseudo-time update of the nodes ``[i0, i1) x [j0, j1)``.

    Fluxes across the top and bottom edges of the domain are zero; fixed
    (Dirichlet) boundary nodes are excluded by the index range.
    """

    nqy = qTy.shape[1]
    _denom = 1.0 / (_dt + beta)
    for i in prange(i0, i1):
        ii = i + 1
        for j in range(j0, j1):
            divx = (qTx[ii, j] - qTx[ii - 1, j]) * _dx
            q_down = qTy[i, j - 1] if j > 0 else 0.0
            q_up = qTy[i, j] if j < nqy else 0.0
            divy = (q_up - q_down) * _dy
            res = -(T[ii, j] - T0[ii, j]) * _dt - (divx + divy)
            R[i, j] = res
            T[ii, j] += res * _denom


# ---------------------------------------------------------------------------
# Stokes
# ---------------------------------------------------------------------------


@njit(cache=True, parallel=True)
def divergence_numba(divV: np.ndarray, Vx: np.ndarray, Vy: np.ndarray, _dx: float, _dy: float) -> None:
    nx, ny = divV.shape
    for i in prange(nx):
        for j in range(ny):
            divV[i, j] = (Vx[i + 1, j + 1] - Vx[i, j + 1]) * _dx + (Vy[i + 1, j + 1] - Vy[i + 1, j]) * _dy


@njit(cache=True, parallel=True)
def pressure_numba(
    P: np.ndarray,
    P0: np.ndarray,
    RP: np.ndarray,
    divV: np.ndarray,
    eta: np.ndarray,
    r_theta: float,
    _Kdt: float,
) -> None:
    """Continuity residual and pressure update; ``_Kdt = 0`` is incompressible."""

    nx, ny = P.shape
    for i in prange(nx):
        for j in range(ny):
            res = -divV[i, j] - (P[i, j] - P0[i, j]) * _Kdt
            RP[i, j] = res
            P[i, j] += res / (1.0 / (r_theta * eta[i, j]) + _Kdt)


@njit(cache=True, parallel=True)
def strain_rate_numba(
    exx: np.ndarray,
    eyy: np.ndarray,
    exy: np.ndarray,
    divV: np.ndarray,
    Vx: np.ndarray,
    Vy: np.ndarray,
    _dx: float,
    _dy: float,
) -> None:
    """Deviatoric strain rates at centres (normal) and vertices (shear)."""

    nx, ny = exx.shape
    third = 1.0 / 3.0
    for i in prange(nx):
        for j in range(ny):
            exx[i, j] = (Vx[i + 1, j + 1] - Vx[i, j + 1]) * _dx - third * divV[i, j]
            eyy[i, j] = (Vy[i + 1, j + 1] - Vy[i + 1, j]) * _dy - third * divV[i, j]
    for i in prange(nx + 1):
        for j in range(ny + 1):
            exy[i, j] = 0.5 * ((Vx[i, j + 1] - Vx[i, j]) * _dy + (Vy[i + 1, j] - Vy[i, j]) * _dx)


@njit(cache=True, parallel=True)
def stress_numba(
    txx: np.ndarray,
    tyy: np.ndarray,
    txy: np.ndarray,
    txx_o: np.ndarray,
    tyy_o: np.ndarray,
    txy_o: np.ndarray,
    exx: np.ndarray,
    eyy: np.ndarray,
    exy: np.ndarray,
    eta: np.ndarray,
    eta_v: np.ndarray,
    _Gdt: float,
    theta: float,
) -> None:
    """Visco-elastic pseudo-transient stress update; ``_Gdt = 0`` is viscous."""

    nx, ny = txx.shape
    for i in prange(nx):
        for j in range(ny):
            e = eta[i, j]
            ve = e * _Gdt
            denom = 1.0 / (theta + ve + 1.0)
            txx[i, j] += (-(txx[i, j] - txx_o[i, j]) * ve - txx[i, j] + 2.0 * e * exx[i, j]) * denom
            tyy[i, j] += (-(tyy[i, j] - tyy_o[i, j]) * ve - tyy[i, j] + 2.0 * e * eyy[i, j]) * denom
    for i in prange(nx + 1):
        for j in range(ny + 1):
            e = eta_v[i, j]
            ve = e * _Gdt
            denom = 1.0 / (theta + ve + 1.0)
            txy[i, j] += (-(txy[i, j] - txy_o[i, j]) * ve - txy[i, j] + 2.0 * e * exy[i, j]) * denom


@njit(cache=True, parallel=True)
def velocity_numba(
    Vx: np.ndarray,
    Vy: np.ndarray,
    Rx: np.ndarray,
    Ry: np.ndarray,
    P: np.ndarray,
    txx: np.ndarray,
    tyy: np.ndarray,
    txy: np.ndarray,
    rho_g: np.ndarray,
    eta_tau: np.ndarray,
    eta_dtau: float,
    _dx: float,
    _dy: float,
) -> None:
    """Momentum residuals at interior velocity nodes and velocity update.

    ``ρg`` is the downward body force per unit volume, hence the minus sign in
    the vertical balance.
    """

    nx, ny = P.shape
    for i in prange(nx):
        for j in range(ny):
            if i < nx - 1:
                rx = ((txx[i + 1, j] - txx[i, j]) - (P[i + 1, j] - P[i, j])) * _dx + (
                    txy[i + 1, j + 1] - txy[i + 1, j]
                ) * _dy
                Rx[i, j] = rx
                Vx[i + 1, j + 1] += rx * eta_dtau / (0.5 * (eta_tau[i, j] + eta_tau[i + 1, j]))
            if j < ny - 1:
                ry = (
                    ((tyy[i, j + 1] - tyy[i, j]) - (P[i, j + 1] - P[i, j])) * _dy
                    + (txy[i + 1, j + 1] - txy[i, j + 1]) * _dx
                    - 0.5 * (rho_g[i, j] + rho_g[i, j + 1])
                )
                Ry[i, j] = ry
                Vy[i + 1, j + 1] += ry * eta_dtau / (0.5 * (eta_tau[i, j] + eta_tau[i, j + 1]))


@njit(cache=True)
def velocity_bcs_numba(
    Vx: np.ndarray,
    Vy: np.ndarray,
    s_left: float,
    s_right: float,
    s_bot: float,
    s_top: float,
) -> None:
    """Zero normal velocity on every side; tangential ghost ``s * interior``.

    ``s = 1`` is free slip (zero shear stress), ``s = -1`` is no slip.
    """

    nvx, nvx_y = Vx.shape
    for j in range(nvx_y):
        Vx[0, j] = 0.0
        Vx[nvx - 1, j] = 0.0
    for i in range(nvx):
        Vx[i, 0] = s_bot * Vx[i, 1]
        Vx[i, nvx_y - 1] = s_top * Vx[i, nvx_y - 2]
    nvy_x, nvy = Vy.shape
    for i in range(nvy_x):
        Vy[i, 0] = 0.0
        Vy[i, nvy - 1] = 0.0
    for j in range(nvy):
        Vy[0, j] = s_left * Vy[1, j]
        Vy[nvy_x - 1, j] = s_right * Vy[nvy_x - 2, j]


@njit(cache=True, parallel=True)
def maxloc_numba(out: np.ndarray, A: np.ndarray) -> None:
    """Maximum of ``A`` over each 3x3 neighbourhood (clamped at the edges)."""

    nx, ny = A.shape
    for i in prange(nx):
        for j in range(ny):
            m = A[i, j]
            for ii in range(max(i - 1, 0), min(i + 2, nx)):
                for jj in range(max(j - 1, 0), min(j + 2, ny)):
                    if A[ii, jj] > m:
                        m = A[ii, jj]
            out[i, j] = m


@njit(cache=True, parallel=True)
def center2vertex_numba(out: np.ndarray, A: np.ndarray) -> None:
    """Arithmetic mean of the (up to four) cells sharing each vertex."""

    nx, ny = A.shape
    for i in prange(nx + 1):
        for j in range(ny + 1):
            total = 0.0
            count = 0
            for ii in range(max(i - 1, 0), min(i + 1, nx)):
                for jj in range(max(j - 1, 0), min(j + 1, ny)):
                    total += A[ii, jj]
                    count += 1
            out[i, j] = total / count


@njit(cache=True, parallel=True)
def velocity2vertex_numba(Vx_v: np.ndarray, Vy_v: np.ndarray, Vx: np.ndarray, Vy: np.ndarray) -> None:
    nx1, ny1 = Vx_v.shape
    for i in prange(nx1):
        for j in range(ny1):
            Vx_v[i, j] = 0.5 * (Vx[i, j] + Vx[i, j + 1])
            Vy_v[i, j] = 0.5 * (Vy[i, j] + Vy[i + 1, j])


@njit(cache=True, parallel=True)
def second_invariant_numba(eII: np.ndarray, exx: np.ndarray, eyy: np.ndarray, exy: np.ndarray) -> None:
    """Second invariant of the deviatoric strain rate at cell centres."""

    nx, ny = eII.shape
    for i in prange(nx):
        for j in range(ny):
            exy_c = 0.25 * (exy[i, j] + exy[i + 1, j] + exy[i, j + 1] + exy[i + 1, j + 1])
            eII[i, j] = math.sqrt(0.5 * (exx[i, j] ** 2 + eyy[i, j] ** 2) + exy_c * exy_c)


# ---------------------------------------------------------------------------
# WENO5 advection
# ---------------------------------------------------------------------------


@njit(cache=True, inline="always")
def _weno5(v1: float, v2: float, v3: float, v4: float, v5: float) -> float:
    """Jiang-Peng fifth-order reconstruction of a one-sided derivative."""

    s1 = 13.0 / 12.0 * (v1 - 2.0 * v2 + v3) ** 2 + 0.25 * (v1 - 4.0 * v2 + 3.0 * v3) ** 2
    s2 = 13.0 / 12.0 * (v2 - 2.0 * v3 + v4) ** 2 + 0.25 * (v2 - v4) ** 2
    s3 = 13.0 / 12.0 * (v3 - 2.0 * v4 + v5) ** 2 + 0.25 * (3.0 * v3 - 4.0 * v4 + v5) ** 2
    eps = 1.0e-6 * max(v1 * v1, v2 * v2, v3 * v3, v4 * v4, v5 * v5) + 1.0e-99
    a1 = 0.1 / (eps + s1) ** 2
    a2 = 0.6 / (eps + s2) ** 2
    a3 = 0.3 / (eps + s3) ** 2
    p1 = v1 / 3.0 - 7.0 * v2 / 6.0 + 11.0 * v3 / 6.0
    p2 = -v2 / 6.0 + 5.0 * v3 / 6.0 + v4 / 3.0
    p3 = v3 / 3.0 + 5.0 * v4 / 6.0 - v5 / 6.0
    return (a1 * p1 + a2 * p2 + a3 * p3) / (a1 + a2 + a3)


@njit(cache=True, inline="always")
def _clamp(k: int, n: int) -> int:
    if k < 0:
        return 0
    if k > n - 1:
        return n - 1
    return k


@njit(cache=True, parallel=True)
def weno5_rhs_numba(
    out: np.ndarray,
    u: np.ndarray,
    vx: np.ndarray,
    vy: np.ndarray,
    _dx: float,
    _dy: float,
) -> None:
    """``out = -(vx ∂u/∂x + vy ∂u/∂y)`` with upwinded WENO5 derivatives.

    Indices beyond the array are clamped, i.e. zero-gradient extrapolation.
    """

    nx, ny = u.shape
    for i in prange(nx):
        for j in range(ny):
            ux = 0.0
            uy = 0.0
            vxij = vx[i, j]
            vyij = vy[i, j]
            if vxij > 0.0:
                um3 = u[_clamp(i - 3, nx), j]
                um2 = u[_clamp(i - 2, nx), j]
                um1 = u[_clamp(i - 1, nx), j]
                u0 = u[i, j]
                up1 = u[_clamp(i + 1, nx), j]
                up2 = u[_clamp(i + 2, nx), j]
                ux = _weno5(
                    (um2 - um3) * _dx, (um1 - um2) * _dx, (u0 - um1) * _dx, (up1 - u0) * _dx, (up2 - up1) * _dx
                )
            elif vxij < 0.0:
                um2 = u[_clamp(i - 2, nx), j]
                um1 = u[_clamp(i - 1, nx), j]
                u0 = u[i, j]
                up1 = u[_clamp(i + 1, nx), j]
                up2 = u[_clamp(i + 2, nx), j]
                up3 = u[_clamp(i + 3, nx), j]
                ux = _weno5(
                    (up3 - up2) * _dx, (up2 - up1) * _dx, (up1 - u0) * _dx, (u0 - um1) * _dx, (um1 - um2) * _dx
                )
            if vyij > 0.0:
                um3 = u[i, _clamp(j - 3, ny)]
                um2 = u[i, _clamp(j - 2, ny)]
                um1 = u[i, _clamp(j - 1, ny)]
                u0 = u[i, j]
                up1 = u[i, _clamp(j + 1, ny)]
                up2 = u[i, _clamp(j + 2, ny)]
                uy = _weno5(
                    (um2 - um3) * _dy, (um1 - um2) * _dy, (u0 - um1) * _dy, (up1 - u0) * _dy, (up2 - up1) * _dy
                )
            elif vyij < 0.0:
                um2 = u[i, _clamp(j - 2, ny)]
                um1 = u[i, _clamp(j - 1, ny)]
                u0 = u[i, j]
                up1 = u[i, _clamp(j + 1, ny)]
                up2 = u[i, _clamp(j + 2, ny)]
                up3 = u[i, _clamp(j + 3, ny)]
                uy = _weno5(
                    (up3 - up2) * _dy, (up2 - up1) * _dy, (up1 - u0) * _dy, (u0 - um1) * _dy, (um1 - um2) * _dy
                )
            out[i, j] = -(vxij * ux + vyij * uy)
