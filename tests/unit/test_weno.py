import numpy as np
import pytest

from mantleconv.physics.weno import WENO5, weno_advection


def _velocity(shape, vx=0.0, vy=0.0):
    return np.full(shape, vx), np.full(shape, vy)


def test_uniform_field_is_unchanged():
    shape = (17, 9)
    weno = WENO5(shape)
    u = np.full(shape, 1234.5)
    weno_advection(u, _velocity(shape, vx=1.0, vy=-2.0), weno, (1.0, 1.0), 0.1)
    np.testing.assert_allclose(u, 1234.5, rtol=1e-14)


@pytest.mark.parametrize("vx, vy", [(1.0, 0.0), (-1.0, 0.0), (0.0, 1.0), (0.0, -1.0)])
def test_smooth_profile_moves_with_velocity(vx, vy):
    n = 81
    dx = 1.0
    x = np.arange(n) * dx
    bump = np.exp(-(((x - 40.0) / 5.0) ** 2))
    u = (bump[:, None] * np.ones(n)[None, :]) if vy == 0.0 else (np.ones(n)[:, None] * bump[None, :])
    weno = WENO5(u.shape)
    V = _velocity(u.shape, vx, vy)
    dt = 0.2 * dx
    steps = 25
    for _ in range(steps):
        weno_advection(u, V, weno, (dx, dx), dt)
    profile = u[:, n // 2] if vy == 0.0 else u[n // 2, :]
    centroid = np.sum(x * profile) / np.sum(profile)
    shift = (vx if vy == 0.0 else vy) * dt * steps
    assert centroid == pytest.approx(40.0 + shift, abs=0.1)
    assert profile.max() <= 1.0 + 1e-6
    assert profile.min() >= -1e-6


def test_advection_writes_through_views():
    T = np.zeros((12, 6))
    T[1:-1, :] = np.linspace(0.0, 1.0, 10)[:, None]
    T[0] = -5.0
    T[-1] = 7.0
    nodes = T[1:-1, :]
    weno = WENO5(nodes.shape)
    weno_advection(nodes, _velocity(nodes.shape, vx=0.5), weno, (1.0, 1.0), 0.5)
    assert np.all(T[0] == -5.0)
    assert np.all(T[-1] == 7.0)
    assert not np.allclose(T[1:-1, :], np.linspace(0.0, 1.0, 10)[:, None])


def test_shape_mismatch_rejected():
    weno = WENO5((5, 5))
    with pytest.raises(ValueError):
        weno_advection(np.zeros((4, 5)), _velocity((4, 5)), weno, (1.0, 1.0), 0.1)
    with pytest.raises(ValueError):
        weno_advection(np.zeros((5, 5)), _velocity((4, 4)), weno, (1.0, 1.0), 0.1)


def test_unknown_method_rejected():
    with pytest.raises(ValueError):
        WENO5((5, 5), method="Z")
