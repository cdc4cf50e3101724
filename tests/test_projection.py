import numpy as np
import pytest

from smoke3d.common.sweeps import SweepPool
from smoke3d.fluid.boundary import BoundaryEnforcer
from smoke3d.fluid.errors import SolverDivergenceError
from smoke3d.fluid.grid import SmokeState
from smoke3d.fluid.params import SmokeParams
from smoke3d.fluid.projection import ProjectionSolver, compute_divergence


def _random_state(params, rng):
    state = SmokeState.create(params)
    for comp in state.u:
        comp.grid[...] = rng.standard_normal(comp.shape)
    enforcer = BoundaryEnforcer(params)
    enforcer.zero_walls(state)
    enforcer.zero_obstacles(state)
    return state


def _project(params, state):
    solver = ProjectionSolver(params)
    vel = state.velocity()
    div = solver.compute_divergence(vel, state.h)
    p, res = solver.solve(state.p.grid, div, state.solid, state.n)
    solver.subtract_gradient(vel, p, state.h, state.solid)
    after = compute_divergence(vel, state.h)
    after[state.solid] = 0.0
    return solver, p, res, after


def test_divergence_of_uniform_ramp():
    n = 4
    u = np.tile(np.arange(n + 1, dtype=float)[:, None, None], (1, n, n))
    v = np.zeros((n, n + 1, n))
    w = np.zeros((n, n, n + 1))
    div = compute_divergence((u, v, w), h=0.25)
    assert np.allclose(div, 4.0)


def test_threaded_divergence_and_gradient_match_inline(rng, workers):
    params = SmokeParams(n=7, sphere_r=0.25, pressure_tol=1e-8, pressure_maxiter=2000)
    ref = _random_state(params, rng)
    state = SmokeState.create(params)
    for a, b in zip(ref.u, state.u):
        b.grid[...] = a.grid

    _, p_ref, _, div_ref = _project(params, ref)
    with SweepPool(workers) as pool:
        solver = ProjectionSolver(params, pool)
        vel = state.velocity()
        div = solver.compute_divergence(vel, state.h)
        p, _ = solver.solve(state.p.grid, div, state.solid, state.n)
        solver.subtract_gradient(vel, p, state.h, state.solid)
        after = compute_divergence(vel, state.h, pool=pool)
    after[state.solid] = 0.0

    np.testing.assert_allclose(p, p_ref, rtol=0.0, atol=1e-12)
    np.testing.assert_allclose(after, div_ref, rtol=0.0, atol=1e-12)
    for a, b in zip(ref.u, state.u):
        np.testing.assert_allclose(b.grid, a.grid, rtol=0.0, atol=1e-12)


@pytest.mark.parametrize("sphere_r", [0.0, 0.25])
def test_projection_is_divergence_free(rng, sphere_r):
    params = SmokeParams(n=8, sphere_r=sphere_r, pressure_tol=1e-8, pressure_maxiter=2000)
    state = _random_state(params, rng)
    _, _, res, after = _project(params, state)

    assert res < params.pressure_tol
    assert np.max(np.abs(after)) < params.pressure_tol


def test_projection_keeps_wall_and_obstacle_faces(rng):
    params = SmokeParams(n=8, sphere_r=0.25, pressure_tol=1e-8, pressure_maxiter=2000)
    state = _random_state(params, rng)
    _project(params, state)
    for comp, mask in zip(state.u, state.face_solids()):
        assert np.all(comp.grid[mask] == 0.0)


def test_zero_field_gives_constant_pressure_and_no_change():
    params = SmokeParams(n=8, sphere_r=0.0)
    state = SmokeState.create(params)
    state.p.grid[...] = 3.0
    before = [comp.grid.copy() for comp in state.u]

    solver, p, res, _ = _project(params, state)

    assert np.ptp(p) == 0.0
    assert res == 0.0
    assert solver.last_iterations == 0
    for comp, ref in zip(state.u, before):
        assert np.array_equal(comp.grid, ref)


def test_pressure_is_zero_inside_obstacle(rng):
    params = SmokeParams(n=8, sphere_r=0.25, pressure_tol=1e-8, pressure_maxiter=2000)
    state = _random_state(params, rng)
    _, p, _, _ = _project(params, state)
    assert np.all(p[state.solid] == 0.0)
    assert np.all(np.isfinite(p))


def test_redblack_matches_cg_up_to_a_constant(rng):
    kw = dict(n=6, sphere_r=0.0, pressure_tol=1e-9, pressure_maxiter=5000)
    cg = SmokeParams(pressure_method="cg", **kw)
    rb = SmokeParams(pressure_method="redblack", sor_omega=1.5, **kw)
    state_cg = _random_state(cg, rng)
    state_rb = SmokeState.create(rb)
    for a, b in zip(state_cg.u, state_rb.u):
        b.grid[...] = a.grid

    _, p_cg, _, _ = _project(cg, state_cg)
    _, p_rb, res_rb, after = _project(rb, state_rb)

    assert res_rb < rb.pressure_tol
    assert np.max(np.abs(after)) < rb.pressure_tol
    assert np.allclose(p_cg - p_cg.mean(), p_rb - p_rb.mean(), atol=1e-8)


def test_non_finite_divergence_fails_fast():
    params = SmokeParams(n=4, sphere_r=0.0)
    solver = ProjectionSolver(params)
    div = np.zeros((4, 4, 4))
    div[1, 2, 3] = np.nan
    p = np.zeros((4, 4, 4))
    with pytest.raises(SolverDivergenceError):
        solver.solve(p, div, np.zeros((4, 4, 4), dtype=bool), 4)


def test_non_finite_velocity_fails_before_solve():
    params = SmokeParams(n=4, sphere_r=0.0)
    state = SmokeState.create(params)
    state.u[0].grid[2, 1, 1] = np.inf
    solver = ProjectionSolver(params)
    with pytest.raises(SolverDivergenceError) as exc:
        solver.compute_divergence(state.velocity(), state.h)
    assert exc.value.stage == "divergence"


def test_iteration_cap_is_respected(rng):
    params = SmokeParams(n=8, sphere_r=0.0, pressure_tol=1e-14, pressure_maxiter=3)
    state = _random_state(params, rng)
    solver, _, res, _ = _project(params, state)
    assert solver.last_iterations == 3
    assert res > params.pressure_tol


def test_gradient_without_mask_uses_last_solve_obstacle(rng):
    params = SmokeParams(n=8, sphere_r=0.25, pressure_tol=1e-8, pressure_maxiter=2000)
    state = _random_state(params, rng)
    solver = ProjectionSolver(params)
    vel = state.velocity()
    div = solver.compute_divergence(vel, state.h)
    p, _ = solver.solve(state.p.grid, div, state.solid, state.n)

    solver.subtract_gradient(vel, p, state.h)

    for comp, mask in zip(state.u, state.face_solids()):
        assert np.all(comp.grid[mask] == 0.0)
    after = compute_divergence(vel, state.h)
    after[state.solid] = 0.0
    assert np.max(np.abs(after)) < params.pressure_tol


@pytest.mark.parametrize("n", [12, 16])
def test_reported_residual_is_below_tolerance(rng, n):
    params = SmokeParams(n=n, sphere_r=0.2, pressure_tol=1e-6)
    state = _random_state(params, rng)
    solver, _, res, after = _project(params, state)
    assert res < params.pressure_tol
    assert solver.last_iterations < params.pressure_maxiter
    assert np.max(np.abs(after)) < params.pressure_tol
