import numpy as np
import pytest

from smoke3d.common.sim_hooks import SimHooks
from smoke3d.fluid.errors import SolverDivergenceError
from smoke3d.fluid.make_smoke import make_smoke
from smoke3d.fluid.params import SmokeParams
from smoke3d.fluid.simulation import Phase, SmokeSimulation, phase_for


@pytest.mark.parametrize(
    "frame, limit, phase",
    [
        (0, 100, Phase.INJECTION),
        (49, 100, Phase.INJECTION),
        (50, 100, Phase.DECAY),
        (100, 100, Phase.DECAY),
        (101, 100, Phase.DONE),
        (0, 1, Phase.DECAY),
        (0, 0, Phase.DECAY),
        (1, 0, Phase.DONE),
    ],
)
def test_phase_table(frame, limit, phase):
    assert phase_for(frame, limit) is phase


def _small(**kw):
    base = dict(n=8, sphere_r=0.2, limit=3, pressure_tol=1e-8, pressure_maxiter=2000)
    base.update(kw)
    return SmokeParams(**base)


def test_run_processes_frames_zero_through_limit():
    with SmokeSimulation(_small()) as sim:
        reports = sim.run()
        assert [r.frame for r in reports] == [0, 1, 2, 3]
        assert [r.phase for r in reports] == [Phase.INJECTION, Phase.DECAY, Phase.DECAY, Phase.DECAY]
        assert sim.done
        assert sim.step() is None
        assert sim.frame == 4


def test_run_respects_max_frames():
    with SmokeSimulation(_small(limit=10)) as sim:
        assert len(sim.run(max_frames=2)) == 2
        assert sim.frame == 2
        assert sim.phase is Phase.INJECTION


def test_visualizer_receives_read_only_final_density():
    seen = []

    def visualizer(density, frame):
        assert not density.flags.writeable
        with pytest.raises(ValueError):
            density[0, 0, 0] = 1.0
        seen.append((frame, density.copy()))

    with SmokeSimulation(_small(limit=2), visualizer=visualizer) as sim:
        sim.step()
        assert [f for f, _ in seen] == [0]
        assert np.array_equal(seen[0][1], sim.state.c.grid)
        sim.run()
    assert [f for f, _ in seen] == [0, 1, 2]


def test_invariants_hold_after_each_frame():
    params = SmokeParams(n=16, sphere_r=0.2, limit=6, pressure_tol=1e-6)
    with SmokeSimulation(params) as sim:
        for report in iter(sim.step, None):
            st = sim.state
            assert report.residual < params.pressure_tol
            assert report.max_divergence < 10 * params.pressure_tol
            assert np.all(st.c.grid[st.solid] == 0.0)
            for comp, mask in zip(st.u, st.face_solids()):
                assert np.all(comp.grid[mask] == 0.0)
            assert st.c.grid.min() >= 0.0
            assert st.c.grid.max() <= 1.0 + 1e-12
            assert np.all(st.p.grid[st.solid] == 0.0)


def test_smoke_rises_during_injection():
    with SmokeSimulation(_small(limit=8)) as sim:
        sim.run(max_frames=3)
        v = sim.state.u[1].grid
        assert v.max() > 0.0
        assert sim.density().sum() > 0.0


def test_reset_restores_initial_conditions():
    with SmokeSimulation(_small()) as sim:
        solid = sim.state.solid.copy()
        sim.run()
        sim.reset()
        st = sim.state
        assert sim.frame == 0
        assert sim.phase is Phase.INJECTION
        assert np.all(st.c.data == 0.0)
        for comp in st.u:
            assert np.all(comp.data == 0.0)
        assert np.array_equal(st.solid, solid)


def test_threaded_run_matches_inline():
    with SmokeSimulation(_small(workers=1)) as a, SmokeSimulation(_small(workers=3)) as b:
        a.run()
        b.run()
        np.testing.assert_allclose(a.state.c.grid, b.state.c.grid, rtol=0.0, atol=1e-10)
        for ca, cb in zip(a.state.u, b.state.u):
            np.testing.assert_allclose(ca.grid, cb.grid, rtol=0.0, atol=1e-10)


def test_non_finite_velocity_aborts_the_frame():
    with SmokeSimulation(_small()) as sim:
        sim.state.u[0].grid[3, 3, 3] = np.nan
        with pytest.raises(SolverDivergenceError):
            sim.step()
        assert sim.frame == 0


def test_hooks_see_every_frame():
    calls = []
    hooks = SimHooks(pre=lambda sim, f: calls.append(("pre", f)),
                     post=lambda sim, f: calls.append(("post", f)))
    with SmokeSimulation(_small(limit=1), hooks=hooks) as sim:
        sim.run()
    assert calls == [("pre", 0), ("post", 0), ("pre", 1), ("post", 1)]


def test_make_smoke_wraps_a_simulation(tmp_path):
    demo = make_smoke(n=8, limit=1, render_dir=str(tmp_path), render_size=8)
    try:
        assert demo.params.n == 8
        reports = demo.run()
        assert len(reports) == 2
        assert sorted(p.name for p in tmp_path.iterdir()) == ["render_0.png", "render_1.png"]
        assert demo.density().shape == (8, 8, 8)
    finally:
        demo.close()


@pytest.mark.slow
def test_full_resolution_run():
    with SmokeSimulation(SmokeParams()) as sim:
        reports = sim.run()
    assert len(reports) == 101
    assert all(r.residual < 1e-6 for r in reports)
