from __future__ import annotations

from types import SimpleNamespace
from typing import Optional

from ..common.sim_hooks import SimHooks
from .params import SmokeParams
from .simulation import DensityConsumer, SmokeSimulation


def make_smoke(
    *,
    n: int = 32,
    sphere_r: float = 0.2,
    dt: float = 0.1,
    limit: int = 100,
    workers: int = 1,
    pressure_method: str = "cg",
    pressure_tol: float = 1e-6,
    pressure_maxiter: int = 1000,
    render_dir: Optional[str] = None,
    render_size: int = 128,
    visualizer: Optional[DensityConsumer] = None,
    hooks: Optional[SimHooks] = None,
) -> SimpleNamespace:
    """Construct a SmokeSimulation (optionally with a ray-march visualizer) wrapped for demos."""

    params = SmokeParams(
        n=n,
        sphere_r=sphere_r,
        dt=dt,
        limit=limit,
        workers=workers,
        pressure_method=pressure_method,
        pressure_tol=pressure_tol,
        pressure_maxiter=pressure_maxiter,
    )
    if visualizer is None and render_dir:
        from ..rendering.raymarch import RaymarchVisualizer

        visualizer = RaymarchVisualizer(render_dir, sphere_r=sphere_r, size=render_size)
    engine = SmokeSimulation(params, visualizer=visualizer, hooks=hooks)

    return SimpleNamespace(
        engine=engine,
        params=params,
        visualizer=visualizer,
        step=engine.step,
        run=engine.run,
        reset=engine.reset,
        density=engine.density,
        close=engine.close,
    )


__all__ = ["make_smoke"]
