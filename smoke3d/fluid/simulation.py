# simulation.py
# -*- coding: utf-8 -*-
"""
Frame orchestration for the smoke solver.

One frame:
    enforce -> divergence -> pressure solve -> subtract gradient
            -> advect -> hand density to the visualizer -> frame += 1

The run is driven by the frame counter alone: smoke is injected while
``frame < limit // 2``, then decays, and nothing is processed once
``frame > limit``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import time
from typing import Callable, List, Optional

import numpy as np

from ..common.sim_hooks import SimHooks
from ..common.sweeps import SweepPool
from .advection import Advector
from .boundary import BoundaryEnforcer
from .grid import SmokeState
from .params import SmokeParams
from .projection import ProjectionSolver, compute_divergence

logger = logging.getLogger(__name__)

DensityConsumer = Callable[[np.ndarray, int], None]


class Phase(Enum):
    INJECTION = "injection"
    DECAY = "decay"
    DONE = "done"


def phase_for(frame: int, limit: int) -> Phase:
    if frame > limit:
        return Phase.DONE
    if frame < limit // 2:
        return Phase.INJECTION
    return Phase.DECAY


@dataclass
class StepReport:
    frame: int
    phase: Phase
    residual: float
    iterations: int
    max_divergence: float
    elapsed: float


class SmokeSimulation:
    """Owns the :class:`SmokeState` and the per-frame pipeline."""

    def __init__(
        self,
        params: SmokeParams,
        visualizer: Optional[DensityConsumer] = None,
        hooks: Optional[SimHooks] = None,
    ):
        self.params = params.validate()
        self.visualizer = visualizer
        self.hooks = hooks or SimHooks()
        self.pool = SweepPool(params.workers)
        self.state = SmokeState.create(params)
        self.boundary = BoundaryEnforcer(params, self.pool)
        self.projection = ProjectionSolver(params, self.pool)
        self.advector = Advector(params, self.pool)

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    @property
    def frame(self) -> int:
        return self.state.frame

    @property
    def phase(self) -> Phase:
        return phase_for(self.state.frame, self.params.limit)

    @property
    def done(self) -> bool:
        return self.phase is Phase.DONE

    def density(self) -> np.ndarray:
        """Read-only view of the current density field."""
        return self.state.density_view()

    def step(self) -> Optional[StepReport]:
        """Advance one frame; returns ``None`` once the run is finished."""
        if self.done:
            logger.debug("frame limit %d reached; step ignored", self.params.limit)
            return None
        st = self.state
        frame = st.frame
        phase = self.phase
        t0 = time.perf_counter()
        self.hooks.run_pre(self, frame)

        vel = st.velocity()
        self.boundary.enforce(st, frame)
        div = self.projection.compute_divergence(vel, st.h, out=st.div.grid)
        _, res = self.projection.solve(st.p.grid, div, st.solid, st.n)
        self.projection.subtract_gradient(vel, st.p.grid, st.h, st.solid)
        max_div = self._max_divergence()
        self.advector.advect(vel, st.c.grid, st.n, self.params.dt, st.solid)

        if self.visualizer is not None:
            self.visualizer(st.density_view(), frame)
        st.frame += 1
        self.hooks.run_post(self, frame)

        report = StepReport(
            frame=frame,
            phase=phase,
            residual=res,
            iterations=self.projection.last_iterations,
            max_divergence=max_div,
            elapsed=time.perf_counter() - t0,
        )
        logger.debug(
            "frame %d (%s): residual=%.3e iters=%d max|div|=%.3e %.3fs",
            frame, phase.value, res, report.iterations, max_div, report.elapsed,
        )
        return report

    def run(self, max_frames: Optional[int] = None) -> List[StepReport]:
        """Step until the frame limit (or ``max_frames`` more frames)."""
        reports: List[StepReport] = []
        while not self.done:
            if max_frames is not None and len(reports) >= max_frames:
                break
            report = self.step()
            if report is None:
                break
            reports.append(report)
        return reports

    def reset(self) -> None:
        self.state.reset()

    def close(self) -> None:
        self.pool.close()

    def __enter__(self) -> "SmokeSimulation":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ---------------------------------------------------------------------
    # Diagnostics
    # ---------------------------------------------------------------------
    def _max_divergence(self) -> float:
        st = self.state
        div = compute_divergence(st.velocity(), st.h, pool=self.pool)
        div[st.solid] = 0.0
        return float(np.max(np.abs(div)))


__all__ = ["Phase", "phase_for", "StepReport", "SmokeSimulation", "DensityConsumer"]
