# -*- coding: utf-8 -*-
"""Wall/obstacle no-flow conditions, the smoke nozzle and buoyancy."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from ..common.sweeps import SweepPool
from .grid import FACE_KINDS, FieldKind, SmokeState, domain_slab
from .params import SmokeParams

logger = logging.getLogger(__name__)


def nozzle_columns(n: int, radius: int) -> Tuple[np.ndarray, np.ndarray]:
    """Horizontal ``(i, k)`` cells of the nozzle disc centred on the domain.

    A cell at offset ``(di, dk)`` from ``(n//2, n//2)`` belongs to the disc
    when ``hypot(di, dk) < radius``; a zero radius gives an empty nozzle.
    """
    off = np.arange(-radius, radius + 1)
    DI, DK = np.meshgrid(off, off, indexing="ij")
    inside = np.hypot(DI, DK) < radius
    return n // 2 + DI[inside], n // 2 + DK[inside]


class BoundaryEnforcer:
    """
    Per-frame boundary pass. :meth:`enforce` runs, in order:

    1. zero normal velocity on the six domain walls;
    2. during the injection phase, reset the nozzle band (vertical velocity
       0, density 1);
    3. zero density inside obstacle cells and velocity on every face that
       bounds one;
    4. buoyancy: ``v += buoyancy * c`` on the y-face below each cell.

    Obstacle zeroing follows injection so the nozzle can never write into
    the sphere. Buoyancy runs last and skips wall and obstacle faces, so it
    is not erased and does not break the no-flow conditions either.
    """

    def __init__(self, params: SmokeParams, pool: Optional[SweepPool] = None):
        self.params = params
        self.pool = pool or SweepPool(1)
        self._nozzle = nozzle_columns(params.n, params.source_radius)
        self._rows = np.arange(1, params.source_height + 1)

    def injecting(self, frame: int) -> bool:
        return frame < self.params.limit // 2

    def enforce(self, state: SmokeState, frame: int) -> None:
        self.zero_walls(state)
        if self.injecting(frame):
            self.inject_source(state)
        self.zero_obstacles(state)
        self.add_buoyancy(state)

    # ---------------------------------------------------------------------
    # Individual passes
    # ---------------------------------------------------------------------
    def zero_walls(self, state: SmokeState) -> None:
        for kind, comp in zip(FACE_KINDS, state.u):
            first = [slice(None)] * 3
            last = [slice(None)] * 3
            first[kind.axis] = 0
            last[kind.axis] = -1
            comp.grid[tuple(first)] = 0.0
            comp.grid[tuple(last)] = 0.0

    def inject_source(self, state: SmokeState) -> None:
        ii, kk = self._nozzle
        if ii.size == 0 or self._rows.size == 0:
            return
        v = state.u[1].grid
        c = state.c.grid
        I = ii[:, None]; K = kk[:, None]; J = self._rows[None, :]
        v[I, J, K] = 0.0
        c[I, J, K] = 1.0

    def zero_obstacles(self, state: SmokeState) -> None:
        if not state.b.data.any():
            return
        state.c.grid[state.solid] = 0.0
        for comp, mask in zip(state.u, state.face_solids()):
            comp.grid[mask] = 0.0

    def add_buoyancy(self, state: SmokeState) -> None:
        alpha = float(self.params.buoyancy)
        if alpha == 0.0:
            return
        n = state.n
        v = state.u[1].grid
        c = state.c.grid
        # y-face (i, j, k) sits below cell (i, j, k); j == n is the ceiling wall
        fluid_v = ~state.solid_v

        def sweep(k0: int, k1: int) -> None:
            ks = domain_slab(FieldKind.Y_FACE, n, k0, k1)
            V = v[ks]
            V[:, :-1, :] += alpha * c[domain_slab(FieldKind.CELL, n, k0, k1)] * fluid_v[ks][:, :-1, :]

        self.pool.run(sweep, FieldKind.Y_FACE.shape(n)[2])


__all__ = ["BoundaryEnforcer", "nozzle_columns"]
