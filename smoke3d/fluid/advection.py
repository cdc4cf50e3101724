# -*- coding: utf-8 -*-
"""
Semi-Lagrangian transport of the MAC velocity and the smoke density.

Every sample point (face centres for velocity, cell centres for density) is
traced backward through the *old* velocity and the *old* field is
interpolated there. All old fields are snapshotted before any new value is
written, and new values go to separate buffers, so the result does not
depend on sweep order or on how slabs are split between workers.

Coordinates: sampling works in grid units, ``X = Xw / h``, so the domain is
``[0, n]`` per axis. A cell-centred value ``F[i, j, k]`` sits at
``(i+.5, j+.5, k+.5)``; an x-face value ``u[i, j, k]`` at ``(i, j+.5, k+.5)``,
and so on. Sample points and their departure points stay in these units so
that a point which does not move lands exactly on its own stored value.
"""


from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence

import numpy as np

from ..common.sweeps import SweepPool
from .grid import FACE_KINDS, FieldKind, domain_slab, face_solid_masks
from .params import SmokeParams

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------------
# Sampling & interpolation
# -------------------------------------------------------------------------
def trilinear(F: np.ndarray, X: np.ndarray) -> np.ndarray:
    """Trilinear interpolation of ``F`` at index coordinates ``X`` (M, 3).

    Coordinates are clamped to ``[0, dim-1]`` per axis; integer coordinates
    return the stored value exactly.
    """
    nx, ny, nz = F.shape
    x = np.clip(X[:, 0], 0.0, nx - 1)
    y = np.clip(X[:, 1], 0.0, ny - 1)
    z = np.clip(X[:, 2], 0.0, nz - 1)
    i0 = np.minimum(np.floor(x).astype(int), max(nx - 2, 0))
    j0 = np.minimum(np.floor(y).astype(int), max(ny - 2, 0))
    k0 = np.minimum(np.floor(z).astype(int), max(nz - 2, 0))
    i1 = np.minimum(i0 + 1, nx - 1); j1 = np.minimum(j0 + 1, ny - 1); k1 = np.minimum(k0 + 1, nz - 1)
    tx = x - i0; ty = y - j0; tz = z - k0
    # gather corners
    c000 = F[i0, j0, k0]; c100 = F[i1, j0, k0]
    c010 = F[i0, j1, k0]; c110 = F[i1, j1, k0]
    c001 = F[i0, j0, k1]; c101 = F[i1, j0, k1]
    c011 = F[i0, j1, k1]; c111 = F[i1, j1, k1]
    c00 = c000*(1-tx) + c100*tx
    c01 = c001*(1-tx) + c101*tx
    c10 = c010*(1-tx) + c110*tx
    c11 = c011*(1-tx) + c111*tx
    c0 = c00*(1-ty) + c10*ty
    c1 = c01*(1-ty) + c11*ty
    return c0*(1-tz) + c1*tz


def sample_cell(F: np.ndarray, X: np.ndarray) -> np.ndarray:
    """Sample a cell-centred field at grid-unit points ``X`` (M, 3)."""
    return trilinear(F, X - 0.5)


def sample_face(F: np.ndarray, X: np.ndarray, axis: int) -> np.ndarray:
    """Sample a face-centred component (stagger-aware) at grid-unit points."""
    Xi = X - 0.5
    Xi[:, axis] += 0.5
    return trilinear(F, Xi)


def sample_field(F: np.ndarray, X: np.ndarray, kind: FieldKind) -> np.ndarray:
    if kind is FieldKind.CELL:
        return sample_cell(F, X)
    return sample_face(F, X, kind.axis)


def sample_velocity(vel: Sequence[np.ndarray], X: np.ndarray) -> np.ndarray:
    """Sample the MAC velocity at grid-unit points; returns (M, 3) in domain units per time."""
    return np.stack([sample_face(vel[kind.axis], X, kind.axis) for kind in FACE_KINDS], axis=-1)


def sample_points(kind: FieldKind, n: int, k0: int, k1: int) -> np.ndarray:
    """Grid-unit positions of the samples of ``kind`` for ``k`` in ``[k0, k1)``, rows in C order of ``(i, j, k)``."""
    dim_x, dim_y, _ = kind.shape(n)
    offset = [0.5, 0.5, 0.5]
    if kind.axis is not None:
        offset[kind.axis] = 0.0
    I, J, K = np.meshgrid(np.arange(dim_x), np.arange(dim_y), np.arange(k0, k1), indexing="ij")
    return np.stack([I + offset[0], J + offset[1], K + offset[2]], axis=-1).reshape(-1, 3)


class Advector:
    """Backward-trace advection of velocity and density."""

    def __init__(self, params: SmokeParams, pool: Optional[SweepPool] = None):
        self.params = params
        self.order = int(params.advect_order)
        self.pool = pool or SweepPool(1)
        self._old: Dict[str, np.ndarray] = {}
        self._new: Dict[str, np.ndarray] = {}

    def backtrace(self, X: np.ndarray, vel0: Sequence[np.ndarray], dt: float, n: int) -> np.ndarray:
        """Departure points of grid-unit points ``X`` after ``dt`` backward, clamped to ``[0, n]``."""
        scale = dt * n
        V = sample_velocity(vel0, X)
        if self.order == 1:
            Xb = X - scale * V
        else:
            mid = np.clip(X - 0.5 * scale * V, 0.0, n)
            Xb = X - scale * sample_velocity(vel0, mid)
        return np.clip(Xb, 0.0, n)

    def advect(
        self,
        u: Sequence[np.ndarray],
        c: np.ndarray,
        n: int,
        dt: float,
        solid: Optional[np.ndarray] = None,
    ) -> None:
        """Advect the three face components in ``u`` and the density ``c`` in place."""
        vel0 = [self._snapshot(kind.name, u[kind.axis]) for kind in FACE_KINDS]
        c0 = self._snapshot("c", c)
        dest = [self._dest(kind.name, kind.shape(n)) for kind in FACE_KINDS]
        cdest = self._dest("c", FieldKind.CELL.shape(n))

        for kind in FACE_KINDS:
            self._sweep(kind, n, vel0[kind.axis], dest[kind.axis], vel0, dt)
        self._sweep(FieldKind.CELL, n, c0, cdest, vel0, dt)

        for kind in FACE_KINDS:
            u[kind.axis][...] = dest[kind.axis]
        c[...] = cdest
        self._apply_masks(u, c, solid)

    # ---------------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------------
    def _sweep(self, kind: FieldKind, n: int, F0, out, vel0, dt) -> None:
        dim_x, dim_y, dim_z = kind.shape(n)

        def sweep(k0: int, k1: int) -> None:
            Xb = self.backtrace(sample_points(kind, n, k0, k1), vel0, dt, n)
            out[domain_slab(kind, n, k0, k1)] = sample_field(F0, Xb, kind).reshape(dim_x, dim_y, k1 - k0)

        self.pool.run(sweep, dim_z)

    def _apply_masks(self, u: Sequence[np.ndarray], c: np.ndarray, solid: Optional[np.ndarray]) -> None:
        if solid is None:
            solid = np.zeros(c.shape, dtype=bool)
        masks = face_solid_masks(np.asarray(solid, dtype=bool))
        for comp, mask in zip(u, masks):
            comp[mask] = 0.0
        c[solid] = 0.0

    def _snapshot(self, name: str, F: np.ndarray) -> np.ndarray:
        buf = self._old.get(name)
        if buf is None or buf.shape != F.shape:
            buf = np.empty(F.shape, dtype=np.float64, order="F")
            self._old[name] = buf
        buf[...] = F
        return buf

    def _dest(self, name: str, shape) -> np.ndarray:
        buf = self._new.get(name)
        if buf is None or buf.shape != tuple(shape):
            buf = np.empty(shape, dtype=np.float64, order="F")
            self._new[name] = buf
        return buf


__all__ = [
    "trilinear",
    "sample_cell",
    "sample_face",
    "sample_field",
    "sample_velocity",
    "sample_points",
    "Advector",
]
