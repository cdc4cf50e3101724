# projection.py
# -*- coding: utf-8 -*-
"""
Pressure projection on the MAC grid.

    div      = D u                      (cell centres)
    L p      = div                      (7-point, matrix-free, Neumann)
    u       -= G p                      (interior fluid faces only)

``L`` couples two cells only when both are fluid: the domain walls and the
faces of obstacle cells are zero-flux boundaries, so the faces skipped by
``G`` are exactly the faces ``L`` never couples across. With that pairing
the divergence left after :meth:`ProjectionSolver.subtract_gradient` equals
the Poisson residual cell by cell.

With Neumann conditions everywhere the pressure is defined up to a constant.
The solver starts from zero and never pins a reference cell; the gradient
only sees pressure differences.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from ..common.sweeps import SweepPool
from .errors import SolverDivergenceError
from .grid import FieldKind, SmokeState, domain_slab
from .params import SmokeParams

logger = logging.getLogger(__name__)

_INLINE = SweepPool(1)


def compute_divergence(
    vel: Sequence[np.ndarray],
    h: float,
    out: Optional[np.ndarray] = None,
    pool: Optional[SweepPool] = None,
) -> np.ndarray:
    """Net outflow per cell divided by ``h`` over every cell, walls included."""
    u, v, w = vel
    n = u.shape[1]
    cells = FieldKind.CELL
    if out is None:
        out = np.zeros(cells.shape(n), dtype=np.float64, order="F")
    inv_h = 1.0 / h

    def sweep(lo: int, hi: int) -> None:
        ks = domain_slab(cells, n, lo, hi)
        U, V = u[ks], v[ks]
        W = w[domain_slab(FieldKind.Z_FACE, n, lo, hi + 1)]
        out[ks] = (
            (U[1:, :, :] - U[:-1, :, :])
            + (V[:, 1:, :] - V[:, :-1, :])
            + (W[:, :, 1:] - W[:, :, :-1])
        ) * inv_h

    (pool or _INLINE).run(sweep, cells.shape(n)[2])
    return out


class PoissonOperator:
    """
    Matrix-free 7-point Laplacian restricted to fluid cells.

    ``apply(p)`` is a pure function of ``p``: it reads the whole input and
    writes each ``k`` slab of the output from one worker.
    """

    def __init__(self, solid: np.ndarray, h: float, pool: Optional[SweepPool] = None):
        self.solid = np.asarray(solid, dtype=bool)
        self.shape = self.solid.shape
        self.inv_h2 = 1.0 / (h * h)
        self.pool = pool or _INLINE
        fluid = ~self.solid
        # 1.0 where both cells sharing a face are fluid
        self.gx = (fluid[:-1, :, :] & fluid[1:, :, :]).astype(np.float64)
        self.gy = (fluid[:, :-1, :] & fluid[:, 1:, :]).astype(np.float64)
        self.gz = (fluid[:, :, :-1] & fluid[:, :, 1:]).astype(np.float64)
        cnt = np.zeros(self.shape, dtype=np.float64)
        cnt[:-1, :, :] += self.gx; cnt[1:, :, :] += self.gx
        cnt[:, :-1, :] += self.gy; cnt[:, 1:, :] += self.gy
        cnt[:, :, :-1] += self.gz; cnt[:, :, 1:] += self.gz
        self.neighbours = cnt

    def apply(self, p: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        if out is None:
            out = np.zeros(self.shape, dtype=np.float64, order="F")
        n = self.shape[0]
        nz = self.shape[2]
        gx, gy, gz = self.gx, self.gy, self.gz
        inv_h2 = self.inv_h2

        def sweep(lo: int, hi: int) -> None:
            ks = domain_slab(FieldKind.CELL, n, lo, hi)
            P = p[ks]
            Y = out[ks]
            Y[...] = 0.0
            fx = gx[ks] * (P[1:, :, :] - P[:-1, :, :])
            Y[:-1, :, :] += fx
            Y[1:, :, :] -= fx
            fy = gy[ks] * (P[:, 1:, :] - P[:, :-1, :])
            Y[:, :-1, :] += fy
            Y[:, 1:, :] -= fy
            # z faces: face f joins cells f and f+1
            f_hi = min(hi, nz - 1)
            if f_hi > lo:
                Y[:, :, :f_hi - lo] += gz[:, :, lo:f_hi] * (p[:, :, lo + 1:f_hi + 1] - p[:, :, lo:f_hi])
            f_lo = max(lo - 1, 0)
            if hi - 1 > f_lo:
                Y[:, :, f_lo + 1 - lo:] -= gz[:, :, f_lo:hi - 1] * (p[:, :, f_lo + 1:hi] - p[:, :, f_lo:hi - 1])
            Y *= inv_h2

        self.pool.run(sweep, FieldKind.CELL.shape(n)[2])
        return out

    __call__ = apply


def laplacian(p: np.ndarray, solid: np.ndarray, h: float, out: Optional[np.ndarray] = None) -> np.ndarray:
    """7-point Laplacian with zero flux at walls and obstacle faces; zero on solid cells."""
    return PoissonOperator(solid, h).apply(p, out=out)


def residual(p: np.ndarray, div: np.ndarray, solid: np.ndarray, h: float) -> np.ndarray:
    """``div - L p`` on fluid cells, zero on solid cells."""
    r = div - laplacian(p, solid, h)
    r[np.asarray(solid, dtype=bool)] = 0.0
    return r


@dataclass
class ProjectionReport:
    residual: float
    iterations: int
    max_divergence: float


class ProjectionSolver:
    """Divergence, Poisson solve and gradient subtraction for one frame."""

    def __init__(self, params: SmokeParams, pool: Optional[SweepPool] = None):
        self.params = params
        self.pool = pool or _INLINE
        self.tol = float(params.pressure_tol)
        self.maxiter = int(params.pressure_maxiter)
        self.method = params.pressure_method
        self.omega = float(params.sor_omega)
        self.last_iterations = 0
        self._op: Optional[PoissonOperator] = None
        self._op_key: Optional[Tuple[int, float]] = None
        self._scratch: Dict[str, np.ndarray] = {}
        self._solid: Optional[np.ndarray] = None

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    def compute_divergence(self, vel: Sequence[np.ndarray], h: float, out: Optional[np.ndarray] = None) -> np.ndarray:
        div = compute_divergence(vel, h, out=out, pool=self.pool)
        if not np.all(np.isfinite(div)):
            raise SolverDivergenceError("non-finite divergence", stage="divergence")
        return div

    def solve(self, p: np.ndarray, div: np.ndarray, solid: np.ndarray, n: Optional[int] = None) -> Tuple[np.ndarray, float]:
        """Solve ``L p = div`` in place; returns ``(p, ||div - L p||_2)``."""
        solid = np.asarray(solid, dtype=bool)
        n = int(n) if n is not None else solid.shape[0]
        h = 1.0 / n
        if not np.all(np.isfinite(div)):
            raise SolverDivergenceError("non-finite divergence", stage="divergence")
        op = self._operator(solid, h)
        fluid = ~solid
        self._solid = solid

        b = self._buffer("b", solid.shape)
        b[...] = div
        b[solid] = 0.0
        if np.any(fluid):
            b[fluid] -= float(b[fluid].mean())

        p[...] = 0.0
        if self.method == "cg":
            iters = self._cg(op, p, b)
        elif self.method == "redblack":
            iters = self._redblack(op, p, b)
        else:
            raise ValueError(f"Unknown pressure method {self.method!r}")
        p[solid] = 0.0
        if not np.all(np.isfinite(p)):
            raise SolverDivergenceError("non-finite pressure", stage="pressure", iteration=iters)

        r = self._buffer("r_true", solid.shape)
        op.apply(p, out=r)
        np.subtract(div, r, out=r)
        r[solid] = 0.0
        res = float(np.sqrt(np.sum(r * r)))
        self.last_iterations = iters
        if iters >= self.maxiter and res >= self.tol:
            logger.warning("pressure solve stopped at maxiter=%d with residual %.3e", self.maxiter, res)
        logger.debug("pressure solve (%s): %d iterations, residual %.3e", self.method, iters, res)
        return p, res

    def subtract_gradient(
        self,
        vel: Sequence[np.ndarray],
        p: np.ndarray,
        h: float,
        solid: Optional[np.ndarray] = None,
    ) -> None:
        """Subtract ``(p[hi] - p[lo]) / h`` on interior faces, skipping obstacle faces.

        ``solid`` defaults to the obstacle mask of the last :meth:`solve`.
        """
        u, v, w = vel
        n = p.shape[0]
        if solid is None:
            solid = self._solid
        if solid is None:
            fluid = np.ones(p.shape, dtype=bool)
        else:
            fluid = ~np.asarray(solid, dtype=bool)
        inv_h = 1.0 / h

        def sweep(lo: int, hi: int) -> None:
            ks = domain_slab(FieldKind.CELL, n, lo, hi)
            P = p[ks]
            F = fluid[ks]
            U, V = u[ks], v[ks]
            U[1:-1, :, :] -= (P[1:, :, :] - P[:-1, :, :]) * inv_h * (F[1:, :, :] & F[:-1, :, :])
            V[:, 1:-1, :] -= (P[:, 1:, :] - P[:, :-1, :]) * inv_h * (F[:, 1:, :] & F[:, :-1, :])
            # w face f sits between cells f-1 and f; this slab owns faces [max(lo, 1), hi)
            f_lo = max(lo, 1)
            if hi > f_lo:
                gate = fluid[:, :, f_lo:hi] & fluid[:, :, f_lo - 1:hi - 1]
                w[domain_slab(FieldKind.Z_FACE, n, f_lo, hi)] -= (p[:, :, f_lo:hi] - p[:, :, f_lo - 1:hi - 1]) * inv_h * gate

        self.pool.run(sweep, FieldKind.CELL.shape(n)[2])

    def project(self, state: SmokeState) -> ProjectionReport:
        vel = state.velocity()
        div = self.compute_divergence(vel, state.h, out=state.div.grid)
        _, res = self.solve(state.p.grid, div, state.solid, state.n)
        self.subtract_gradient(vel, state.p.grid, state.h, state.solid)
        after = compute_divergence(vel, state.h, pool=self.pool)
        after[state.solid] = 0.0
        max_div = float(np.max(np.abs(after))) if after.size else 0.0
        return ProjectionReport(residual=res, iterations=self.last_iterations, max_divergence=max_div)

    # ---------------------------------------------------------------------
    # Iterative schemes
    # ---------------------------------------------------------------------
    def _cg(self, op: PoissonOperator, x: np.ndarray, b: np.ndarray) -> int:
        tol2 = self.tol * self.tol
        r = self._buffer("r", b.shape)
        d = self._buffer("d", b.shape)
        Ad = self._buffer("Ad", b.shape)
        r[...] = b
        d[...] = r
        rsold = float(np.sum(r * r))
        if rsold < tol2:
            return 0
        it = 0
        for it in range(1, self.maxiter + 1):
            op.apply(d, out=Ad)
            denom = float(np.sum(d * Ad))
            if not np.isfinite(denom):
                raise SolverDivergenceError("non-finite CG curvature", stage="cg", iteration=it)
            if abs(denom) < 1e-30:
                break
            alpha = rsold / denom
            x += alpha * d
            r -= alpha * Ad
            rsnew = float(np.sum(r * r))
            if not np.isfinite(rsnew):
                raise SolverDivergenceError("non-finite CG residual", stage="cg", iteration=it)
            if rsnew < tol2:
                # the updated r drifts from b - A x; stop only on the true residual
                op.apply(x, out=Ad)
                np.subtract(b, Ad, out=r)
                rsnew = float(np.sum(r * r))
                if rsnew < tol2:
                    break
                d[...] = r
                rsold = rsnew
                continue
            d *= rsnew / rsold
            d += r
            rsold = rsnew
        return it

    def _redblack(self, op: PoissonOperator, x: np.ndarray, b: np.ndarray) -> int:
        """Red-black SOR; each colour only reads the other, so a colour sweep is data-parallel."""
        h2 = 1.0 / op.inv_h2
        cnt = op.neighbours
        active = cnt > 0
        red, black = self._colours(op.shape)
        colours = (red & active, black & active)
        safe_cnt = np.where(active, cnt, 1.0)
        tol = self.tol
        Lx = self._buffer("Lx", b.shape)
        r = self._buffer("r", b.shape)
        it = 0
        for it in range(1, self.maxiter + 1):
            for mask in colours:
                op.apply(x, out=Lx)
                # neighbour sum = h^2 L x + cnt x
                gs = (h2 * Lx + cnt * x - h2 * b) / safe_cnt
                x[mask] += self.omega * (gs[mask] - x[mask])
            op.apply(x, out=Lx)
            np.subtract(b, Lx, out=r)
            r[op.solid] = 0.0
            res = float(np.sqrt(np.sum(r * r)))
            if not np.isfinite(res):
                raise SolverDivergenceError("non-finite SOR residual", stage="redblack", iteration=it)
            if res < tol:
                break
        return it

    # ---------------------------------------------------------------------
    # Caches
    # ---------------------------------------------------------------------
    def _operator(self, solid: np.ndarray, h: float) -> PoissonOperator:
        key = (id(solid), h)
        if self._op is None or self._op_key != key or self._op.shape != solid.shape \
                or not np.array_equal(self._op.solid, solid):
            self._op = PoissonOperator(solid, h, self.pool)
            self._op_key = key
        return self._op

    def _buffer(self, name: str, shape) -> np.ndarray:
        buf = self._scratch.get(name)
        if buf is None or buf.shape != tuple(shape):
            buf = np.zeros(shape, dtype=np.float64, order="F")
            self._scratch[name] = buf
        return buf

    def _colours(self, shape) -> Tuple[np.ndarray, np.ndarray]:
        I, J, K = np.meshgrid(*(np.arange(s) for s in shape), indexing="ij")
        red = ((I + J + K) % 2) == 0
        return red, ~red


__all__ = [
    "compute_divergence",
    "PoissonOperator",
    "laplacian",
    "residual",
    "ProjectionReport",
    "ProjectionSolver",
]
