# grid.py
# -*- coding: utf-8 -*-
"""
Field storage for the MAC smoke grid.

Staggering (unit cube, ``n`` cells per axis, ``h = 1/n``):
  - x-faces: (n+1, n,   n  )
  - y-faces: (n,   n+1, n  )
  - z-faces: (n,   n,   n+1)
  - cells:   (n,   n,   n  )

Every field is one flat contiguous buffer addressed by
``i + j*dimX + k*dimX*dimY``. :attr:`Field.grid` is a zero-copy 3-D view of
that buffer (Fortran order), so vectorised code works on ``grid`` while
threaded sweeps partition contiguous ``k`` slabs of ``data``. Never rebind
``grid``; write through it.
"""

from __future__ import annotations

from enum import Enum
import logging
from typing import Iterator, Optional, Tuple

import numpy as np

from .errors import FieldAllocationError, GridIndexError

logger = logging.getLogger(__name__)

Index3 = Tuple[int, int, int]


class FieldKind(Enum):
    X_FACE = 0
    Y_FACE = 1
    Z_FACE = 2
    CELL = 3

    @property
    def axis(self) -> Optional[int]:
        """Axis the face normal points along, ``None`` for cell centres."""
        return None if self is FieldKind.CELL else self.value

    def shape(self, n: int) -> Index3:
        ext = [n, n, n]
        if self is not FieldKind.CELL:
            ext[self.value] += 1
        return (ext[0], ext[1], ext[2])


FACE_KINDS = (FieldKind.X_FACE, FieldKind.Y_FACE, FieldKind.Z_FACE)


class Field:
    """Zero-initialised scalar field of one :class:`FieldKind`."""

    def __init__(self, kind: FieldKind, n: int, dtype=np.float64):
        self.kind = kind
        self.n = int(n)
        self.shape = kind.shape(self.n)
        dim_x, dim_y, dim_z = self.shape
        self.data = np.zeros(dim_x * dim_y * dim_z, dtype=dtype)
        self.grid = self.data.reshape(self.shape, order="F")

    def flat_index(self, i: int, j: int, k: int) -> int:
        dim_x, dim_y, dim_z = self.shape
        if not (0 <= i < dim_x and 0 <= j < dim_y and 0 <= k < dim_z):
            raise GridIndexError(f"({i}, {j}, {k}) outside {self.kind.name} extent {self.shape}")
        return i + j * dim_x + k * dim_x * dim_y

    def get(self, i: int, j: int, k: int):
        return self.data[self.flat_index(i, j, k)]

    def set(self, i: int, j: int, k: int, value) -> None:
        self.data[self.flat_index(i, j, k)] = value

    def fill(self, value) -> None:
        self.data.fill(value)

    def slab(self, k0: int, k1: int) -> np.ndarray:
        """3-D view of the ``k`` range ``[k0, k1)``; contiguous in ``data``."""
        return self.grid[:, :, k0:k1]

    def readonly(self) -> np.ndarray:
        view = self.grid.view()
        view.flags.writeable = False
        return view

    def __repr__(self) -> str:
        return f"Field({self.kind.name}, shape={self.shape}, dtype={self.data.dtype})"


def allocate(kind: FieldKind, n: int, dtype=np.float64) -> Field:
    """Allocate a field; any failure is fatal and wrapped in :class:`FieldAllocationError`."""
    try:
        return Field(kind, n, dtype=dtype)
    except (MemoryError, ValueError) as exc:
        raise FieldAllocationError(f"cannot allocate {kind.name} field for n={n}") from exc


def iter_domain(kind: FieldKind, n: int) -> Iterator[Index3]:
    """Yield every ``(i, j, k)`` of a field class, ``i`` fastest (flat order)."""
    dim_x, dim_y, dim_z = kind.shape(n)
    for k in range(dim_z):
        for j in range(dim_y):
            for i in range(dim_x):
                yield (i, j, k)


def domain_slab(kind: FieldKind, n: int, k0: int, k1: int) -> Tuple[slice, slice, slice]:
    """Index tuple selecting the ``k`` range ``[k0, k1)`` of a field class."""
    dim_z = kind.shape(n)[2]
    return (slice(None), slice(None), slice(max(0, k0), min(dim_z, k1)))


def obstacle_mask(n: int, radius: float) -> np.ndarray:
    """Cells whose centre lies strictly within ``radius`` of the cube centre."""
    centers = (np.arange(n, dtype=np.float64) + 0.5) / n - 0.5
    X, Y, Z = np.meshgrid(centers, centers, centers, indexing="ij")
    return np.sqrt(X * X + Y * Y + Z * Z) < radius


class SmokeState:
    """
    Single owner of every simulation field plus the frame counter.

    Fields are allocated once here and mutated in place for the lifetime of
    the run; :meth:`reset` restores the initial conditions without
    reallocating.
    """

    def __init__(self, n: int, sphere_r: float = 0.0):
        self.n = int(n)
        self.h = 1.0 / self.n
        self.sphere_r = float(sphere_r)

        self.u = tuple(allocate(kind, self.n) for kind in FACE_KINDS)
        self.c = allocate(FieldKind.CELL, self.n)
        self.b = allocate(FieldKind.CELL, self.n, dtype=bool)
        self.p = allocate(FieldKind.CELL, self.n)
        self.div = allocate(FieldKind.CELL, self.n)
        self.frame = 0
        self.reset()

    @classmethod
    def create(cls, params) -> "SmokeState":
        return cls(params.n, params.sphere_r)

    def reset(self) -> None:
        for comp in self.u:
            comp.fill(0.0)
        self.c.fill(0.0)
        self.p.fill(0.0)
        self.div.fill(0.0)
        self.b.grid[...] = obstacle_mask(self.n, self.sphere_r)
        self._update_face_solids()
        self.frame = 0
        logger.debug("state reset: n=%d, obstacle cells=%d", self.n, int(self.b.data.sum()))

    # Convenience views ----------------------------------------------------
    @property
    def solid(self) -> np.ndarray:
        return self.b.grid

    def velocity(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        return self.u[0].grid, self.u[1].grid, self.u[2].grid

    def density_view(self) -> np.ndarray:
        return self.c.readonly()

    def face_solids(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        return self.solid_u, self.solid_v, self.solid_w

    def _update_face_solids(self) -> None:
        self.solid_u, self.solid_v, self.solid_w = face_solid_masks(self.solid)


def face_solid_masks(solid: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Face masks that must carry zero normal velocity: walls plus faces of solid cells."""
    nx, ny, nz = solid.shape
    s = solid
    solid_u = np.zeros((nx + 1, ny, nz), dtype=bool)
    solid_v = np.zeros((nx, ny + 1, nz), dtype=bool)
    solid_w = np.zeros((nx, ny, nz + 1), dtype=bool)
    # face is solid if either adjacent cell is solid
    solid_u[:-1, :, :] |= s; solid_u[1:, :, :] |= s
    solid_u[0, :, :] = True; solid_u[-1, :, :] = True
    solid_v[:, :-1, :] |= s; solid_v[:, 1:, :] |= s
    solid_v[:, 0, :] = True; solid_v[:, -1, :] = True
    solid_w[:, :, :-1] |= s; solid_w[:, :, 1:] |= s
    solid_w[:, :, 0] = True; solid_w[:, :, -1] = True
    return solid_u, solid_v, solid_w


__all__ = [
    "FieldKind",
    "FACE_KINDS",
    "Field",
    "allocate",
    "iter_domain",
    "domain_slab",
    "obstacle_mask",
    "face_solid_masks",
    "SmokeState",
]
