# -*- coding: utf-8 -*-
"""Configuration for the smoke simulation."""

from __future__ import annotations
from dataclasses import dataclass

PRESSURE_METHODS = ("cg", "redblack")


@dataclass
class SmokeParams:
    # Grid & obstacle
    n: int = 32                      # cells per axis, domain is the unit cube
    sphere_r: float = 0.2            # obstacle radius (domain units, fraction of the cube)

    # Time stepping
    dt: float = 0.1
    limit: int = 100                 # last frame processed; injection while frame < limit // 2

    # Source & forces
    buoyancy: float = 0.1            # vertical velocity added per unit density each frame
    source_radius_div: int = 7       # nozzle radius is n // source_radius_div cells
    source_height: int = 6           # nozzle rows above the floor row

    # Pressure solve
    pressure_tol: float = 1e-6       # on the 2-norm of the Poisson residual
    pressure_maxiter: int = 1000
    pressure_method: str = "cg"      # "cg" or "redblack"
    sor_omega: float = 1.7           # relaxation factor for "redblack"

    # Advection
    advect_order: int = 2            # 1: Euler backtrace, 2: midpoint

    # Concurrency
    workers: int = 1

    @property
    def h(self) -> float:
        return 1.0 / self.n

    @property
    def source_radius(self) -> int:
        return self.n // self.source_radius_div

    def validate(self) -> "SmokeParams":
        if self.n < 2:
            raise ValueError("n must be at least 2")
        if not 0.0 <= self.sphere_r <= 0.5:
            raise ValueError("sphere_r must lie in [0, 0.5]")
        if self.dt <= 0.0:
            raise ValueError("dt must be positive")
        if self.limit < 0:
            raise ValueError("limit must be non-negative")
        if self.source_radius_div <= 0:
            raise ValueError("source_radius_div must be positive")
        if self.source_height < 0 or self.source_height + 1 > self.n:
            raise ValueError("source_height does not fit in the grid")
        if self.pressure_tol <= 0.0 or self.pressure_maxiter <= 0:
            raise ValueError("pressure_tol and pressure_maxiter must be positive")
        if self.pressure_method not in PRESSURE_METHODS:
            raise ValueError(f"Unknown pressure method {self.pressure_method!r}")
        if not 0.0 < self.sor_omega < 2.0:
            raise ValueError("sor_omega must lie in (0, 2)")
        if self.advect_order not in (1, 2):
            raise ValueError("advect_order must be 1 or 2")
        if self.workers < 1:
            raise ValueError("workers must be at least 1")
        return self


__all__ = ["SmokeParams", "PRESSURE_METHODS"]
