"""Stable-fluids smoke solver on a MAC grid.

:class:`~smoke3d.fluid.simulation.SmokeSimulation` drives one frame through
:class:`~smoke3d.fluid.boundary.BoundaryEnforcer`,
:class:`~smoke3d.fluid.projection.ProjectionSolver` and
:class:`~smoke3d.fluid.advection.Advector`, all operating on one
:class:`~smoke3d.fluid.grid.SmokeState`.
"""

from .errors import SmokeError, FieldAllocationError, SolverDivergenceError, GridIndexError
from .params import SmokeParams
from .grid import FieldKind, Field, SmokeState, iter_domain, obstacle_mask
from .boundary import BoundaryEnforcer
from .projection import ProjectionSolver, PoissonOperator, compute_divergence, laplacian, residual
from .advection import Advector, trilinear, sample_cell, sample_face
from .simulation import Phase, SmokeSimulation, StepReport
from .make_smoke import make_smoke

__all__ = [
    "SmokeError",
    "FieldAllocationError",
    "SolverDivergenceError",
    "GridIndexError",
    "SmokeParams",
    "FieldKind",
    "Field",
    "SmokeState",
    "iter_domain",
    "obstacle_mask",
    "BoundaryEnforcer",
    "ProjectionSolver",
    "PoissonOperator",
    "compute_divergence",
    "laplacian",
    "residual",
    "Advector",
    "trilinear",
    "sample_cell",
    "sample_face",
    "Phase",
    "SmokeSimulation",
    "StepReport",
    "make_smoke",
]
