"""smoke3d: stable-fluids smoke around a spherical obstacle.

The fluid core lives in :mod:`smoke3d.fluid`; the optional ray-march
visualizer lives in :mod:`smoke3d.rendering`.
"""

from .fluid import SmokeParams, SmokeSimulation, make_smoke

__all__ = ["SmokeParams", "SmokeSimulation", "make_smoke"]
