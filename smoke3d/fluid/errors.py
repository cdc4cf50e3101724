"""Exceptions raised by the smoke solver."""

from __future__ import annotations


class SmokeError(RuntimeError):
    """Base class for smoke simulation failures."""


class FieldAllocationError(SmokeError):
    """A grid field could not be allocated. Fatal; never retried."""


class SolverDivergenceError(SmokeError):
    """Pressure or divergence became non-finite during projection."""

    def __init__(self, message: str, *, stage: str = "", iteration: int = -1):
        super().__init__(message)
        self.stage = stage
        self.iteration = iteration


class GridIndexError(IndexError):
    """Integer triple outside the extent of a field."""


__all__ = [
    "SmokeError",
    "FieldAllocationError",
    "SolverDivergenceError",
    "GridIndexError",
]
