"""Visualizers that consume the smoke density after each completed frame."""

from .raymarch import RaymarchSettings, RaymarchVisualizer, write_png

__all__ = ["RaymarchSettings", "RaymarchVisualizer", "write_png"]
