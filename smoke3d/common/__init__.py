"""Shared helpers: logging, step hooks and threaded sweeps."""

from .logger import get_smoke_logger
from .sim_hooks import SimHooks
from .sweeps import SweepPool

__all__ = ["get_smoke_logger", "SimHooks", "SweepPool"]
