from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Any, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass
class SimHooks:
    """Optional pre/post hooks for simulation frames.

    Each hook receives the simulation instance and the frame index about
    to be (pre) or just (post) processed. A failing hook is logged with its
    traceback and does not abort the frame.
    """
    pre: Optional[Callable[[Any, int], None]] = None
    post: Optional[Callable[[Any, int], None]] = None

    def run_pre(self, sim: Any, frame: int) -> None:
        if self.pre is not None:
            try:
                self.pre(sim, frame)
            except Exception:
                logger.exception("pre-frame hook failed at frame %d", frame)

    def run_post(self, sim: Any, frame: int) -> None:
        if self.post is not None:
            try:
                self.post(sim, frame)
            except Exception:
                logger.exception("post-frame hook failed at frame %d", frame)
