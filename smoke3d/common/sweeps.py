"""
Threaded slab sweeps over a grid's flat index space.

Every grid field is stored as one contiguous buffer addressed by
``i + j*dimX + k*dimX*dimY``, so a range of ``k`` values is a contiguous
range of the flat index space. :class:`SweepPool` hands disjoint ``k``
ranges ("slabs") to persistent worker threads. A sweep function must only
write the slab it was given and must only read buffers that no worker is
writing during the same sweep.

NumPy releases the GIL inside its vectorised kernels, which is what makes
threads worthwhile here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import queue
import threading
from typing import Callable, List, Optional, Tuple

SweepFn = Callable[[int, int], None]


@dataclass
class _SweepTask:
    fn: SweepFn
    lo: int
    hi: int
    done: threading.Event = field(default_factory=threading.Event)
    error: Optional[BaseException] = None


class SweepPool:
    """Run ``fn(lo, hi)`` over ``[0, extent)`` split across worker threads.

    With ``workers == 1`` no threads are started and every sweep runs
    inline on the caller's thread.
    """

    def __init__(self, workers: int = 1) -> None:
        self.workers = max(1, int(workers))
        self._tasks: "queue.Queue[_SweepTask | None]" = queue.Queue()
        self._threads: List[threading.Thread] = []
        if self.workers > 1:
            for idx in range(self.workers):
                t = threading.Thread(target=self._run, name=f"smoke3d-sweep-{idx}", daemon=True)
                t.start()
                self._threads.append(t)

    def partition(self, extent: int) -> List[Tuple[int, int]]:
        """Split ``[0, extent)`` into at most ``workers`` contiguous ranges."""
        extent = int(extent)
        if extent <= 0:
            return []
        parts = min(self.workers, extent)
        base, extra = divmod(extent, parts)
        ranges = []
        lo = 0
        for i in range(parts):
            hi = lo + base + (1 if i < extra else 0)
            ranges.append((lo, hi))
            lo = hi
        return ranges

    def run(self, fn: SweepFn, extent: int) -> None:
        """Run one sweep and wait for every slab; re-raise the first failure."""
        ranges = self.partition(extent)
        if len(ranges) <= 1 or not self._threads:
            for lo, hi in ranges:
                fn(lo, hi)
            return
        tasks = [_SweepTask(fn, lo, hi) for lo, hi in ranges]
        for task in tasks:
            self._tasks.put(task)
        for task in tasks:
            task.done.wait()
        for task in tasks:
            if task.error is not None:
                raise task.error

    def close(self) -> None:
        """Signal the workers to exit and join them."""
        for _ in self._threads:
            self._tasks.put(None)
        for t in self._threads:
            t.join(timeout=2.0)
        self._threads = []

    def __enter__(self) -> "SweepPool":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # Internal worker --------------------------------------------
    def _run(self) -> None:
        while True:
            task = self._tasks.get()
            if task is None:
                return
            try:
                task.fn(task.lo, task.hi)
            except BaseException as exc:  # handed back to the caller in run()
                task.error = exc
            finally:
                task.done.set()


__all__ = ["SweepPool"]
