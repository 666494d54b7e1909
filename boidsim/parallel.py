"""
Data-parallel execution of stage passes.

A stage pass is a function `fn(start, stop, *args)` over a contiguous index
range. parallel_for splits [0, count) into ranges, runs one task per range
on a thread pool and waits for all of them before returning. That wait is
the barrier between pipeline stages.

Threads (not processes) are used because every stage reads and writes the
same shared numpy arrays, and the numpy kernels inside each task release
the GIL.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple


def split_ranges(count: int, batch_size: int) -> List[Tuple[int, int]]:
    """
    Partition [0, count) into contiguous (start, stop) ranges.

    Args:
        count: Number of indices
        batch_size: Maximum range length (>= 1)

    Returns:
        Ranges in ascending order; empty list when count == 0
    """
    batch_size = max(1, int(batch_size))
    return [(start, min(start + batch_size, count)) for start in range(0, count, batch_size)]


class ParallelExecutor:
    """
    Thread pool running range-partitioned passes with a completion barrier.

    With workers == 1 every pass runs inline on the calling thread.
    """

    def __init__(self, workers: Optional[int] = None):
        """
        Args:
            workers: Worker thread count (None = os.cpu_count())
        """
        if workers is None:
            workers = os.cpu_count() or 1
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")

        self.workers = workers
        self._pool: Optional[ThreadPoolExecutor] = None
        if workers > 1:
            self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="boidsim")

    def parallel_for(self, count: int, batch_size: int, fn: Callable, *args) -> list:
        """
        Run fn(start, stop, *args) over [0, count) and wait for completion.

        Tasks of one call must touch disjoint output indices; they have no
        ordering guarantee among themselves.

        Returns:
            Task results in range order

        Raises:
            Whatever the first failing task raised (after all tasks finish)
        """
        ranges = split_ranges(count, batch_size)

        if self._pool is None or len(ranges) <= 1:
            return [fn(start, stop, *args) for start, stop in ranges]

        futures = [self._pool.submit(fn, start, stop, *args) for start, stop in ranges]

        # Barrier: collect every task before surfacing a failure
        errors = [f.exception() for f in futures]
        for error in errors:
            if error is not None:
                raise error
        return [f.result() for f in futures]

    def shutdown(self):
        """Stop worker threads (waits for queued tasks)"""
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def __enter__(self) -> 'ParallelExecutor':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
