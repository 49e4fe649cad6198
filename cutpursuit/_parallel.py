"""Workload-driven worker count and a thread-parallel map."""

from __future__ import annotations

import os

from joblib import Parallel, delayed

# below this many elementary operations per worker, parallel overhead dominates
MIN_OPS_PER_JOB = 10000


def num_jobs(num_ops: float, num_units: int, max_num_threads: int = 0) -> int:
    """Number of workers for ``num_units`` independent units of total work ``num_ops``.

    ``max_num_threads <= 0`` means all available cores.
    """
    max_jobs = max_num_threads if max_num_threads > 0 else (os.cpu_count() or 1)
    jobs = int(num_ops // MIN_OPS_PER_JOB)
    return max(1, min(jobs, max_jobs, num_units))


def parallel_map(func, items, num_ops: float = 0, max_num_threads: int = 0) -> list:
    """Apply ``func`` to every item, with threads when the workload justifies it.

    The result order follows ``items``.
    """
    items = list(items)
    n_jobs = num_jobs(num_ops, len(items), max_num_threads)
    if n_jobs == 1:
        return [func(item) for item in items]
    return Parallel(n_jobs=n_jobs, prefer="threads")(
        delayed(func)(item) for item in items
    )
