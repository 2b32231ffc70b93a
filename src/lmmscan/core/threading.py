"""Thread management for numpy/scipy work and per-marker worker pools.

Two knobs are exposed:
- BLAS threads used inside numpy/scipy calls (eigendecomposition, rotation),
  scoped with threadpoolctl.
- Worker threads that process disjoint marker ranges of a scan. numpy and
  scipy release the GIL inside BLAS/LAPACK, so a thread pool is enough.

When several scan workers run at once, BLAS is limited to one thread for
the duration of the pool to avoid oversubscription.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Generator, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import TypeVar

import psutil
from loguru import logger
from threadpoolctl import threadpool_limits

from lmmscan.core.progress import maybe_progress

T = TypeVar("T")


def get_blas_thread_count() -> int:
    """Determine the number of BLAS threads to use for numpy operations.

    Priority:
    1. LMMSCAN_BLAS_THREADS env var (explicit override)
    2. Physical core count via psutil (avoids hyperthreading oversubscription)

    Returns:
        Positive integer thread count, capped at os.cpu_count().
    """
    max_threads = os.cpu_count() or 64

    env_override = os.environ.get("LMMSCAN_BLAS_THREADS")
    if env_override is not None:
        try:
            n = int(env_override)
        except ValueError:
            logger.warning(
                f"LMMSCAN_BLAS_THREADS={env_override!r} is not a valid integer, "
                "falling back to physical core count"
            )
        else:
            n = max(1, min(n, max_threads))
            logger.debug(f"BLAS threads from LMMSCAN_BLAS_THREADS: {n}")
            return n

    n = psutil.cpu_count(logical=False) or max_threads
    n = max(1, min(n, max_threads))
    logger.debug(f"BLAS threads from physical core count: {n}")
    return n


@contextmanager
def blas_threads(n_threads: int | None = None) -> Generator[None, None, None]:
    """Context manager for scoped BLAS thread control.

    Args:
        n_threads: Number of BLAS threads. None uses get_blas_thread_count().

    Example:
        >>> with blas_threads(8):
        ...     eigenvalues, eigenvectors = np.linalg.eigh(K)
    """
    if n_threads is None:
        n_threads = get_blas_thread_count()

    with threadpool_limits(limits=n_threads, user_api="blas"):
        yield


def partition_range(n_items: int, n_parts: int) -> list[range]:
    """Split ``range(n_items)`` into at most ``n_parts`` contiguous ranges.

    Ranges are as equal as possible and returned in index order; empty
    ranges are dropped.

    Example:
        >>> partition_range(10, 3)
        [range(0, 4), range(4, 7), range(7, 10)]
    """
    n_parts = max(1, min(n_parts, n_items))
    base, extra = divmod(n_items, n_parts)
    out = []
    start = 0
    for i in range(n_parts):
        stop = start + base + (1 if i < extra else 0)
        if stop > start:
            out.append(range(start, stop))
        start = stop
    return out


def run_partitioned(
    task: Callable[[range], T],
    parts: Sequence[range],
    n_workers: int = 1,
    show_progress: bool = False,
    desc: str = "",
) -> list[T]:
    """Run ``task`` on each index range, returning results in range order.

    With one worker the ranges run inline in the calling thread. Otherwise
    each range is submitted to a ThreadPoolExecutor and BLAS is pinned to a
    single thread for the lifetime of the pool (threadpoolctl limits are
    process-wide, so they cannot be set per worker). An exception raised by
    any task propagates after the pool shuts down.
    """
    if n_workers <= 1 or len(parts) <= 1:
        return [
            task(part)
            for part in maybe_progress(parts, len(parts), desc, show_progress)
        ]

    with blas_threads(1), ThreadPoolExecutor(max_workers=n_workers) as executor:
        futures = [executor.submit(task, part) for part in parts]
        return [
            f.result()
            for f in maybe_progress(futures, len(futures), desc, show_progress)
        ]
