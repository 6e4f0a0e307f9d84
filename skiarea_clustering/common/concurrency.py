"""Bounded parallel execution for clustering stages.

Work is admitted one unit at a time and only while fewer than the worker
budget are in flight, so lazily paged inputs are read no faster than they
are processed and the shared object store sees a capped number of
concurrent callers.
"""

import logging
import os
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def worker_budget(limit: int) -> int:
    """Cap a configured worker count at the number of available CPUs."""
    return max(1, min(limit, os.cpu_count() or 1))


def run_bounded(fn: Callable[[T], R], items: Iterable[T], max_workers: int) -> list[R]:
    """Apply ``fn`` to every item with at most ``max_workers`` calls in flight.

    Results are returned in completion order. The first exception raised by
    ``fn`` propagates once in-flight work has finished; no further items are
    admitted after it is observed.

    Args:
        fn: Work function, called from worker threads
        items: Work units, consumed lazily
        max_workers: Maximum concurrent calls

    Returns:
        Results of every call
    """
    results: list[R] = []
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        in_flight: set[Future[R]] = set()
        for item in items:
            if len(in_flight) >= max_workers:
                done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                results.extend(future.result() for future in done)
            in_flight.add(executor.submit(fn, item))

        done, _ = wait(in_flight)
        results.extend(future.result() for future in done)

    return results
