"""Logging helpers for pipeline stages."""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


@contextmanager
def log_stage(name: str) -> Iterator[dict[str, int]]:
    """Log the start, duration and outcome counts of a pipeline stage.

    The yielded dict collects counts (removed, merged, generated...) which
    are attached to the completion record as ``extra`` fields.

    Example:
        with log_stage("merge_ski_areas") as outcome:
            outcome["merged"] = engine.merge()
    """
    outcome: dict[str, int] = {}
    logger.info(f"Stage started: {name}")
    start = time.time()
    try:
        yield outcome
    except Exception:
        logger.exception(f"Stage failed: {name} after {time.time() - start:.2f}s")
        raise

    duration = time.time() - start
    counts = ", ".join(f"{key}={value}" for key, value in outcome.items())
    logger.info(
        f"Stage finished: {name} in {duration:.2f}s" + (f" ({counts})" if counts else ""),
        extra={"stage": name, "duration_s": round(duration, 3), "outcome": dict(outcome)},
    )
