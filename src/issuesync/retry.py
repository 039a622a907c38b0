"""Exponential backoff around remote calls.

Every call to GitHub or JIRA goes through :func:`retry`. The number of
attempts is unbounded; only the elapsed wall-clock time is limited.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import TypeVar

T = TypeVar("T")

INITIAL_INTERVAL = 0.5
MULTIPLIER = 1.5
RANDOMIZATION_FACTOR = 0.5
MAX_INTERVAL = 60.0


def next_interval(current: float, rng: random.Random | None = None) -> float:
    """Return a randomized wait around ``current`` seconds."""
    rng = rng or random
    delta = RANDOMIZATION_FACTOR * current
    return rng.uniform(current - delta, current + delta)


def retry(
    operation: Callable[[], T],
    timeout: float,
    log: logging.Logger | None = None,
    *,
    sleep: Callable[[float], None] | None = None,
    clock: Callable[[], float] | None = None,
) -> T:
    """Call ``operation`` until it succeeds or ``timeout`` seconds have elapsed.

    The first attempt is made immediately. After each failure the wait grows
    exponentially. When the next wait would take the total elapsed time past
    ``timeout``, the last exception is re-raised.
    """
    sleep = sleep or time.sleep
    clock = clock or time.monotonic
    start = clock()
    interval = INITIAL_INTERVAL
    attempt = 0

    while True:
        attempt += 1
        try:
            return operation()
        except Exception as exc:
            wait = next_interval(interval)
            elapsed = clock() - start
            if elapsed + wait > timeout:
                if log is not None:
                    log.debug("Giving up after %d attempt(s) and %.1fs: %s", attempt, elapsed, exc)
                raise
            if log is not None:
                log.debug("Attempt %d failed (%s); retrying in %.2fs", attempt, exc, wait)
            sleep(wait)
            interval = min(interval * MULTIPLIER, MAX_INTERVAL)
