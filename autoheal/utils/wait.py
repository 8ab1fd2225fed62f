from __future__ import annotations

import time
from typing import Callable, TypeVar

T = TypeVar("T")


def backoff_delays(attempts: int, factor: float, min_delay: float, max_delay: float) -> list[float]:
    """Delays slept between consecutive attempts, capped at ``max_delay``."""

    return [min(min_delay * factor**index, max_delay) for index in range(max(attempts - 1, 0))]


def retry_with_backoff(
    operation: Callable[[], T],
    retry_on: type[BaseException] | tuple[type[BaseException], ...],
    attempts: int = 5,
    factor: float = 2.0,
    min_delay: float = 0.1,
    max_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Calls ``operation`` until it succeeds or ``attempts`` run out; the last error is raised."""

    delays = backoff_delays(attempts, factor, min_delay, max_delay)
    for delay in delays:
        try:
            return operation()
        except retry_on:
            sleep(delay)
    return operation()
