"""
Fixed-delay backoff used between commit attempts.

The retry loop in the orchestrator stays a plain ``for`` loop and calls
:meth:`Backoff.wait` between attempts. Tests pass their own ``sleep`` to
observe the delays without waiting.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


class Backoff:
    """Sleep a fixed ``delay`` seconds before each retry.

    Parameters
    ----------
    delay : float
        Seconds to wait between attempts. Negative values are treated as 0.
    sleep : Callable[[float], None], optional
        Sleep function, ``time.sleep`` by default.
    """

    def __init__(self, delay: float = 1.0, sleep: Callable[[float], None] = time.sleep) -> None:
        self.delay = max(0.0, float(delay))
        self._sleep = sleep
        self.waits: List[float] = []

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return self.delay

    def wait(self, attempt: int) -> None:
        delay = self.delay_for(attempt)
        logger.debug("Waiting %.2fs before attempt %d", delay, attempt + 1)
        self.waits.append(delay)
        if delay > 0:
            self._sleep(delay)
