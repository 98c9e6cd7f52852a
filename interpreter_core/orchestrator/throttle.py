"""
Rate limiting for high-frequency outbound updates.
"""

import time
from typing import Callable, Optional


class Throttle:
    """
    Lets at most one call through per ``interval`` seconds.

    Calls inside the interval are rejected, not deferred.
    """

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        if interval < 0:
            raise ValueError("interval must be non-negative")
        self.interval = interval
        self._clock = clock
        self._last: Optional[float] = None
        self.suppressed = 0

    def allow(self) -> bool:
        now = self._clock()
        if self._last is None or now - self._last >= self.interval:
            self._last = now
            return True
        self.suppressed += 1
        return False

    def reset(self) -> None:
        self._last = None
        self.suppressed = 0
