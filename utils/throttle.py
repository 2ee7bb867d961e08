"""
Fixed-interval gate used to space out Gemini calls.
"""

import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Throttle:
    """
    Enforce a minimum gap between consecutive calls to `wait()`.

    The first call never blocks; later calls sleep for whatever is left of
    `interval` since the previous one.
    """

    def __init__(
        self,
        interval: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval = max(0.0, interval)
        self._sleep = sleep
        self._clock = clock
        self._last: Optional[float] = None

    def wait(self) -> float:
        """Block until the gate opens. Returns the number of seconds slept."""
        slept = 0.0
        if self._last is not None:
            elapsed = self._clock() - self._last
            if elapsed < self.interval:
                slept = self.interval - elapsed
                logger.debug("[Rate limit] Waiting %.1fs...", slept)
                self._sleep(slept)
        self._last = self._clock()
        return slept

    def reset(self):
        self._last = None


class NoThrottle(Throttle):
    """A gate that never waits."""

    def __init__(self):
        super().__init__(0.0)

    def wait(self) -> float:
        return 0.0
