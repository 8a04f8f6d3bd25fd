"""
Resilience Patterns
Client-side rate limiting for Kubernetes API calls

Patches are never retried: a failed resize is terminal for that pod in the
current pass, and re-running the tool is the retry mechanism.
"""

import logging
import time
from collections import deque
from threading import Lock
from typing import Callable, Deque

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding-window rate limiter shared by all worker threads.

    A max_calls of 0 disables limiting.
    """

    def __init__(
        self,
        max_calls: int,
        time_window: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_calls = max_calls
        self.time_window = time_window
        self._clock = clock
        self._sleep = sleep
        self._calls: Deque[float] = deque()
        self._lock = Lock()

    def acquire(self):
        """Block until a call slot is available"""
        if self.max_calls <= 0:
            return

        with self._lock:
            now = self._clock()
            self._expire(now)

            if len(self._calls) >= self.max_calls:
                wait_for = self.time_window - (now - self._calls[0])
                if wait_for > 0:
                    logger.debug(f"K8s API rate limit reached, sleeping {wait_for:.2f}s")
                    self._sleep(wait_for)
                now = self._clock()
                self._expire(now)

            self._calls.append(now)

    def _expire(self, now: float):
        while self._calls and now - self._calls[0] >= self.time_window:
            self._calls.popleft()

    @property
    def in_window(self) -> int:
        with self._lock:
            return len(self._calls)

