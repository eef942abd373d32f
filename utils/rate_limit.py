"""
Request rate limiting for Lambda handlers.

Limiters are injected into the lambda_handler decorator rather than kept in
module state, so each deployment (or test) decides which backend to use.
"""

import math
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Tuple

from .errors import RateLimitExceeded


class RateLimiter(ABC):
    """Interface for per-client request limiters."""

    @abstractmethod
    def check(self, key: str) -> None:
        """
        Record one request for a client.

        Args:
            key: Client identifier (typically the source IP)

        Raises:
            RateLimitExceeded: If the client is over its allowance
        """


class FixedWindowRateLimiter(RateLimiter):
    """
    Fixed-window counter limiter held in process memory.

    Suitable for a single warm Lambda container or local development; a
    shared store is needed for limits that span containers.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: int = 900,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[int, float]] = {}

    def check(self, key: str) -> None:
        now = self._clock()

        with self._lock:
            # Drop expired windows
            expired = [k for k, (_, reset) in self._windows.items() if reset <= now]
            for k in expired:
                del self._windows[k]

            count, reset_at = self._windows.get(key, (0, now + self.window_seconds))

            if count >= self.max_requests:
                retry_after = math.ceil(reset_at - now)
                raise RateLimitExceeded(
                    f"Too many requests. Try again in {retry_after} seconds.",
                    {"retry_after_seconds": retry_after},
                )

            self._windows[key] = (count + 1, reset_at)
