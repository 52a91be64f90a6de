import time
from threading import Lock
from typing import Callable, Dict, Tuple

from .errors import RateLimited


class RateLimiter:
    """
    Simple in-memory rate limiter using a fixed window algorithm.
    Tracks requests per owner within a one-minute window.
    """

    WINDOW_SECONDS = 60
    MAX_TRACKED = 10_000

    def __init__(self, requests_per_minute: int = 60, clock: Callable[[], float] = time.monotonic):
        self.rpm = requests_per_minute
        self.clock = clock
        # identifier -> (count, window_start_time)
        self.requests: Dict[str, Tuple[int, float]] = {}
        self._lock = Lock()

    def is_allowed(self, identifier: str) -> bool:
        now = self.clock()
        with self._lock:
            count, start_time = self.requests.get(identifier, (0, now))

            if now - start_time >= self.WINDOW_SECONDS:
                self.requests[identifier] = (1, now)
                return True

            if count >= self.rpm:
                return False

            self.requests[identifier] = (count + 1, start_time)
            return True

    def check(self, identifier: str) -> None:
        """Raise RateLimited when ``identifier`` has used up its window."""
        if len(self.requests) > self.MAX_TRACKED:
            self.cleanup()
        if not self.is_allowed(identifier):
            raise RateLimited()

    def cleanup(self) -> None:
        """Drop expired windows."""
        now = self.clock()
        with self._lock:
            expired = [k for k, (_, start) in self.requests.items() if now - start >= self.WINDOW_SECONDS]
            for k in expired:
                del self.requests[k]
