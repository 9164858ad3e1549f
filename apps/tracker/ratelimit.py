"""
Token-bucket rate limiter shared by all mutating tracker calls in a process.
"""

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class TokenBucket:
    """
    Thread-safe token bucket.

    The bucket starts full. Tokens refill continuously at
    ``refill_per_second`` up to ``capacity``.

    Args:
        capacity: Maximum number of tokens (burst size).
        refill_per_second: Tokens added per second.
        clock: Monotonic clock, injectable for tests.
        sleep: Sleep function, injectable for tests.
    """

    def __init__(
        self,
        capacity: int = 10,
        refill_per_second: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if refill_per_second <= 0:
            raise ValueError("refill_per_second must be positive")
        self.capacity = capacity
        self.refill_per_second = refill_per_second
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._tokens = float(capacity)
        self._updated_at = clock()

    @property
    def available(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def try_acquire(self) -> bool:
        """Take one token if available, without waiting."""
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return True
            return False

    def acquire(self, timeout: float | None = None) -> bool:
        """
        Take one token, waiting up to ``timeout`` seconds for a refill.

        Returns:
            True if a token was taken, False if none became available in time.
        """
        deadline = None if timeout is None else self._clock() + timeout
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return True
                wait = (1 - self._tokens) / self.refill_per_second

            if deadline is not None:
                remaining = deadline - self._clock()
                if wait > remaining:
                    logger.debug("Token bucket exhausted; next token in %.2fs", wait)
                    return False
            self._sleep(wait)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(now - self._updated_at, 0.0)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_per_second)
        self._updated_at = now
