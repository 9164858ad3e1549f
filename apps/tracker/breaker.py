"""
Circuit breaker for calls to the issue tracker.

    CLOSED --(threshold failures within window)--> OPEN
    OPEN --(cooldown elapsed)--> HALF_OPEN
    HALF_OPEN --(trial succeeds)--> CLOSED
    HALF_OPEN --(trial fails)--> OPEN

While OPEN, calls fail fast with CircuitOpenError without touching the
network. HALF_OPEN admits exactly one trial call; concurrent callers are
rejected until that trial finishes.

A breaker instance is shared by every caller in the process, so all state
changes happen under a lock.
"""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from typing import Any, TypeVar

from django.db import models

from apps.alerts.errors import TrackerUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(models.TextChoices):
    CLOSED = "CLOSED", "Closed"
    OPEN = "OPEN", "Open"
    HALF_OPEN = "HALF_OPEN", "Half-open"


class CircuitOpenError(TrackerUnavailable):
    """Raised instead of calling through while the circuit is open."""


class CircuitBreaker:
    """
    Thread-safe circuit breaker.

    Args:
        name: Name used in log messages.
        failure_threshold: Failures within ``window_seconds`` that open the circuit.
        window_seconds: Sliding window for counting failures.
        cooldown_seconds: Time spent OPEN before a trial call is allowed.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        name: str = "tracker",
        failure_threshold: int = 5,
        window_seconds: float = 60.0,
        cooldown_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures: deque[float] = deque()
        self._opened_at: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            self._refresh()
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._failures)

    def allow_request(self) -> bool:
        """Return True if a call may go through now (reserves the HALF_OPEN trial)."""
        with self._lock:
            self._refresh()
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.OPEN or self._trial_in_flight:
                return False
            self._trial_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._trial_in_flight = False
                self._failures.clear()
                self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            if self._state == CircuitState.HALF_OPEN:
                self._trial_in_flight = False
                self._open(now)
            elif self._state == CircuitState.CLOSED:
                self._failures.append(now)
                self._prune(now)
                if len(self._failures) >= self.failure_threshold:
                    self._open(now)

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Invoke ``func`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open (the call is not attempted).
            Exception: Whatever ``func`` raised; the failure is recorded first.
        """
        if not self.allow_request():
            raise CircuitOpenError(f"Circuit '{self.name}' is open; call not attempted")
        try:
            result = func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        with self._lock:
            self._failures.clear()
            self._opened_at = None
            self._trial_in_flight = False
            if self._state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)

    # Callers must hold self._lock for the helpers below.

    def _refresh(self) -> None:
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return
        if self._clock() - self._opened_at >= self.cooldown_seconds:
            self._trial_in_flight = False
            self._transition(CircuitState.HALF_OPEN)

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._failures and self._failures[0] <= cutoff:
            self._failures.popleft()

    def _open(self, now: float) -> None:
        self._opened_at = now
        self._failures.clear()
        self._transition(CircuitState.OPEN)

    def _transition(self, new_state: str) -> None:
        old_state, self._state = self._state, new_state
        level = logging.WARNING if new_state == CircuitState.OPEN else logging.INFO
        logger.log(
            level,
            "Circuit '%s' %s -> %s",
            self.name,
            old_state,
            new_state,
            extra={"circuit": self.name, "from_state": old_state, "to_state": new_state},
        )
