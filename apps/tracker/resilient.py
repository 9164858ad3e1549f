"""
Issue-tracker client guarded by the circuit breaker and the rate limiter.

Every call goes through the breaker. Mutating calls (create, close,
comment, ensure labels) also take a token from the bucket first. Nothing
here raises to the caller: an open circuit, a throttled call or a failed
request all return the fallback value (None / False) and are logged, and
the orchestrator records the mutation as not synced.
"""

import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

from django.conf import settings

from apps.alerts.errors import AlertProcessingError
from apps.tracker.breaker import CircuitBreaker, CircuitOpenError
from apps.tracker.client import DEFAULT_API_URL, GitHubIssueClient
from apps.tracker.ratelimit import TokenBucket
from apps.tracker.secrets import get_secret_provider

logger = logging.getLogger(__name__)

T = TypeVar("T")


class IssueTracker(Protocol):
    def create_issue(self, title: str, body: str, labels: list[str]) -> int: ...

    def close_issue(self, number: int) -> bool: ...

    def comment_on_issue(self, number: int, body: str) -> bool: ...

    def ensure_labels_exist(self, labels: list[str]) -> bool: ...

    def get_issue_state(self, number: int) -> str: ...


class ResilientTrackerClient:
    """Wraps an IssueTracker with a CircuitBreaker and a TokenBucket."""

    def __init__(
        self,
        client: IssueTracker,
        breaker: CircuitBreaker,
        limiter: TokenBucket,
        max_wait_seconds: float = 2.0,
    ):
        self.client = client
        self.breaker = breaker
        self.limiter = limiter
        self.max_wait_seconds = max_wait_seconds
        self._known_labels: set[str] = set()
        self._labels_lock = threading.Lock()

    def create_issue(self, title: str, body: str, labels: list[str]) -> int | None:
        return self._mutate("create_issue", None, self.client.create_issue, title, body, labels)

    def close_issue(self, number: int) -> bool:
        return self._mutate("close_issue", False, self.client.close_issue, number)

    def comment_on_issue(self, number: int, body: str) -> bool:
        return self._mutate("comment_on_issue", False, self.client.comment_on_issue, number, body)

    def ensure_labels_exist(self, labels: list[str]) -> bool:
        """Ensure labels exist, skipping ones already ensured by this process."""
        with self._labels_lock:
            missing = [label for label in labels if label not in self._known_labels]
        if not missing:
            return True
        ok = self._mutate("ensure_labels_exist", False, self.client.ensure_labels_exist, missing)
        if ok:
            with self._labels_lock:
                self._known_labels.update(missing)
        return ok

    def get_issue_state(self, number: int) -> str | None:
        """Read-only lookup; goes through the breaker but is not rate-limited."""
        return self._guarded("get_issue_state", None, self.client.get_issue_state, number)

    def _mutate(self, operation: str, fallback: T, func: Callable[..., T], *args: Any) -> T:
        if not self.limiter.acquire(timeout=self.max_wait_seconds):
            logger.warning(
                f"Tracker {operation} throttled; fell back to manual processing",
                extra={"operation": operation},
            )
            return fallback
        return self._guarded(operation, fallback, func, *args)

    def _guarded(self, operation: str, fallback: T, func: Callable[..., T], *args: Any) -> T:
        try:
            return self.breaker.call(func, *args)
        except CircuitOpenError:
            logger.warning(
                f"Tracker {operation} skipped, circuit open; fell back to manual processing",
                extra={"operation": operation},
            )
        except AlertProcessingError as e:
            logger.error(f"Tracker {operation} failed: {e}", extra={"operation": operation})
        except Exception:
            logger.exception(
                f"Unexpected error in tracker {operation}; fell back to manual processing",
                extra={"operation": operation},
            )
        return fallback


_tracker: ResilientTrackerClient | None = None
_tracker_lock = threading.Lock()


def build_tracker() -> ResilientTrackerClient:
    """Build a tracker client from settings."""
    client = GitHubIssueClient(
        repo=getattr(settings, "ALERTS_TRACKER_REPO", ""),
        secrets=get_secret_provider(),
        token_key=getattr(settings, "ALERTS_TRACKER_TOKEN_SECRET", "ALERTS_TRACKER_TOKEN"),
        api_url=getattr(settings, "ALERTS_TRACKER_API_URL", DEFAULT_API_URL),
        timeout=getattr(settings, "ALERTS_TRACKER_TIMEOUT", 10),
    )
    breaker = CircuitBreaker(
        name="github",
        failure_threshold=getattr(settings, "ALERTS_BREAKER_FAILURE_THRESHOLD", 5),
        window_seconds=getattr(settings, "ALERTS_BREAKER_WINDOW_SECONDS", 60),
        cooldown_seconds=getattr(settings, "ALERTS_BREAKER_COOLDOWN_SECONDS", 30),
    )
    limiter = TokenBucket(
        capacity=getattr(settings, "ALERTS_RATE_LIMIT_CAPACITY", 10),
        refill_per_second=getattr(settings, "ALERTS_RATE_LIMIT_REFILL_PER_SECOND", 1.0),
    )
    return ResilientTrackerClient(
        client,
        breaker,
        limiter,
        max_wait_seconds=getattr(settings, "ALERTS_RATE_LIMIT_MAX_WAIT_SECONDS", 2.0),
    )


def get_tracker() -> ResilientTrackerClient | None:
    """
    Return the process-wide tracker client, or None when the tracker is disabled.

    The breaker and the token bucket live on this instance, so every
    orchestrator in the process shares them.
    """
    global _tracker
    if not getattr(settings, "ALERTS_TRACKER_ENABLED", False):
        return None
    with _tracker_lock:
        if _tracker is None:
            _tracker = build_tracker()
        return _tracker


def reset_tracker() -> None:
    global _tracker
    with _tracker_lock:
        _tracker = None
