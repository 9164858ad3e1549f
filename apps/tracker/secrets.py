"""
Secret lookup with a TTL cache.

The tracker token and the webhook token map are read through a
SecretProvider. Production code uses a process-scoped CachedSecretProvider
wrapping EnvSecretProvider; tests inject their own provider and clock.
"""

import logging
import os
import threading
import time
from collections.abc import Callable
from typing import Protocol

from django.conf import settings

from apps.alerts.errors import TransientError

logger = logging.getLogger(__name__)


class SecretProvider(Protocol):
    def get(self, key: str) -> str: ...


class EnvSecretProvider:
    """Reads secrets from Django settings, then the process environment."""

    def get(self, key: str) -> str:
        value = getattr(settings, key, None) or os.environ.get(key)
        if not value:
            raise TransientError(f"Secret not available: {key}")
        return str(value)


class CachedSecretProvider:
    """
    Caches another provider's values for ``ttl_seconds``.

    Expiry is checked on every read. A failed fetch clears the whole cache so
    a rotated secret is picked up on the next attempt.
    """

    def __init__(
        self,
        inner: SecretProvider,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.inner = inner
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: dict[str, tuple[str, float]] = {}

    def get(self, key: str) -> str:
        now = self._clock()
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None and now < entry[1]:
                return entry[0]

        try:
            value = self.inner.get(key)
        except Exception:
            logger.warning("Secret fetch failed for %s; clearing cache", key)
            self.clear()
            raise

        with self._lock:
            self._cache[key] = (value, now + self.ttl_seconds)
        return value

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


_default_provider: CachedSecretProvider | None = None
_default_lock = threading.Lock()


def get_secret_provider() -> CachedSecretProvider:
    """Return the process-wide cached secret provider."""
    global _default_provider
    with _default_lock:
        if _default_provider is None:
            ttl = getattr(settings, "ALERTS_SECRET_CACHE_TTL_SECONDS", 300)
            _default_provider = CachedSecretProvider(EnvSecretProvider(), ttl_seconds=ttl)
        return _default_provider


def reset_secret_provider() -> None:
    global _default_provider
    with _default_lock:
        _default_provider = None
