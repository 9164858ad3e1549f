"""
Error taxonomy for alert processing.

- ValidationError: malformed or missing input. Permanent, never retried.
- TransientError: timeouts, 5xx, backpressure. Retryable by the caller.
- ConflictError: a conditional state write lost a race.
- TrackerError: a single issue-tracker request failed.
- TrackerUnavailable: the circuit is open or no rate-limit token was available.
"""

from __future__ import annotations

from typing import Any

# Debug context is embedded in operator-facing messages; keep it bounded.
MAX_CONTEXT_LENGTH = 500


class AlertProcessingError(Exception):
    """Base class for all alert processing errors."""

    retryable: bool = False


class ValidationError(AlertProcessingError):
    """Raised when a payload cannot be turned into a valid AlertEvent."""

    retryable = False

    def __init__(
        self,
        message: str,
        field: str | None = None,
        errors: list[str] | tuple[str, ...] = (),
        context: str = "",
    ):
        self.message = message
        self.field = field
        self.errors = list(errors)
        self.context = context[:MAX_CONTEXT_LENGTH]
        super().__init__(self._format())

    def _format(self) -> str:
        text = self.message
        if self.errors:
            text += ":\n" + "\n".join(f"- {e}" for e in self.errors)
        if self.context:
            text += f" {self.context}"
        return text

    def with_context(self, context: str) -> "ValidationError":
        """Return a copy of this error carrying the given debug context."""
        return ValidationError(self.message, field=self.field, errors=self.errors, context=context)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "field": self.field,
            "errors": list(self.errors),
            "context": self.context,
        }


class TransientError(AlertProcessingError):
    """Raised for failures that may succeed on redelivery."""

    retryable = True


class ConflictError(AlertProcessingError):
    """Raised when a conditional state write is rejected."""

    retryable = True

    def __init__(self, fingerprint: str, expected_version: int | None):
        self.fingerprint = fingerprint
        self.expected_version = expected_version
        super().__init__(
            f"Conditional write rejected for {fingerprint} (expected version {expected_version})"
        )


class TrackerError(AlertProcessingError):
    """Raised when an issue-tracker request fails."""

    retryable = True

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class TrackerUnavailable(AlertProcessingError):
    """Raised when the tracker is short-circuited (open breaker or throttled)."""

    retryable = True
