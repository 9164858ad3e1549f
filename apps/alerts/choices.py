"""
Enumerations shared by drivers, the lifecycle engine and the models.

Kept free of model definitions so drivers can import them without an
initialised app registry.
"""

from django.db import models


class ProviderState(models.TextChoices):
    """Provider-reported alert state."""

    FIRING = "FIRING", "Firing"
    RESOLVED = "RESOLVED", "Resolved"


class Priority(models.TextChoices):
    """Alert priority, P0 being the most urgent."""

    P0 = "P0", "P0"
    P1 = "P1", "P1"
    P2 = "P2", "P2"
    P3 = "P3", "P3"


class StateStatus(models.TextChoices):
    """Lifecycle status of a tracked alert."""

    OPEN = "OPEN", "Open"
    CLOSED = "CLOSED", "Closed"


class Action(models.TextChoices):
    """Action decided for one incoming event."""

    CREATE = "CREATE", "Create issue"
    COMMENT = "COMMENT", "Comment on issue"
    CLOSE = "CLOSE", "Close issue"
    SKIP = "SKIP", "Skip (already closed)"
    SKIP_STALE = "SKIP_STALE", "Skip (out of order)"
    SKIP_MANUAL_CLOSE = "SKIP_MANUAL_CLOSE", "Skip (manually closed)"


class Outcome(models.TextChoices):
    """Per-message result reported to the transport."""

    PROCESSED = "processed", "Processed"
    VALIDATION_FAILED = "validation_failed", "Validation failed"
    TRANSIENT_FAILURE = "transient_failure", "Transient failure"
