"""
Persisted alert lifecycle state and its audit trail.
"""

from django.db import models

from apps.alerts.choices import Action, Priority, ProviderState, StateStatus


class AlertStateRecord(models.Model):
    """
    Lifecycle state of one logical alert condition, keyed by fingerprint.

    Rows are written with conditional updates on ``version`` so concurrent
    workers handling the same fingerprint cannot overwrite each other.
    """

    fingerprint = models.CharField(
        max_length=64,
        unique=True,
        help_text="SHA-256 fingerprint of the alert condition.",
    )
    status = models.CharField(
        max_length=10,
        choices=StateStatus.choices,
        default=StateStatus.OPEN,
        db_index=True,
    )
    source = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Source that produced the alert (e.g., 'grafana', 'cloudwatch').",
    )
    title = models.CharField(max_length=500)
    priority = models.CharField(
        max_length=2,
        choices=Priority.choices,
    )
    teams = models.JSONField(
        default=list,
        blank=True,
        help_text="Owning teams, primary team first.",
    )

    # Tracker linkage
    issue_ref = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Issue number in the tracker (null until one was created).",
    )
    tracker_synced = models.BooleanField(
        default=False,
        help_text="False when the last tracker call was skipped (tracker degraded).",
    )
    manually_closed = models.BooleanField(default=False)
    manually_closed_at = models.DateTimeField(null=True, blank=True)

    # Provider timeline
    last_provider_state = models.CharField(
        max_length=10,
        choices=ProviderState.choices,
    )
    last_provider_state_at = models.DateTimeField(
        help_text="Provider timestamp of the newest applied event.",
    )
    first_seen_at = models.DateTimeField()
    last_seen_at = models.DateTimeField()

    last_action = models.CharField(
        max_length=20,
        choices=Action.choices,
        blank=True,
        default="",
    )
    last_event_id = models.CharField(max_length=255, blank=True, default="")

    version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at"]
        indexes = [
            models.Index(fields=["status", "priority"], name="alerts_aler_status_6b1f0e_idx"),
            models.Index(fields=["-last_seen_at"], name="alerts_aler_last_se_2c9a41_idx"),
        ]

    def __str__(self):
        return f"[{self.priority}] {self.title} ({self.status})"

    @property
    def is_open(self) -> bool:
        return self.status == StateStatus.OPEN


class AlertHistory(models.Model):
    """
    Audit trail of processed alert events, one row per applied decision.
    """

    fingerprint = models.CharField(max_length=64, db_index=True)
    action = models.CharField(max_length=20, choices=Action.choices)
    provider_state = models.CharField(max_length=10, choices=ProviderState.choices)
    old_status = models.CharField(max_length=10, blank=True, default="")
    new_status = models.CharField(max_length=10, blank=True, default="")
    issue_ref = models.PositiveIntegerField(null=True, blank=True)
    event_id = models.CharField(max_length=255, blank=True, default="")
    occurred_at = models.DateTimeField()
    details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Envelope and decision context.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name_plural = "Alert histories"

    def __str__(self):
        return f"{self.fingerprint[:12]}: {self.action}"
