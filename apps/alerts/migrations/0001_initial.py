from django.db import migrations, models

STATUS_CHOICES = [("OPEN", "Open"), ("CLOSED", "Closed")]
PRIORITY_CHOICES = [("P0", "P0"), ("P1", "P1"), ("P2", "P2"), ("P3", "P3")]
PROVIDER_STATE_CHOICES = [("FIRING", "Firing"), ("RESOLVED", "Resolved")]
ACTION_CHOICES = [
    ("CREATE", "Create issue"),
    ("COMMENT", "Comment on issue"),
    ("CLOSE", "Close issue"),
    ("SKIP", "Skip (already closed)"),
    ("SKIP_STALE", "Skip (out of order)"),
    ("SKIP_MANUAL_CLOSE", "Skip (manually closed)"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="AlertStateRecord",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "fingerprint",
                    models.CharField(
                        help_text="SHA-256 fingerprint of the alert condition.",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=STATUS_CHOICES, db_index=True, default="OPEN", max_length=10
                    ),
                ),
                (
                    "source",
                    models.CharField(
                        db_index=True,
                        help_text="Source that produced the alert (e.g., 'grafana', 'cloudwatch').",
                        max_length=50,
                    ),
                ),
                ("title", models.CharField(max_length=500)),
                ("priority", models.CharField(choices=PRIORITY_CHOICES, max_length=2)),
                (
                    "teams",
                    models.JSONField(
                        blank=True, default=list, help_text="Owning teams, primary team first."
                    ),
                ),
                (
                    "issue_ref",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Issue number in the tracker (null until one was created).",
                        null=True,
                    ),
                ),
                (
                    "tracker_synced",
                    models.BooleanField(
                        default=False,
                        help_text="False when the last tracker call was skipped (tracker degraded).",
                    ),
                ),
                ("manually_closed", models.BooleanField(default=False)),
                ("manually_closed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "last_provider_state",
                    models.CharField(choices=PROVIDER_STATE_CHOICES, max_length=10),
                ),
                (
                    "last_provider_state_at",
                    models.DateTimeField(help_text="Provider timestamp of the newest applied event."),
                ),
                ("first_seen_at", models.DateTimeField()),
                ("last_seen_at", models.DateTimeField()),
                (
                    "last_action",
                    models.CharField(
                        blank=True, choices=ACTION_CHOICES, default="", max_length=20
                    ),
                ),
                ("last_event_id", models.CharField(blank=True, default="", max_length=255)),
                ("version", models.PositiveIntegerField(default=1)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-updated_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "priority"], name="alerts_aler_status_6b1f0e_idx"
                    ),
                    models.Index(fields=["-last_seen_at"], name="alerts_aler_last_se_2c9a41_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AlertHistory",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("fingerprint", models.CharField(db_index=True, max_length=64)),
                ("action", models.CharField(choices=ACTION_CHOICES, max_length=20)),
                (
                    "provider_state",
                    models.CharField(choices=PROVIDER_STATE_CHOICES, max_length=10),
                ),
                ("old_status", models.CharField(blank=True, default="", max_length=10)),
                ("new_status", models.CharField(blank=True, default="", max_length=10)),
                ("issue_ref", models.PositiveIntegerField(blank=True, null=True)),
                ("event_id", models.CharField(blank=True, default="", max_length=255)),
                ("occurred_at", models.DateTimeField()),
                (
                    "details",
                    models.JSONField(
                        blank=True, default=dict, help_text="Envelope and decision context."
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "verbose_name_plural": "Alert histories",
                "ordering": ["-created_at"],
            },
        ),
    ]
