"""Celery application for background alert ingestion.

Workers run apps.alerts.tasks.process_alert_message, one task per inbound
alert message:
- celery -A config worker -l info

Broker and result backend come from the CELERY_* Django settings.
"""

from __future__ import annotations

import os

from celery import Celery

from config.env import load_env

load_env()

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("alert-lifecycle")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
