"""Celery tasks for alert ingestion.

Each message is processed by a single task. The orchestrator reports every
failure as a ProcessingResult; the task maps its outcome onto Celery semantics:

- processed          -> task succeeds
- validation_failed  -> task succeeds with the failure recorded (never retried)
- transient_failure  -> task retried with exponential backoff and jitter
"""

from __future__ import annotations

import logging
import random
from typing import Any

from celery import shared_task

from apps.alerts.errors import TransientError

logger = logging.getLogger(__name__)

MAX_RETRIES = 5
MAX_BACKOFF_SECONDS = 300


def retry_countdown(retries: int) -> float:
    """Exponential backoff with up to one second of jitter."""
    return min(2**retries, MAX_BACKOFF_SECONDS) + random.uniform(0, 1)


@shared_task(bind=True, max_retries=MAX_RETRIES)
def process_alert_message(
    self, body: Any, metadata: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Process one alert message; retry only when the failure is transient."""
    from apps.alerts.services import AlertOrchestrator

    metadata = dict(metadata or {})
    metadata.setdefault("message_id", self.request.id or "")
    metadata["receive_count"] = (self.request.retries or 0) + 1

    result = AlertOrchestrator().process_message(body, metadata)

    if result.retryable:
        logger.warning(
            f"Alert message {metadata['message_id']} failed transiently; scheduling retry",
            extra={"message_id": metadata["message_id"], "reason": result.reason},
        )
        raise self.retry(
            exc=TransientError(result.reason),
            countdown=retry_countdown(self.request.retries or 0),
        )

    return result.to_dict()
