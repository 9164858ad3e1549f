"""
Webhook views for receiving alerts from external sources.
"""

import hashlib
import hmac
import json
import logging
from typing import Any

from django.conf import settings
from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.alerts.choices import Outcome
from apps.alerts.drivers import DRIVER_REGISTRY
from apps.alerts.errors import AlertProcessingError
from apps.alerts.services import AlertOrchestrator
from apps.tracker.secrets import get_secret_provider

logger = logging.getLogger(__name__)

OUTCOME_STATUS_CODES = {
    Outcome.PROCESSED: 200,
    Outcome.VALIDATION_FAILED: 422,
    Outcome.TRANSIENT_FAILURE: 503,
}


def _digest(value: str) -> bytes:
    return hashlib.sha256(value.encode("utf-8")).digest()


def tokens_match(provided: str, expected: str) -> bool:
    """Constant-time comparison of two tokens of any length."""
    return hmac.compare_digest(_digest(provided), _digest(expected))


def load_webhook_tokens() -> dict[str, str]:
    """
    Return the configured ``{header name: token}`` map.

    The secret holds a JSON object. Missing or malformed secrets yield an
    empty map, which rejects every request.
    """
    key = getattr(settings, "ALERTS_WEBHOOK_SECRET", "ALERTS_WEBHOOK_TOKENS")
    try:
        raw = get_secret_provider().get(key)
    except AlertProcessingError as e:
        logger.error(f"Webhook tokens unavailable: {e}")
        return {}
    try:
        tokens = json.loads(raw)
    except json.JSONDecodeError:
        logger.error("Webhook token secret is not valid JSON")
        return {}
    if not isinstance(tokens, dict):
        logger.error("Webhook token secret must be a JSON object")
        return {}
    return {str(header): str(token) for header, token in tokens.items() if token}


def is_authorized(request) -> bool:
    """True if any configured header carries its expected token."""
    authorized = False
    for header, expected in load_webhook_tokens().items():
        provided = request.headers.get(header)
        # Compare every configured pair so timing does not reveal which header matched.
        if provided is not None and tokens_match(provided, expected):
            authorized = True
    return authorized


@method_decorator(csrf_exempt, name="dispatch")
class AlertWebhookView(View):
    """
    Webhook endpoint for receiving alerts.

    POST /alerts/webhook/
    POST /alerts/webhook/<source>/

    The source is auto-detected from the payload unless given in the URL.
    With ALERTS_ASYNC_INGEST the message is queued for the Celery worker
    (202); otherwise it is processed inline and the HTTP status reflects
    the outcome (200 processed, 422 invalid payload, 503 retry later).
    """

    def post(self, request, source=None):
        """Handle incoming alert webhook."""
        if not is_authorized(request):
            logger.warning("Rejected unauthenticated webhook request")
            return JsonResponse({"status": "error", "message": "Unauthorized"}, status=401)

        if source is not None and source.lower() not in DRIVER_REGISTRY:
            return JsonResponse(
                {"status": "error", "message": f"Unknown alert source: {source}"},
                status=404,
            )

        try:
            payload = json.loads(request.body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Invalid JSON payload: {e}")
            return JsonResponse(
                {"status": "error", "message": "Invalid JSON payload"},
                status=400,
            )

        metadata: dict[str, Any] = {
            "provider": source,
            "message_id": request.headers.get("X-Request-Id", ""),
            "topic": "webhook",
        }

        if getattr(settings, "ALERTS_ASYNC_INGEST", True):
            try:
                from apps.alerts.tasks import process_alert_message

                async_res = process_alert_message.delay(payload, metadata)
                return JsonResponse({"status": "queued", "task_id": async_res.id}, status=202)
            except Exception as enqueue_err:
                # Broker unreachable: process inline rather than dropping the alert.
                logger.warning(
                    "Alert enqueue failed; falling back to sync processing: %s", enqueue_err
                )

        result = AlertOrchestrator().process_message(payload, metadata)
        status = "success" if result.ok else "error"
        return JsonResponse(
            {"status": status, **result.to_dict()},
            status=OUTCOME_STATUS_CODES[result.outcome],
        )

    def get(self, request, source=None):
        """Health check endpoint."""
        return JsonResponse(
            {
                "status": "ok",
                "message": "Alert webhook endpoint is ready",
                "source": source or "auto-detect",
            }
        )
