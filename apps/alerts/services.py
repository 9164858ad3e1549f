"""
Alert orchestration services.

This module contains the single entry point used by every transport
(Celery task, webhook view, management command) to process one inbound
alert message:

    raw payload -> driver -> AlertEvent -> fingerprint
        -> prior state (+ manual-close check) -> decision
        -> tracker mutation -> conditional state write

Exceptions stay inside the orchestrator; callers get a ProcessingResult and
branch on its ``outcome``.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from django.db import DatabaseError
from django.utils import timezone

from apps.alerts.choices import Action, Outcome
from apps.alerts.drivers import AlertEvent, Envelope, detect_source, get_driver
from apps.alerts.errors import ConflictError, TransientError, ValidationError
from apps.alerts.fingerprint import generate_fingerprint
from apps.alerts.lifecycle import AlertState, Decision, decide
from apps.alerts.store import DjangoStateStore, StateStore
from apps.tracker.resilient import ResilientTrackerClient, get_tracker
from apps.tracker.templating import (
    issue_labels,
    issue_title,
    render_close_comment,
    render_comment,
    render_issue_body,
)

logger = logging.getLogger(__name__)

_DEFAULT = object()


@dataclass
class ProcessingResult:
    """Result of processing one inbound message."""

    outcome: str  # Outcome
    action: str | None = None
    fingerprint: str | None = None
    source: str | None = None
    issue_ref: int | None = None
    tracker_synced: bool = False
    reason: str = ""
    error_field: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.PROCESSED

    @property
    def retryable(self) -> bool:
        """True when the transport should redeliver the message."""
        return self.outcome == Outcome.TRANSIENT_FAILURE

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": str(self.outcome),
            "action": str(self.action) if self.action else None,
            "fingerprint": self.fingerprint,
            "source": self.source,
            "issue_ref": self.issue_ref,
            "tracker_synced": self.tracker_synced,
            "reason": self.reason,
            "field": self.error_field,
            "errors": list(self.errors),
        }


class AlertOrchestrator:
    """
    Orchestrates the processing of incoming alert messages.

    Usage:
        orchestrator = AlertOrchestrator()
        result = orchestrator.process_message(body, {"message_id": "abc"})
        if result.retryable:
            ...  # let the transport redeliver

    Args:
        store: State store adapter. Defaults to the Django ORM store.
        tracker: Resilient tracker client, or None to skip tracker calls.
            Defaults to the process-wide client (None when disabled).
        clock: Wall clock used for manual-close bookkeeping.
        max_conflict_retries: Reload-and-recompute attempts after a
            rejected conditional write.
    """

    def __init__(
        self,
        store: StateStore | None = None,
        tracker: Any = _DEFAULT,
        clock: Callable[[], datetime] = timezone.now,
        max_conflict_retries: int = 1,
    ):
        self.store = store or DjangoStateStore()
        self.tracker: ResilientTrackerClient | None = (
            get_tracker() if tracker is _DEFAULT else tracker
        )
        self.clock = clock
        self.max_conflict_retries = max_conflict_retries

    def process_message(
        self, raw: Any, metadata: dict[str, Any] | None = None
    ) -> ProcessingResult:
        """
        Process one inbound message.

        Args:
            raw: Payload as bytes, str (JSON) or an already decoded value.
            metadata: Transport metadata: ``provider`` (source hint),
                ``message_id``, ``receive_count``, ``topic``, ``region``.

        Returns:
            ProcessingResult; ``retryable`` tells the transport whether to redeliver.
        """
        metadata = metadata or {}
        envelope = Envelope.from_metadata(metadata)
        log_extra = {
            "message_id": envelope.event_id,
            "delivery_attempt": envelope.delivery_attempt,
        }

        source = None
        try:
            payload = self._decode(raw)
            source = detect_source(payload, metadata.get("provider"))
            event = get_driver(source).transform(payload, envelope)
            fingerprint = generate_fingerprint(event)
        except ValidationError as e:
            logger.warning(f"Alert validation failed: {e}", extra={**log_extra, "source": source})
            return ProcessingResult(
                outcome=Outcome.VALIDATION_FAILED,
                source=source,
                reason=e.message,
                error_field=e.field,
                errors=list(e.errors),
            )

        log_extra.update({"fingerprint": fingerprint, "source": event.source})
        try:
            return self.process_event(event, fingerprint, envelope)
        except ConflictError as e:
            logger.warning(f"State write still conflicting after retry: {e}", extra=log_extra)
            reason = str(e)
        except TransientError as e:
            logger.warning(f"Transient failure processing alert: {e}", extra=log_extra)
            reason = str(e)
        except DatabaseError as e:
            logger.exception("State store error processing alert", extra=log_extra)
            reason = f"State store error: {e}"
        except Exception as e:
            logger.exception("Unexpected error processing alert", extra=log_extra)
            reason = f"Unexpected error: {e!r}"

        return ProcessingResult(
            outcome=Outcome.TRANSIENT_FAILURE,
            fingerprint=fingerprint,
            source=event.source,
            reason=reason,
        )

    def process_event(
        self, event: AlertEvent, fingerprint: str | None = None, envelope: Envelope | None = None
    ) -> ProcessingResult:
        """
        Decide and apply the lifecycle action for an already normalized event.

        Raises:
            ConflictError: If the conditional write is still rejected after
                ``max_conflict_retries`` reloads.
        """
        fingerprint = fingerprint or generate_fingerprint(event)
        envelope = envelope or Envelope()

        attempt = 0
        while True:
            try:
                return self._process_once(event, fingerprint, envelope)
            except ConflictError:
                if attempt >= self.max_conflict_retries:
                    raise
                attempt += 1
                logger.info(
                    "Conditional write rejected; reloading state and recomputing",
                    extra={"fingerprint": fingerprint, "attempt": attempt},
                )

    def _process_once(
        self, event: AlertEvent, fingerprint: str, envelope: Envelope
    ) -> ProcessingResult:
        loaded = self.store.load_state(fingerprint)
        prior = self._detect_manual_close(loaded)
        decision = decide(prior, event, fingerprint)

        state = decision.state
        if not decision.is_skip and state is not None:
            state = self._apply_tracker(decision, event, fingerprint)

        if state is not None and (loaded is None or state != loaded):
            expected_version = loaded.version if loaded is not None else None
            state = self.store.save_state(
                fingerprint, expected_version, state, action=decision.action, envelope=envelope
            )

        synced = bool(state.tracker_synced) if state is not None and not decision.is_skip else False
        logger.info(
            f"Alert {decision.action}: {event.title}",
            extra={
                "fingerprint": fingerprint,
                "action": decision.action,
                "source": event.source,
                "state": event.state,
                "issue_ref": state.issue_ref if state else None,
                "tracker_synced": synced,
                "message_id": envelope.event_id,
                "delivery_attempt": envelope.delivery_attempt,
            },
        )
        return ProcessingResult(
            outcome=Outcome.PROCESSED,
            action=decision.action,
            fingerprint=fingerprint,
            source=event.source,
            issue_ref=state.issue_ref if state else None,
            tracker_synced=synced,
        )

    def _detect_manual_close(self, prior: AlertState | None) -> AlertState | None:
        """Mark ``prior`` manually closed if its issue was closed outside this system."""
        if (
            self.tracker is None
            or prior is None
            or not prior.is_open
            or prior.issue_ref is None
            or prior.manually_closed
        ):
            return prior

        issue_state = self.tracker.get_issue_state(prior.issue_ref)
        if issue_state != "closed":
            return prior

        logger.info(
            f"Issue #{prior.issue_ref} was closed manually",
            extra={"fingerprint": prior.fingerprint, "issue_ref": prior.issue_ref},
        )
        return prior.mark_manually_closed(self.clock())

    def _apply_tracker(self, decision: Decision, event: AlertEvent, fingerprint: str) -> AlertState:
        """Perform the tracker mutation for ``decision`` and record whether it succeeded."""
        state = decision.state
        if self.tracker is None:
            return replace(state, tracker_synced=False)

        if decision.action == Action.CREATE or (
            decision.action == Action.COMMENT and state.issue_ref is None
        ):
            # A COMMENT without an issue means the tracker was degraded when
            # the alert first fired; create the missing issue now.
            return self._create_issue(state, event, fingerprint)

        if decision.action == Action.COMMENT:
            ok = self.tracker.comment_on_issue(state.issue_ref, render_comment(event, fingerprint))
            return replace(state, tracker_synced=ok)

        if decision.action == Action.CLOSE:
            if state.issue_ref is None:
                return replace(state, tracker_synced=False)
            self.tracker.comment_on_issue(state.issue_ref, render_close_comment(event, fingerprint))
            ok = self.tracker.close_issue(state.issue_ref)
            return replace(state, tracker_synced=ok)

        return state

    def _create_issue(self, state: AlertState, event: AlertEvent, fingerprint: str) -> AlertState:
        labels = issue_labels(event)
        self.tracker.ensure_labels_exist(labels)
        issue_ref = self.tracker.create_issue(
            issue_title(event), render_issue_body(event, fingerprint), labels
        )
        if issue_ref is None:
            logger.warning(
                "Issue creation fell back to manual processing",
                extra={"fingerprint": fingerprint},
            )
            return replace(state, issue_ref=None, tracker_synced=False)
        return replace(state, issue_ref=issue_ref, tracker_synced=True)

    @staticmethod
    def _decode(raw: Any) -> Any:
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ValidationError("Payload is not valid UTF-8", field="body") from e
        if isinstance(raw, str):
            try:
                return json.loads(raw)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Invalid JSON payload: {e}", field="body") from e
        return raw
