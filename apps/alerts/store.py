"""
State store adapter.

Loads and conditionally saves AlertState per fingerprint. Every successful
write bumps ``version``; a save carrying a stale expected version is
rejected with ConflictError instead of overwriting a concurrent writer.
Because each write bumps the version, a matching version also guarantees
the row still has the status and provider timestamp the decision was
computed against (e.g. a create over a CLOSED record only succeeds while
that record is still CLOSED).
"""

import logging
from dataclasses import replace
from typing import Any, Protocol

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from apps.alerts.drivers.base import Envelope
from apps.alerts.errors import ConflictError
from apps.alerts.lifecycle import AlertState
from apps.alerts.models import AlertHistory, AlertStateRecord

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    """Interface consumed by the orchestrator."""

    def load_state(self, fingerprint: str) -> AlertState | None: ...

    def save_state(
        self,
        fingerprint: str,
        expected_version: int | None,
        state: AlertState,
        action: str = "",
        envelope: Envelope | None = None,
    ) -> AlertState: ...


def record_to_state(record: AlertStateRecord) -> AlertState:
    return AlertState(
        fingerprint=record.fingerprint,
        status=record.status,
        source=record.source,
        title=record.title,
        priority=record.priority,
        teams=tuple(record.teams or ()),
        last_provider_state=record.last_provider_state,
        last_provider_state_at=record.last_provider_state_at,
        first_seen_at=record.first_seen_at,
        last_seen_at=record.last_seen_at,
        issue_ref=record.issue_ref,
        manually_closed=record.manually_closed,
        manually_closed_at=record.manually_closed_at,
        tracker_synced=record.tracker_synced,
        version=record.version,
    )


def state_fields(state: AlertState) -> dict[str, Any]:
    """Column values for an AlertState (excluding fingerprint and version)."""
    return {
        "status": state.status,
        "source": state.source,
        "title": state.title,
        "priority": state.priority,
        "teams": list(state.teams),
        "last_provider_state": state.last_provider_state,
        "last_provider_state_at": state.last_provider_state_at,
        "first_seen_at": state.first_seen_at,
        "last_seen_at": state.last_seen_at,
        "issue_ref": state.issue_ref,
        "manually_closed": state.manually_closed,
        "manually_closed_at": state.manually_closed_at,
        "tracker_synced": state.tracker_synced,
    }


class DjangoStateStore:
    """State store backed by the AlertStateRecord model."""

    def load_state(self, fingerprint: str) -> AlertState | None:
        record = AlertStateRecord.objects.filter(fingerprint=fingerprint).first()
        if record is None:
            return None
        return record_to_state(record)

    def save_state(
        self,
        fingerprint: str,
        expected_version: int | None,
        state: AlertState,
        action: str = "",
        envelope: Envelope | None = None,
    ) -> AlertState:
        """
        Conditionally persist ``state``.

        Args:
            fingerprint: Record key.
            expected_version: Version the decision was computed against, or
                None when no record existed (insert).
            state: New state to persist.
            action: Decided action, stored for audit.
            envelope: Ingest metadata, stored for audit.

        Returns:
            The saved state carrying its new version.

        Raises:
            ConflictError: If another writer got there first.
        """
        fields = state_fields(state)
        fields["last_action"] = action
        fields["last_event_id"] = envelope.event_id if envelope else ""

        old_status = ""
        with transaction.atomic():
            if expected_version is None:
                try:
                    with transaction.atomic():
                        AlertStateRecord.objects.create(fingerprint=fingerprint, version=1, **fields)
                except IntegrityError:
                    raise ConflictError(fingerprint, expected_version) from None
                new_version = 1
            else:
                old_status = (
                    AlertStateRecord.objects.filter(fingerprint=fingerprint)
                    .values_list("status", flat=True)
                    .first()
                    or ""
                )
                updated = AlertStateRecord.objects.filter(
                    fingerprint=fingerprint, version=expected_version
                ).update(version=F("version") + 1, updated_at=timezone.now(), **fields)
                if updated == 0:
                    raise ConflictError(fingerprint, expected_version)
                new_version = expected_version + 1

            self._record_history(fingerprint, old_status, state, action, envelope)

        logger.debug(
            "Saved alert state",
            extra={"fingerprint": fingerprint, "version": new_version, "action": action},
        )
        return replace(state, version=new_version)

    def _record_history(
        self,
        fingerprint: str,
        old_status: str,
        state: AlertState,
        action: str,
        envelope: Envelope | None,
    ) -> None:
        AlertHistory.objects.create(
            fingerprint=fingerprint,
            action=action,
            provider_state=state.last_provider_state,
            old_status=old_status,
            new_status=state.status,
            issue_ref=state.issue_ref,
            event_id=envelope.event_id if envelope else "",
            occurred_at=state.last_provider_state_at,
            details={
                "envelope": envelope.to_dict() if envelope else {},
                "tracker_synced": state.tracker_synced,
                "manually_closed": state.manually_closed,
            },
        )

