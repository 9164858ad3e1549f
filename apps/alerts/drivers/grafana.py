"""
Grafana alerting driver.

Handles notifications from Grafana Alerting (webhook / SNS contact points).
See: https://grafana.com/docs/grafana/latest/alerting/configure-notifications/manage-contact-points/integrations/webhook-notifier/
"""

import logging
from typing import Any

from apps.alerts.choices import ProviderState
from apps.alerts.drivers.base import (
    MAX_DESCRIPTION_LENGTH,
    MAX_REASON_LENGTH,
    MAX_SUMMARY_LENGTH,
    ZERO_TIMESTAMP,
    AlertEvent,
    BaseAlertDriver,
    Envelope,
    canonical_identity,
    parse_teams,
)
from apps.alerts.errors import ValidationError
from apps.alerts.parsing import parse_value_string

logger = logging.getLogger(__name__)


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


class GrafanaDriver(BaseAlertDriver):
    """
    Driver for Grafana Alerting notifications.

    Grafana sends alerts in the following format:
    {
        "receiver": "sns",
        "status": "firing",
        "orgId": 1,
        "alerts": [
            {
                "status": "firing",
                "labels": {"alertname": "...", "rulename": "..."},
                "annotations": {"Priority": "P1", "Teams": "a, b", ...},
                "startsAt": "...",
                "endsAt": "...",
                "generatorURL": "...",
                "fingerprint": "...",
                "valueString": "[ var=A value=1 ]"
            }
        ],
        "groupLabels": {...},
        "commonLabels": {...},
        "commonAnnotations": {...},
        "externalURL": "...",
        "title": "[FIRING:1] ...",
        "state": "alerting"
    }

    Only the first alert of a group is used; structured per-alert fields are
    preferred over group-level ones.
    """

    name = "grafana"

    # Plural keys are checked before the legacy singular ones.
    TEAM_KEYS = ("Teams", "TEAMS", "teams", "Team", "TEAM", "team")
    PRIORITY_KEYS = ("Priority", "PRIORITY", "priority")

    def matches(self, payload: Any) -> bool:
        """Check if this looks like a Grafana payload."""
        if not isinstance(payload, dict):
            return False
        grafana_keys = {"orgId", "evalMatches", "dashboardId"}
        has_grafana_keys = bool(grafana_keys & set(payload.keys()))
        has_alerts = isinstance(payload.get("alerts"), list)
        return has_grafana_keys or (has_alerts and "receiver" in payload)

    def transform(self, payload: Any, envelope: Envelope) -> AlertEvent:
        """Transform a Grafana payload into an AlertEvent."""
        context = self._debug_context(payload, envelope)
        if not isinstance(payload, dict):
            raise ValidationError("Invalid Grafana payload: not an object", context=context)

        try:
            return self._transform(payload)
        except ValidationError as e:
            raise e.with_context(context) from None
        except (KeyError, TypeError, AttributeError) as e:
            raise ValidationError(f"Malformed Grafana payload: {e!r}", context=context) from e

    def _transform(self, payload: dict[str, Any]) -> AlertEvent:
        alerts = payload.get("alerts") or []
        if not isinstance(alerts, list):
            raise ValidationError(
                f"Invalid field 'alerts': expected a list, got {type(alerts).__name__}",
                field="alerts",
            )
        if len(alerts) > 1:
            logger.debug("Grafana group carries %d alerts; using the first", len(alerts))
        alert = alerts[0] if alerts else payload
        if not isinstance(alert, dict):
            raise ValidationError("Invalid Grafana alert: not an object", field="alerts")

        labels = self.as_mapping(alert.get("labels") or payload.get("commonLabels"), "labels")
        annotations = self.as_mapping(
            alert.get("annotations") or payload.get("commonAnnotations"), "annotations"
        )

        title = self._extract_title(payload, alert, labels)
        state = self.parse_state(
            alert.get("status") or payload.get("status") or payload.get("state")
        )

        priority_value = (
            self._first(annotations, self.PRIORITY_KEYS)
            or labels.get("priority")
            or payload.get("priority")
        )
        if not priority_value:
            raise ValidationError(
                "Missing required field 'Priority' in Grafana alert annotations",
                field="priority",
            )
        priority = self.parse_priority(priority_value)

        team_value = (
            self._first(annotations, self.TEAM_KEYS)
            or self._first(labels, ("teams", "team"))
            or payload.get("teams")
            or payload.get("team")
        )
        if not team_value:
            raise ValidationError(
                "Missing required field 'Teams' in Grafana alert annotations",
                field="teams",
            )
        teams = parse_teams(team_value)

        occurred_at = self.parse_timestamp(self._extract_occurred_at(alert, payload, state))

        identity = canonical_identity(
            {
                "org_id": payload.get("orgId"),
                "rule_id": alert.get("fingerprint")
                or payload.get("rule_id")
                or payload.get("ruleId"),
            }
        )

        links = self.build_links(
            {
                "runbook_url": annotations.get("runbook_url") or labels.get("runbook_url"),
                "dashboard_url": alert.get("dashboardURL") or alert.get("panelURL"),
                "source_url": alert.get("generatorURL") or payload.get("generatorURL"),
                "silence_url": alert.get("silenceURL"),
            }
        )

        return AlertEvent(
            source=self.name,
            state=state,
            title=title,
            priority=priority,
            occurred_at=occurred_at,
            teams=teams,
            description=self.sanitize_string(
                annotations.get("description"), MAX_DESCRIPTION_LENGTH
            ),
            summary=self.sanitize_string(annotations.get("summary"), MAX_SUMMARY_LENGTH),
            reason=self.sanitize_string(
                parse_value_string(alert.get("valueString")), MAX_REASON_LENGTH
            ),
            identity=identity,
            links=links,
            raw_provider=payload,
        )

    def _extract_title(
        self, payload: dict[str, Any], alert: dict[str, Any], labels: dict[str, Any]
    ) -> str:
        """Prefer the rule's descriptive name over the generic alert name."""
        alert_labels = self.as_mapping(alert.get("labels"), "labels")
        group_labels = self.as_mapping(payload.get("groupLabels"), "groupLabels")
        candidates = [
            labels.get("rulename"),
            alert_labels.get("rulename"),
            labels.get("alertname"),
            alert_labels.get("alertname"),
            group_labels.get("alertname"),
            payload.get("title"),
        ]
        for candidate in candidates:
            if isinstance(candidate, str) and candidate.strip():
                return self.parse_title(candidate)

        raise ValidationError(
            "Missing required field 'rulename' or 'alertname' in Grafana alert labels",
            field="title",
        )

    def _extract_occurred_at(
        self, alert: dict[str, Any], payload: dict[str, Any], state: str
    ) -> Any:
        """Return the provider state-change time.

        Resolutions use endsAt; firing alerts use startsAt.
        """
        if state == ProviderState.RESOLVED:
            keys = ("endsAt", "startsAt")
        else:
            keys = ("startsAt",)

        for source in (alert, payload):
            for key in keys:
                value = source.get(key)
                if value and value != ZERO_TIMESTAMP:
                    return value
        return None

    @staticmethod
    def _first(mapping: dict[str, Any], keys: tuple[str, ...]) -> Any:
        for key in keys:
            value = mapping.get(key)
            if value not in (None, ""):
                return value
        return None

    def _debug_context(self, payload: Any, envelope: Envelope) -> str:
        if not isinstance(payload, dict):
            return self.debug_context(envelope)

        alerts = payload.get("alerts")
        first = _dict(alerts[0]) if isinstance(alerts, list) and alerts else {}
        labels = _dict(first.get("labels"))
        annotations = _dict(first.get("annotations"))
        common = _dict(payload.get("commonAnnotations"))

        return self.debug_context(
            envelope,
            alertTitle=labels.get("rulename")
            or labels.get("alertname")
            or _dict(payload.get("groupLabels")).get("alertname")
            or "unknown",
            orgId=payload.get("orgId"),
            team=self._first(annotations, self.TEAM_KEYS) or self._first(common, self.TEAM_KEYS),
            generatorURL=first.get("generatorURL") or payload.get("generatorURL"),
        )
