"""
AWS CloudWatch alarm driver.

Handles CloudWatch alarm state-change notifications, either wrapped in an SNS
envelope (``{"Type": "Notification", "Message": "<json>"}``) or delivered as
the bare alarm document.

Routing metadata lives in the alarm description as KEY=value segments
separated by newlines or ``|``:

    TEAMS=dev-infra, platform | PRIORITY=P1 | RUNBOOK=https://...

TEAMS takes precedence over the legacy TEAM key.
"""

import json
import logging
from typing import Any
from urllib.parse import quote

from apps.alerts.choices import ProviderState
from apps.alerts.drivers.base import (
    DEFAULT_STATE_MAP,
    MAX_DESCRIPTION_LENGTH,
    MAX_REASON_LENGTH,
    AlertEvent,
    BaseAlertDriver,
    Envelope,
    canonical_identity,
    parse_teams,
)
from apps.alerts.errors import ValidationError
from apps.alerts.parsing import parse_key_value_block

logger = logging.getLogger(__name__)

CONSOLE_URL = "https://console.aws.amazon.com/cloudwatch/home?region={region}#alarmsV2:alarm/{name}"


class CloudWatchDriver(BaseAlertDriver):
    """Driver for CloudWatch alarms delivered through SNS."""

    name = "cloudwatch"

    state_map = {
        **DEFAULT_STATE_MAP,
        "alarm": ProviderState.FIRING,
    }

    def matches(self, payload: Any) -> bool:
        """Check if this looks like a CloudWatch alarm (SNS-wrapped or bare)."""
        if not isinstance(payload, dict):
            return False
        if payload.get("Type") == "Notification" and isinstance(payload.get("Message"), str):
            return "AlarmName" in payload["Message"]
        return "AlarmName" in payload and "NewStateValue" in payload

    def transform(self, payload: Any, envelope: Envelope) -> AlertEvent:
        """Transform a CloudWatch alarm notification into an AlertEvent."""
        alarm = self._unwrap(payload, envelope)
        context = self._debug_context(alarm, envelope)

        try:
            return self._transform(alarm, payload)
        except ValidationError as e:
            raise e.with_context(context) from None
        except (KeyError, TypeError, AttributeError) as e:
            raise ValidationError(f"Malformed CloudWatch alarm: {e!r}", context=context) from e

    def _unwrap(self, payload: Any, envelope: Envelope) -> dict[str, Any]:
        """Return the alarm document, decoding the SNS Message if present."""
        if not isinstance(payload, dict):
            raise ValidationError(
                "Invalid CloudWatch payload: not an object",
                context=self.debug_context(envelope),
            )

        message = payload.get("Message")
        if message is None:
            return payload

        if isinstance(message, dict):
            return message
        try:
            alarm = json.loads(message)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"Invalid CloudWatch SNS Message: not JSON ({e})",
                field="Message",
                context=self.debug_context(envelope, subject=payload.get("Subject")),
            ) from None
        if not isinstance(alarm, dict):
            raise ValidationError(
                "Invalid CloudWatch SNS Message: not an object",
                field="Message",
                context=self.debug_context(envelope),
            )
        return alarm

    def _transform(self, alarm: dict[str, Any], payload: dict[str, Any]) -> AlertEvent:
        title = self.parse_title(alarm.get("AlarmName"))
        state = self.parse_state(alarm.get("NewStateValue"))

        fields, prose = parse_key_value_block(
            self.as_text(alarm.get("AlarmDescription"), "AlarmDescription")
        )

        team_value = fields.get("TEAMS") or fields.get("TEAM")
        if not team_value:
            raise ValidationError(
                "Missing required field 'TEAMS' in CloudWatch AlarmDescription",
                field="teams",
            )
        teams = parse_teams(team_value)

        if not fields.get("PRIORITY"):
            raise ValidationError(
                "Missing required field 'PRIORITY' in CloudWatch AlarmDescription",
                field="priority",
            )
        priority = self.parse_priority(fields["PRIORITY"])

        occurred_at = self.parse_timestamp(alarm.get("StateChangeTime"))

        alarm_arn = self.as_text(alarm.get("AlarmArn"), "AlarmArn")
        region = self._region_from_arn(alarm_arn) or alarm.get("Region")

        identity = canonical_identity(
            {
                "account_id": alarm.get("AWSAccountId"),
                "region": region,
                "alarm_arn": alarm_arn,
            }
        )

        links = self.build_links(
            {
                "runbook_url": fields.get("RUNBOOK"),
                "dashboard_url": fields.get("DASHBOARD"),
                "source_url": self._console_url(title, region) if region else None,
            }
        )

        return AlertEvent(
            source=self.name,
            state=state,
            title=title,
            priority=priority,
            occurred_at=occurred_at,
            teams=teams,
            description=self.sanitize_string(prose, MAX_DESCRIPTION_LENGTH),
            summary=self.sanitize_string(payload.get("Subject"), MAX_DESCRIPTION_LENGTH),
            reason=self.sanitize_string(alarm.get("NewStateReason"), MAX_REASON_LENGTH),
            identity=identity,
            links=links,
            raw_provider=payload,
        )

    @staticmethod
    def _region_from_arn(arn: str) -> str | None:
        # arn:aws:cloudwatch:<region>:<account>:alarm:<name>
        parts = arn.split(":")
        if len(parts) >= 4 and parts[0] == "arn" and parts[3]:
            return parts[3]
        return None

    @staticmethod
    def _console_url(alarm_name: str, region: str) -> str | None:
        if " " in region:
            # Display names like "US East - N. Virginia" are not usable in URLs.
            return None
        return CONSOLE_URL.format(region=region, name=quote(alarm_name, safe=""))

    def _debug_context(self, alarm: dict[str, Any], envelope: Envelope) -> str:
        description = alarm.get("AlarmDescription")
        fields, _ = parse_key_value_block(description if isinstance(description, str) else "")
        return self.debug_context(
            envelope,
            alarmName=alarm.get("AlarmName") or "unknown",
            accountId=alarm.get("AWSAccountId"),
            team=fields.get("TEAMS") or fields.get("TEAM"),
        )
