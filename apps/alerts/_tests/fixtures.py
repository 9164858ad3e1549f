"""Sample provider payloads shared by the alerts tests."""

import copy
import json
from datetime import datetime, timezone
from typing import Any

from apps.alerts.drivers.base import AlertEvent

_GRAFANA_FIRING: dict[str, Any] = {
    "receiver": "sns",
    "status": "firing",
    "orgId": 1,
    "alerts": [
        {
            "status": "firing",
            "labels": {
                "alertname": "RunnersScaleUp",
                "rulename": "Runners Scale Up Failure",
            },
            "annotations": {
                "Priority": "P1",
                "Team": "dev-infra",
                "description": "Scale-up requests are failing",
                "runbook_url": "https://runbooks.example.com/runners",
                "summary": "Runner scale-up is failing",
            },
            "startsAt": "2025-09-16T12:00:00.000Z",
            "endsAt": "0001-01-01T00:00:00Z",
            "generatorURL": "https://grafana.example.com/alerting/grafana/abc123/view",
            "silenceURL": "https://grafana.example.com/alerting/silence/new",
            "fingerprint": "abc123",
            "valueString": "[ var=A labels={instance=web-1} value=93.2 ]",
        }
    ],
    "groupLabels": {"alertname": "RunnersScaleUp"},
    "commonLabels": {},
    "commonAnnotations": {},
    "externalURL": "https://grafana.example.com",
    "version": "1",
    "title": "[FIRING:1] RunnersScaleUp",
    "state": "alerting",
}

_CLOUDWATCH_ALARM: dict[str, Any] = {
    "AlarmName": "High CPU Usage",
    "AlarmDescription": "CPU usage is above threshold\nTEAMS=platform | PRIORITY=P2 | "
    "RUNBOOK=https://runbooks.example.com/cpu",
    "AWSAccountId": "123456789012",
    "NewStateValue": "ALARM",
    "NewStateReason": "Threshold Crossed: 1 datapoint [95.0] was greater than 90.0",
    "StateChangeTime": "2025-09-16T12:00:00.000+0000",
    "Region": "US East (N. Virginia)",
    "AlarmArn": "arn:aws:cloudwatch:us-east-1:123456789012:alarm:High CPU Usage",
    "OldStateValue": "OK",
}


def grafana_firing(**alert_overrides: Any) -> dict[str, Any]:
    payload = copy.deepcopy(_GRAFANA_FIRING)
    payload["alerts"][0].update(alert_overrides)
    return payload


def grafana_resolved(ends_at: str = "2025-09-16T12:05:00.000Z") -> dict[str, Any]:
    payload = grafana_firing(status="resolved", endsAt=ends_at)
    payload["status"] = "resolved"
    payload["state"] = "ok"
    payload["title"] = "[RESOLVED:1] RunnersScaleUp"
    return payload


def cloudwatch_alarm(**overrides: Any) -> dict[str, Any]:
    alarm = copy.deepcopy(_CLOUDWATCH_ALARM)
    alarm.update(overrides)
    return alarm


def sns_envelope(alarm: dict[str, Any]) -> dict[str, Any]:
    return {
        "Type": "Notification",
        "MessageId": "0b4a8b0e-1111-2222-3333-444455556666",
        "TopicArn": "arn:aws:sns:us-east-1:123456789012:alerts",
        "Subject": f'ALARM: "{alarm.get("AlarmName")}" in US East (N. Virginia)',
        "Message": json.dumps(alarm),
        "Timestamp": "2025-09-16T12:00:01.000Z",
    }


def canonical_event(**overrides: Any) -> dict[str, Any]:
    event: dict[str, Any] = {
        "schema_version": 1,
        "source": "custom-emitter",
        "state": "FIRING",
        "title": "Queue Depth High",
        "description": "Orders queue is backing up",
        "reason": "depth=1200",
        "priority": "P2",
        "occurred_at": "2025-09-16T12:00:00.000Z",
        "teams": ["payments"],
        "identity": {"account_id": "1", "alarm_id": "queue-depth"},
        "links": {"runbook_url": "https://runbooks.example.com/queue"},
    }
    event.update(overrides)
    return event


def make_event(**overrides: Any) -> AlertEvent:
    """Build an AlertEvent directly, bypassing the drivers."""
    values: dict[str, Any] = {
        "source": "grafana",
        "state": "FIRING",
        "title": "Disk Full",
        "priority": "P1",
        "occurred_at": datetime(2025, 9, 16, 12, 0, tzinfo=timezone.utc),
        "teams": ("dev-infra",),
        "identity": {"account_id": "1", "alarm_id": "disk-full"},
    }
    values.update(overrides)
    return AlertEvent(**values)
