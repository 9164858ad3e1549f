import http.client
import json
from datetime import datetime, timezone
from unittest.mock import Mock, patch

from django.db import DatabaseError
from django.test import TestCase

from apps.alerts._tests.fixtures import (
    cloudwatch_alarm,
    grafana_firing,
    grafana_resolved,
    make_event,
    sns_envelope,
)
from apps.alerts.choices import Action, Outcome, StateStatus
from apps.alerts.errors import ConflictError
from apps.alerts.models import AlertHistory, AlertStateRecord
from apps.alerts.services import AlertOrchestrator, ProcessingResult
from apps.alerts.store import DjangoStateStore
from apps.tracker.breaker import CircuitBreaker
from apps.tracker.client import GitHubIssueClient
from apps.tracker.ratelimit import TokenBucket
from apps.tracker.resilient import ResilientTrackerClient

NOW = datetime(2025, 9, 16, 13, 0, tzinfo=timezone.utc)


class FakeTracker:
    """In-memory stand-in for ResilientTrackerClient."""

    def __init__(self, next_issue=101):
        self.next_issue = next_issue
        self.created = []
        self.comments = []
        self.closed = []
        self.labels = []
        self.issue_states = {}
        self.fail_create = False

    def create_issue(self, title, body, labels):
        if self.fail_create:
            return None
        number = self.next_issue
        self.next_issue += 1
        self.created.append({"number": number, "title": title, "body": body, "labels": labels})
        self.issue_states[number] = "open"
        return number

    def close_issue(self, number):
        self.closed.append(number)
        self.issue_states[number] = "closed"
        return True

    def comment_on_issue(self, number, body):
        self.comments.append((number, body))
        return True

    def ensure_labels_exist(self, labels):
        self.labels.extend(labels)
        return True

    def get_issue_state(self, number):
        return self.issue_states.get(number)


class OrchestratorTests(TestCase):
    """Tests for AlertOrchestrator.process_message."""

    def setUp(self):
        self.tracker = FakeTracker()
        self.orchestrator = AlertOrchestrator(tracker=self.tracker, clock=lambda: NOW)

    def process(self, payload, **metadata):
        return self.orchestrator.process_message(json.dumps(payload), metadata)

    def test_grafana_firing_creates_issue(self):
        result = self.process(grafana_firing(), message_id="m-1")

        self.assertEqual(result.outcome, Outcome.PROCESSED)
        self.assertEqual(result.action, Action.CREATE)
        self.assertEqual(result.source, "grafana")
        self.assertEqual(result.issue_ref, 101)
        self.assertTrue(result.tracker_synced)
        self.assertTrue(result.ok)
        self.assertFalse(result.retryable)

        issue = self.tracker.created[0]
        self.assertEqual(issue["title"], "[P1] Runners Scale Up Failure")
        self.assertIn("Pri:P1", issue["labels"])
        self.assertIn("Team:dev-infra", issue["labels"])
        self.assertIn(result.fingerprint, issue["body"])

        record = AlertStateRecord.objects.get(fingerprint=result.fingerprint)
        self.assertEqual(record.status, StateStatus.OPEN)
        self.assertEqual(record.issue_ref, 101)
        self.assertEqual(record.last_event_id, "m-1")

    def test_firing_then_resolved_closes_issue(self):
        created = self.process(grafana_firing())
        result = self.process(grafana_resolved())

        self.assertEqual(result.action, Action.CLOSE)
        self.assertEqual(result.fingerprint, created.fingerprint)
        self.assertEqual(self.tracker.closed, [101])
        self.assertEqual(len(self.tracker.comments), 1)
        self.assertIn("Alert Resolved", self.tracker.comments[0][1])
        record = AlertStateRecord.objects.get(fingerprint=result.fingerprint)
        self.assertEqual(record.status, StateStatus.CLOSED)
        self.assertEqual(record.version, 2)

    def test_repeat_firing_comments(self):
        self.process(grafana_firing())
        result = self.process(grafana_firing(startsAt="2025-09-16T12:01:00Z"))

        self.assertEqual(result.action, Action.COMMENT)
        self.assertEqual(len(self.tracker.created), 1)
        self.assertEqual(self.tracker.comments[0][0], 101)

    def test_recurrence_after_close_opens_new_issue(self):
        self.process(grafana_firing())
        self.process(grafana_resolved())
        result = self.process(grafana_firing(startsAt="2025-09-16T12:10:00Z"))

        self.assertEqual(result.action, Action.CREATE)
        self.assertEqual(result.issue_ref, 102)
        self.assertEqual(AlertStateRecord.objects.count(), 1)

    def test_resolved_without_prior_state_is_skipped(self):
        result = self.process(grafana_resolved())

        self.assertEqual(result.action, Action.SKIP)
        self.assertFalse(result.tracker_synced)
        self.assertFalse(AlertStateRecord.objects.exists())
        self.assertEqual(self.tracker.closed, [])

    def test_stale_event_is_skipped(self):
        self.process(grafana_firing(startsAt="2025-09-16T12:30:00Z"))
        result = self.process(grafana_resolved(ends_at="2025-09-16T12:05:00Z"))

        self.assertEqual(result.action, Action.SKIP_STALE)
        self.assertEqual(self.tracker.closed, [])
        self.assertEqual(AlertHistory.objects.count(), 1)

    def test_cloudwatch_via_sns(self):
        result = self.process(sns_envelope(cloudwatch_alarm()))

        self.assertEqual(result.action, Action.CREATE)
        self.assertEqual(result.source, "cloudwatch")
        self.assertEqual(self.tracker.created[0]["title"], "[P2] High CPU Usage")

    def test_provider_hint_selects_driver(self):
        result = self.process(cloudwatch_alarm(), provider="cloudwatch")

        self.assertEqual(result.source, "cloudwatch")

    def test_manual_close_suppresses_updates(self):
        self.process(grafana_firing())
        self.tracker.issue_states[101] = "closed"

        result = self.process(grafana_firing(startsAt="2025-09-16T12:01:00Z"))

        self.assertEqual(result.action, Action.SKIP_MANUAL_CLOSE)
        self.assertEqual(self.tracker.comments, [])
        record = AlertStateRecord.objects.get(fingerprint=result.fingerprint)
        self.assertTrue(record.manually_closed)
        self.assertEqual(record.manually_closed_at, NOW)

    def test_manual_close_then_resolve_then_fire_creates(self):
        self.process(grafana_firing())
        self.tracker.issue_states[101] = "closed"

        resolved = self.process(grafana_resolved())
        refired = self.process(grafana_firing(startsAt="2025-09-16T12:10:00Z"))

        self.assertEqual(resolved.action, Action.SKIP_MANUAL_CLOSE)
        self.assertEqual(self.tracker.closed, [])
        self.assertEqual(refired.action, Action.CREATE)
        self.assertEqual(refired.issue_ref, 102)

    def test_degraded_create_is_repaired_on_next_firing(self):
        self.tracker.fail_create = True
        degraded = self.process(grafana_firing())
        self.tracker.fail_create = False

        repaired = self.process(grafana_firing(startsAt="2025-09-16T12:01:00Z"))

        self.assertEqual(degraded.action, Action.CREATE)
        self.assertIsNone(degraded.issue_ref)
        self.assertFalse(degraded.tracker_synced)
        self.assertEqual(repaired.action, Action.COMMENT)
        self.assertEqual(repaired.issue_ref, 101)
        self.assertTrue(repaired.tracker_synced)

    def test_close_without_issue_is_not_synced(self):
        self.tracker.fail_create = True
        self.process(grafana_firing())

        result = self.process(grafana_resolved())

        self.assertEqual(result.action, Action.CLOSE)
        self.assertFalse(result.tracker_synced)
        self.assertEqual(self.tracker.closed, [])

    def test_tracker_disabled(self):
        orchestrator = AlertOrchestrator(tracker=None)

        result = orchestrator.process_message(json.dumps(grafana_firing()))

        self.assertEqual(result.action, Action.CREATE)
        self.assertIsNone(result.issue_ref)
        self.assertFalse(result.tracker_synced)
        self.assertTrue(AlertStateRecord.objects.exists())

    def test_missing_priority_fails_validation(self):
        payload = grafana_firing()
        del payload["alerts"][0]["annotations"]["Priority"]

        result = self.process(payload, message_id="m-9")

        self.assertEqual(result.outcome, Outcome.VALIDATION_FAILED)
        self.assertEqual(result.error_field, "priority")
        self.assertEqual(result.source, "grafana")
        self.assertFalse(result.retryable)
        self.assertFalse(AlertStateRecord.objects.exists())
        self.assertEqual(self.tracker.created, [])

    def test_invalid_json_fails_validation(self):
        result = self.orchestrator.process_message(b"{not json")

        self.assertEqual(result.outcome, Outcome.VALIDATION_FAILED)
        self.assertEqual(result.error_field, "body")
        self.assertIsNone(result.source)

    def test_invalid_utf8_fails_validation(self):
        result = self.orchestrator.process_message(b"\xff\xfe")

        self.assertEqual(result.outcome, Outcome.VALIDATION_FAILED)
        self.assertEqual(result.error_field, "body")

    def test_wrong_typed_grafana_alerts_fail_validation(self):
        result = self.process({"orgId": 1, "alerts": 5})

        self.assertEqual(result.outcome, Outcome.VALIDATION_FAILED)
        self.assertEqual(result.error_field, "alerts")
        self.assertEqual(result.source, "grafana")

    def test_malformed_cloudwatch_description_fails_validation(self):
        result = self.process(cloudwatch_alarm(AlarmDescription={"TEAMS": "platform"}))

        self.assertEqual(result.outcome, Outcome.VALIDATION_FAILED)
        self.assertEqual(result.error_field, "AlarmDescription")


class OrchestratorFailureTests(TestCase):
    """Tests for transient failures inside the orchestrator."""

    def test_conflict_is_retried_then_reported_transient(self):
        store = Mock(wraps=DjangoStateStore())
        store.save_state.side_effect = ConflictError("x", None)
        orchestrator = AlertOrchestrator(store=store, tracker=None)

        result = orchestrator.process_message(json.dumps(grafana_firing()))

        self.assertEqual(result.outcome, Outcome.TRANSIENT_FAILURE)
        self.assertTrue(result.retryable)
        self.assertEqual(store.save_state.call_count, 2)
        self.assertIsNotNone(result.fingerprint)

    def test_conflict_recovers_after_reload(self):
        real = DjangoStateStore()
        store = Mock(wraps=real)
        calls = []

        def save_once_conflicting(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise ConflictError(args[0], args[1])
            return real.save_state(*args, **kwargs)

        store.save_state.side_effect = save_once_conflicting
        orchestrator = AlertOrchestrator(store=store, tracker=None)

        result = orchestrator.process_message(json.dumps(grafana_firing()))

        self.assertEqual(result.outcome, Outcome.PROCESSED)
        self.assertEqual(len(calls), 2)

    def test_database_error_is_transient(self):
        store = Mock()
        store.load_state.side_effect = DatabaseError("database is locked")
        orchestrator = AlertOrchestrator(store=store, tracker=None)

        result = orchestrator.process_message(json.dumps(grafana_firing()))

        self.assertEqual(result.outcome, Outcome.TRANSIENT_FAILURE)
        self.assertIn("database is locked", result.reason)

    def test_unexpected_error_is_transient(self):
        store = Mock()
        store.load_state.side_effect = RuntimeError("store exploded")
        orchestrator = AlertOrchestrator(store=store, tracker=None)

        with self.assertLogs("apps.alerts.services", level="ERROR"):
            result = orchestrator.process_message(json.dumps(grafana_firing()))

        self.assertEqual(result.outcome, Outcome.TRANSIENT_FAILURE)
        self.assertTrue(result.retryable)
        self.assertIn("store exploded", result.reason)


class StaticSecrets:
    def get(self, key):
        return "ghp_test"


@patch("apps.tracker.client.urllib.request.urlopen")
class TrackerTransportFailureTests(TestCase):
    """A dropped tracker connection degrades to manual processing."""

    def setUp(self):
        tracker = ResilientTrackerClient(
            GitHubIssueClient("acme/alerts", StaticSecrets()),
            CircuitBreaker(failure_threshold=10),
            TokenBucket(capacity=10),
            max_wait_seconds=0,
        )
        self.orchestrator = AlertOrchestrator(tracker=tracker, clock=lambda: NOW)

    def test_remote_disconnect_still_saves_state(self, mock_urlopen):
        mock_urlopen.side_effect = http.client.RemoteDisconnected("Remote end closed connection")

        with self.assertLogs("apps.tracker.resilient", level="ERROR"):
            result = self.orchestrator.process_message(json.dumps(grafana_firing()))

        self.assertEqual(result.outcome, Outcome.PROCESSED)
        self.assertEqual(result.action, Action.CREATE)
        self.assertFalse(result.tracker_synced)
        self.assertIsNone(result.issue_ref)
        record = AlertStateRecord.objects.get(fingerprint=result.fingerprint)
        self.assertEqual(record.status, StateStatus.OPEN)
        self.assertFalse(record.tracker_synced)


class ProcessEventTests(TestCase):
    def test_fingerprint_is_computed_when_omitted(self):
        orchestrator = AlertOrchestrator(tracker=None)

        result = orchestrator.process_event(make_event())

        self.assertEqual(result.action, Action.CREATE)
        self.assertEqual(len(result.fingerprint), 64)


class ProcessingResultTests(TestCase):
    def test_to_dict(self):
        result = ProcessingResult(
            outcome=Outcome.VALIDATION_FAILED, reason="bad", error_field="priority", errors=["x"]
        )

        self.assertEqual(
            result.to_dict(),
            {
                "outcome": "validation_failed",
                "action": None,
                "fingerprint": None,
                "source": None,
                "issue_ref": None,
                "tracker_synced": False,
                "reason": "bad",
                "field": "priority",
                "errors": ["x"],
            },
        )
