from datetime import datetime, timezone

from django.test import SimpleTestCase

from apps.alerts._tests.fixtures import canonical_event
from apps.alerts.drivers import Envelope, NormalizedDriver
from apps.alerts.errors import ValidationError


class NormalizedDriverTests(SimpleTestCase):
    """Tests for pre-normalized AlertEvent documents."""

    def setUp(self):
        self.driver = NormalizedDriver()
        self.envelope = Envelope(event_id="msg-3")

    def test_valid_event_passes_through(self):
        event = self.driver.transform(canonical_event(), self.envelope)

        self.assertEqual(event.source, "custom-emitter")
        self.assertEqual(event.state, "FIRING")
        self.assertEqual(event.title, "Queue Depth High")
        self.assertEqual(event.priority, "P2")
        self.assertEqual(event.teams, ("payments",))
        self.assertEqual(event.occurred_at, datetime(2025, 9, 16, 12, 0, tzinfo=timezone.utc))
        self.assertEqual(event.identity, {"account_id": "1", "alarm_id": "queue-depth"})
        self.assertEqual(event.links, {"runbook_url": "https://runbooks.example.com/queue"})

    def test_legacy_team_field(self):
        payload = canonical_event(team="Payments Core")
        del payload["teams"]

        event = self.driver.transform(payload, self.envelope)

        self.assertEqual(event.teams, ("payments-core",))

    def test_identity_aliases_are_mapped(self):
        payload = canonical_event(identity={"org_id": "7", "rule_id": "r-1"})

        event = self.driver.transform(payload, self.envelope)

        self.assertEqual(event.identity, {"account_id": "7", "alarm_id": "r-1"})

    def test_offset_timestamp_is_normalized_to_utc(self):
        payload = canonical_event(occurred_at="2025-09-16T14:00:00+02:00")

        event = self.driver.transform(payload, self.envelope)

        self.assertEqual(event.occurred_at, datetime(2025, 9, 16, 12, 0, tzinfo=timezone.utc))

    def test_invalid_schema_versions(self):
        for version in (0, -1, 2, "1", True, None):
            with self.subTest(version=version):
                with self.assertRaises(ValidationError) as ctx:
                    self.driver.transform(canonical_event(schema_version=version), self.envelope)
                self.assertTrue(
                    any(e.startswith("schema_version") for e in ctx.exception.errors)
                )

    def test_title_too_long(self):
        with self.assertRaises(ValidationError) as ctx:
            self.driver.transform(canonical_event(title="x" * 501), self.envelope)

        self.assertTrue(any(e.startswith("title") for e in ctx.exception.errors))

    def test_title_at_limit_is_accepted(self):
        event = self.driver.transform(canonical_event(title="x" * 500), self.envelope)

        self.assertEqual(len(event.title), 500)

    def test_invalid_source_pattern(self):
        for source in ("Custom", "-emitter", "has space", "a" * 51):
            with self.subTest(source=source):
                with self.assertRaises(ValidationError) as ctx:
                    self.driver.transform(canonical_event(source=source), self.envelope)
                self.assertTrue(any(e.startswith("source") for e in ctx.exception.errors))

    def test_timestamp_without_timezone_fails(self):
        with self.assertRaises(ValidationError) as ctx:
            self.driver.transform(
                canonical_event(occurred_at="2025-09-16T12:00:00"), self.envelope
            )

        self.assertTrue(any(e.startswith("occurred_at") for e in ctx.exception.errors))

    def test_all_violations_are_reported(self):
        payload = canonical_event(state="BROKEN", priority="P9", teams=[])

        with self.assertRaises(ValidationError) as ctx:
            self.driver.transform(payload, self.envelope)

        fields = {e.split(":")[0] for e in ctx.exception.errors}
        self.assertEqual(fields, {"state", "priority", "teams"})
        self.assertIn("AlertEvent validation failed", str(ctx.exception))
        self.assertIn("messageId=msg-3", str(ctx.exception))

    def test_invalid_link_is_fatal(self):
        payload = canonical_event(links={"runbook_url": "ftp://runbooks.example.com/queue"})

        with self.assertRaises(ValidationError) as ctx:
            self.driver.transform(payload, self.envelope)

        self.assertEqual(ctx.exception.field, "links.runbook_url")

    def test_unknown_link_key_fails(self):
        payload = canonical_event(links={"wiki_url": "https://wiki.example.com"})

        with self.assertRaises(ValidationError) as ctx:
            self.driver.transform(payload, self.envelope)

        self.assertTrue(any(e.startswith("links.wiki_url") for e in ctx.exception.errors))

    def test_too_many_teams_fails(self):
        payload = canonical_event(teams=[f"team{i}" for i in range(11)])

        with self.assertRaises(ValidationError) as ctx:
            self.driver.transform(payload, self.envelope)

        self.assertTrue(any(e.startswith("teams") for e in ctx.exception.errors))

    def test_non_object_fails(self):
        with self.assertRaises(ValidationError) as ctx:
            self.driver.transform(["FIRING"], self.envelope)

        self.assertTrue(ctx.exception.errors[0].startswith("root"))
