from datetime import datetime, timedelta, timezone

from django.test import SimpleTestCase

from apps.alerts.drivers.base import (
    BaseAlertDriver,
    Envelope,
    canonical_identity,
    parse_teams,
)
from apps.alerts.drivers.grafana import GrafanaDriver
from apps.alerts.errors import ValidationError


class ParseTeamsTests(SimpleTestCase):
    def test_comma_separated(self):
        self.assertEqual(
            parse_teams("dev-infra, platform, security"), ("dev-infra", "platform", "security")
        )

    def test_list_input(self):
        self.assertEqual(parse_teams(["Dev Infra", " platform "]), ("dev-infra", "platform"))

    def test_empty_entries_are_dropped(self):
        self.assertEqual(parse_teams("a,, ,b"), ("a", "b"))

    def test_nothing_left_fails(self):
        for raw in ("", ",  , , ", None, []):
            with self.subTest(raw=raw):
                with self.assertRaises(ValidationError) as ctx:
                    parse_teams(raw)
                self.assertEqual(ctx.exception.field, "teams")

    def test_ten_teams_is_the_limit(self):
        self.assertEqual(len(parse_teams(",".join(f"t{i}" for i in range(10)))), 10)
        with self.assertRaises(ValidationError):
            parse_teams(",".join(f"t{i}" for i in range(11)))


class CanonicalIdentityTests(SimpleTestCase):
    def test_aliases_are_mapped(self):
        self.assertEqual(
            canonical_identity({"org_id": 1, "rule_id": "r", "region": "us-east-1"}),
            {"account_id": "1", "alarm_id": "r", "region": "us-east-1"},
        )

    def test_canonical_keys_win_over_aliases(self):
        self.assertEqual(
            canonical_identity({"alarm_arn": "arn", "alarm_id": "id"}),
            {"alarm_id": "id"},
        )

    def test_empty_values_and_unknown_keys_are_dropped(self):
        self.assertEqual(canonical_identity({"account_id": "", "host": "web-1"}), {})
        self.assertEqual(canonical_identity(None), {})


class DriverHelperTests(SimpleTestCase):
    def setUp(self):
        self.driver: BaseAlertDriver = GrafanaDriver()

    def test_parse_timestamp_variants(self):
        expected = datetime(2025, 9, 16, 12, 0, tzinfo=timezone.utc)
        for value in (
            "2025-09-16T12:00:00Z",
            "2025-09-16T12:00:00.000Z",
            "2025-09-16T05:00:00-07:00",
            "2025-09-16T12:00:00",
        ):
            with self.subTest(value=value):
                self.assertEqual(self.driver.parse_timestamp(value), expected)

    def test_parse_timestamp_rejects_garbage(self):
        for value in ("yesterday", "", None, "0001-01-01T00:00:00Z", 12345):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    self.driver.parse_timestamp(value)

    def test_parse_timestamp_converts_aware_datetimes(self):
        value = datetime(2025, 9, 16, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        result = self.driver.parse_timestamp(value)

        self.assertEqual(result, datetime(2025, 9, 16, 12, 0, tzinfo=timezone.utc))
        self.assertEqual(result.utcoffset(), timedelta(0))

    def test_sanitize_string(self):
        self.assertEqual(self.driver.sanitize_string("  a\x00b\x07c  ", 10), "abc")
        self.assertEqual(self.driver.sanitize_string("abcdefghij", 8), "abcde...")
        self.assertIsNone(self.driver.sanitize_string("   ", 10))
        self.assertIsNone(self.driver.sanitize_string(None, 10))

    def test_validate_url(self):
        self.assertEqual(
            self.driver.validate_url(" https://example.com/a?b=c "), "https://example.com/a?b=c"
        )
        for bad in ("javascript:alert(1)", "https://", "http://exa mple.com", "x" * 10, 42):
            with self.subTest(url=bad):
                self.assertIsNone(self.driver.validate_url(bad))

    def test_validate_url_length_limit(self):
        url = "https://example.com/" + "a" * 2100

        self.assertIsNone(self.driver.validate_url(url))

    def test_debug_context_is_bounded(self):
        context = self.driver.debug_context(Envelope(event_id="m-1"), title="t" * 500, empty="")

        self.assertTrue(context.startswith("[source=grafana, messageId=m-1"))
        self.assertNotIn("empty=", context)
        self.assertLess(len(context), 200)


class EnvelopeTests(SimpleTestCase):
    def test_from_metadata(self):
        envelope = Envelope.from_metadata(
            {"message_id": "abc", "topic": "alerts", "region": "us-east-1", "receive_count": "3"}
        )

        self.assertEqual(envelope.event_id, "abc")
        self.assertEqual(envelope.ingest_topic, "alerts")
        self.assertEqual(envelope.ingest_region, "us-east-1")
        self.assertEqual(envelope.delivery_attempt, 3)

    def test_from_metadata_defaults(self):
        envelope = Envelope.from_metadata({"receive_count": "bogus"})

        self.assertEqual(envelope.event_id, "")
        self.assertEqual(envelope.delivery_attempt, 1)
        self.assertIsNotNone(envelope.received_at)
