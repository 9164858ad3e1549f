"""
Management command to run one alert payload through the lifecycle engine.

Useful for replaying a message that landed in a dead-letter queue, or for
checking how a provider payload is normalized and what action it triggers.

Usage:
    # Process a payload file (source auto-detected)
    python manage.py process_alert payload.json

    # Read from stdin and force the source
    cat payload.json | python manage.py process_alert - --source cloudwatch

    # Output the result as JSON
    python manage.py process_alert payload.json --json
"""

import json
import sys
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from apps.alerts.drivers import DRIVER_REGISTRY
from apps.alerts.services import AlertOrchestrator


class Command(BaseCommand):
    help = "Process one alert payload and print the decided lifecycle action"

    def add_arguments(self, parser):
        parser.add_argument(
            "payload",
            help="Path to a JSON payload file, or '-' to read from stdin.",
        )
        parser.add_argument(
            "--source",
            choices=sorted(DRIVER_REGISTRY.keys()),
            help="Alert source (default: auto-detect from the payload).",
        )
        parser.add_argument(
            "--message-id",
            default="",
            help="Message id recorded in the audit trail.",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            dest="json_output",
            help="Output result as JSON.",
        )

    def handle(self, *args, **options):
        body = self._read_payload(options["payload"])
        metadata = {
            "provider": options.get("source"),
            "message_id": options.get("message_id") or "",
            "topic": "cli",
        }

        result = AlertOrchestrator().process_message(body, metadata)

        if options["json_output"]:
            self.stdout.write(json.dumps(result.to_dict(), indent=2))
        else:
            self._print_result(result)

        if not result.ok:
            raise CommandError(f"Alert not processed ({result.outcome}): {result.reason}")

    def _read_payload(self, path: str) -> str:
        if path == "-":
            return sys.stdin.read()
        try:
            return Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise CommandError(f"Cannot read payload file {path}: {e}") from e

    def _print_result(self, result):
        if result.ok:
            self.stdout.write(self.style.SUCCESS(f"Action: {result.action}"))
            self.stdout.write(f"  Source:         {result.source}")
            self.stdout.write(f"  Fingerprint:    {result.fingerprint}")
            self.stdout.write(f"  Issue:          {result.issue_ref or '-'}")
            self.stdout.write(f"  Tracker synced: {'yes' if result.tracker_synced else 'no'}")
            return

        self.stdout.write(self.style.ERROR(f"Outcome: {result.outcome}"))
        self.stdout.write(f"  Reason: {result.reason}")
        for error in result.errors:
            self.stdout.write(f"  - {error}")
