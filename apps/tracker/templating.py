"""Issue content for alert lifecycle actions.

Titles and labels are built in code; issue bodies and comments are Jinja2
templates under apps/tracker/templates/:

- issue_body.md.j2     body of a newly created issue
- comment.md.j2        comment for a recurring FIRING event
- close_comment.md.j2  comment posted before closing on RESOLVED

Timestamps are shown in ALERTS_DISPLAY_TIMEZONE, e.g. "Sep 3, 12:10pm PDT".
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import jinja2
from django.conf import settings

from apps.alerts.drivers.base import AlertEvent

TEMPLATES_DIR = Path(__file__).parent / "templates"

DEFAULT_DISPLAY_TIMEZONE = "America/Los_Angeles"
DEFAULT_ISSUE_LABELS = ["area:alerting"]

LINK_LABELS = (
    ("runbook_url", "Runbook"),
    ("dashboard_url", "Dashboard"),
    ("source_url", "View Alert"),
    ("silence_url", "Silence Alert"),
)

logger = logging.getLogger(__name__)


def _parse(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_display_time(value: Any, tz_name: str | None = None) -> str:
    """Format a UTC timestamp for humans, e.g. ``"Sep 3, 12:10pm PDT"``.

    Input that cannot be parsed is returned unchanged (as a string).
    """
    parsed = _parse(value)
    if parsed is None:
        if value:
            logger.warning("Invalid timestamp for display: %r", value)
        return "" if value is None else str(value)

    tz_name = tz_name or getattr(settings, "ALERTS_DISPLAY_TIMEZONE", DEFAULT_DISPLAY_TIMEZONE)
    try:
        local = parsed.astimezone(ZoneInfo(tz_name))
    except ZoneInfoNotFoundError:
        logger.warning("Unknown display timezone %r; using UTC", tz_name)
        local = parsed.astimezone(timezone.utc)

    hour = local.hour % 12 or 12
    period = "am" if local.hour < 12 else "pm"
    return f"{local:%b} {local.day}, {hour}:{local:%M}{period} {local.tzname()}"


def iso_utc(value: Any) -> str:
    parsed = _parse(value)
    if parsed is None:
        return "" if value is None else str(value)
    return parsed.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


_JINJA_ENV = jinja2.Environment(
    loader=jinja2.FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=jinja2.StrictUndefined,
)
_JINJA_ENV.filters["display_time"] = format_display_time
_JINJA_ENV.filters["iso_utc"] = iso_utc


def render(template_name: str, context: dict[str, Any]) -> str:
    return _JINJA_ENV.get_template(template_name).render(**context).strip() + "\n"


def issue_title(event: AlertEvent) -> str:
    return f"[{event.priority}] {event.title}"


def issue_labels(event: AlertEvent, base_labels: list[str] | None = None) -> list[str]:
    """Labels for a new issue: base labels, priority, one per team, source."""
    if base_labels is None:
        base_labels = getattr(settings, "ALERTS_ISSUE_LABELS", DEFAULT_ISSUE_LABELS)
    labels = list(base_labels)
    labels.append(f"Pri:{event.priority}")
    labels.extend(f"Team:{team}" for team in event.teams)
    labels.append(f"Source:{event.source}")
    # De-duplicate, keep order.
    return list(dict.fromkeys(labels))


def render_issue_body(event: AlertEvent, fingerprint: str) -> str:
    return render(
        "issue_body.md.j2",
        {"event": event, "fingerprint": fingerprint, "link_labels": LINK_LABELS},
    )


def render_comment(event: AlertEvent, fingerprint: str) -> str:
    return render("comment.md.j2", {"event": event, "fingerprint": fingerprint})


def render_close_comment(event: AlertEvent, fingerprint: str) -> str:
    return render("close_comment.md.j2", {"event": event, "fingerprint": fingerprint})
