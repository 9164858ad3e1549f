"""Base driver and data structures for alert ingestion.

Drivers normalize incoming provider payloads (Grafana, CloudWatch, or events
already in canonical form) into a single AlertEvent.

Public API:
- Envelope
- AlertEvent
- BaseAlertDriver
- parse_teams
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from datetime import timezone as dt_tz
from typing import Any
from urllib.parse import urlparse

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from apps.alerts.choices import Priority, ProviderState
from apps.alerts.errors import ValidationError

SCHEMA_VERSION = 1

MAX_TITLE_LENGTH = 500
MAX_DESCRIPTION_LENGTH = 1500
MAX_SUMMARY_LENGTH = 1500
MAX_REASON_LENGTH = 500
MAX_URL_LENGTH = 2048
MAX_TEAMS = 10
MAX_TEAM_NAME_LENGTH = 50

LINK_FIELDS = ("runbook_url", "dashboard_url", "source_url", "silence_url")

# Canonical identity keys, plus the older names accepted on input.
IDENTITY_FIELDS = ("account_id", "region", "alarm_id")
IDENTITY_ALIASES = {
    "org_id": "account_id",
    "rule_id": "alarm_id",
    "alarm_arn": "alarm_id",
}

# Grafana sends this for "no end time".
ZERO_TIMESTAMP = "0001-01-01T00:00:00Z"

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

DEFAULT_STATE_MAP = {
    "firing": ProviderState.FIRING,
    "alerting": ProviderState.FIRING,
    "resolved": ProviderState.RESOLVED,
    "ok": ProviderState.RESOLVED,
}


@dataclass(frozen=True)
class Envelope:
    """Ingest metadata for one inbound message. Only used as log context."""

    event_id: str = ""
    received_at: datetime = field(default_factory=timezone.now)
    ingest_topic: str = ""
    ingest_region: str = ""
    delivery_attempt: int = 1

    @classmethod
    def from_metadata(cls, metadata: dict[str, Any] | None) -> "Envelope":
        """Build an envelope from transport metadata."""
        metadata = metadata or {}
        try:
            attempt = int(metadata.get("receive_count") or 1)
        except (TypeError, ValueError):
            attempt = 1
        return cls(
            event_id=str(metadata.get("message_id") or ""),
            ingest_topic=str(metadata.get("topic") or ""),
            ingest_region=str(metadata.get("region") or ""),
            delivery_attempt=max(attempt, 1),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "received_at": self.received_at.isoformat(),
            "ingest_topic": self.ingest_topic,
            "ingest_region": self.ingest_region,
            "delivery_attempt": self.delivery_attempt,
        }


@dataclass(frozen=True)
class AlertEvent:
    """Canonical alert format that all drivers produce."""

    # Required fields
    source: str
    state: str  # ProviderState
    title: str
    priority: str  # Priority
    occurred_at: datetime
    teams: tuple[str, ...]

    # Optional fields with defaults
    schema_version: int = SCHEMA_VERSION
    description: str | None = None
    summary: str | None = None
    reason: str | None = None
    identity: dict[str, str] = field(default_factory=dict)
    links: dict[str, str] = field(default_factory=dict)
    raw_provider: Any = field(default_factory=dict, compare=False)

    @property
    def team(self) -> str:
        """Primary owning team (first declared)."""
        return self.teams[0]

    @property
    def normalized_title(self) -> str:
        return self.title.strip().lower()

    @property
    def is_firing(self) -> bool:
        return self.state == ProviderState.FIRING

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "schema_version": self.schema_version,
            "source": self.source,
            "state": str(self.state),
            "title": self.title,
            "priority": str(self.priority),
            "occurred_at": self.occurred_at.isoformat().replace("+00:00", "Z"),
            "teams": list(self.teams),
            "identity": dict(self.identity),
            "links": dict(self.links),
        }
        for key in ("description", "summary", "reason"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


def parse_teams(raw: Any) -> tuple[str, ...]:
    """Parse a comma-separated team declaration into normalized slugs.

    Each entry is trimmed, internal whitespace becomes a hyphen, and the result
    is lower-cased. Entries that are empty after trimming are dropped.
    """
    if isinstance(raw, (list, tuple)):
        parts = [str(p) for p in raw if p is not None]
    elif raw is None:
        parts = []
    else:
        parts = str(raw).split(",")

    teams = []
    for part in parts:
        name = re.sub(r"\s+", "-", part.strip()).lower()
        if name:
            teams.append(name)

    if not teams:
        raise ValidationError("no valid team names", field="teams")
    if len(teams) > MAX_TEAMS:
        raise ValidationError(
            f"too many teams (max {MAX_TEAMS}, got {len(teams)})", field="teams"
        )
    for name in teams:
        if len(name) > MAX_TEAM_NAME_LENGTH:
            raise ValidationError(
                f"team name too long (max {MAX_TEAM_NAME_LENGTH} characters): {name}",
                field="teams",
            )
    return tuple(teams)


def canonical_identity(identity: dict[str, Any] | None) -> dict[str, str]:
    """Map identity keys onto the canonical set, dropping empty values."""
    identity = identity or {}
    result: dict[str, str] = {}
    for alias, key in IDENTITY_ALIASES.items():
        if identity.get(alias) not in (None, ""):
            result[key] = str(identity[alias])
    # Canonical names win over aliases when both are present.
    for key in IDENTITY_FIELDS:
        if identity.get(key) not in (None, ""):
            result[key] = str(identity[key])
    return result


class BaseAlertDriver(ABC):
    """Abstract base class for alert source drivers."""

    name: str = "base"

    # Provider vocabulary -> ProviderState
    state_map: dict[str, str] = DEFAULT_STATE_MAP

    @abstractmethod
    def matches(self, payload: Any) -> bool:
        """Return True if the payload structurally looks like this source."""

    @abstractmethod
    def transform(self, payload: Any, envelope: Envelope) -> AlertEvent:
        """Transform a raw payload into an AlertEvent.

        Raises:
            ValidationError: If a required field is missing or invalid.
        """

    def parse_state(self, value: Any) -> str:
        """Map provider state vocabulary onto FIRING/RESOLVED."""
        if isinstance(value, str):
            state = self.state_map.get(value.strip().lower())
            if state:
                return state
        raise ValidationError(
            f"Unable to determine alert state from {value!r}; "
            f"expected one of: {', '.join(sorted(self.state_map))}",
            field="state",
        )

    def parse_priority(self, value: Any) -> str:
        """Parse a P0-P3 priority, case-insensitively."""
        if value is None or str(value).strip() == "":
            raise ValidationError("Missing required field 'priority'", field="priority")
        candidate = str(value).strip().upper()
        if candidate not in Priority.values:
            raise ValidationError(
                f"Invalid priority {value!r}; expected one of: {', '.join(Priority.values)}",
                field="priority",
            )
        return candidate

    def parse_title(self, value: Any) -> str:
        title = self.sanitize_string(value, MAX_TITLE_LENGTH)
        if not title:
            raise ValidationError("Missing required field 'title'", field="title")
        return title

    def parse_timestamp(self, value: Any, field_name: str = "occurred_at") -> datetime:
        """Parse an ISO-8601 timestamp into an aware UTC datetime."""
        parsed = None
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, str) and value.strip() and value != ZERO_TIMESTAMP:
            try:
                parsed = parse_datetime(value.strip())
                if parsed is None:
                    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            except ValueError:
                parsed = None

        if parsed is None:
            raise ValidationError(
                f"Invalid or missing timestamp {value!r}", field=field_name
            )
        if timezone.is_naive(parsed):
            parsed = parsed.replace(tzinfo=dt_tz.utc)
        return parsed.astimezone(dt_tz.utc)

    @staticmethod
    def sanitize_string(value: Any, max_length: int) -> str | None:
        """Strip control characters, trim, and truncate. Empty becomes None."""
        if value is None:
            return None
        text = _CONTROL_CHARS.sub("", str(value)).strip()
        if not text:
            return None
        if len(text) > max_length:
            text = text[: max_length - 3].rstrip() + "..."
        return text

    @staticmethod
    def validate_url(value: Any) -> str | None:
        """Return the URL if it is a well-formed http(s) URL, otherwise None."""
        if not isinstance(value, str):
            return None
        url = value.strip()
        if not url or len(url) > MAX_URL_LENGTH:
            return None
        try:
            parsed = urlparse(url)
        except ValueError:
            return None
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return None
        if _CONTROL_CHARS.search(url) or " " in url:
            return None
        return url

    def build_links(self, candidates: dict[str, Any]) -> dict[str, str]:
        """Validate candidate links, silently dropping invalid ones."""
        links = {}
        for key in LINK_FIELDS:
            url = self.validate_url(candidates.get(key))
            if url:
                links[key] = url
        return links

    @staticmethod
    def as_mapping(value: Any, field_name: str) -> dict[str, Any]:
        """Return ``value`` as an object; a missing value becomes an empty dict."""
        if value is None or value == "":
            return {}
        if not isinstance(value, dict):
            raise ValidationError(
                f"Invalid field '{field_name}': expected an object, got {type(value).__name__}",
                field=field_name,
            )
        return value

    @staticmethod
    def as_text(value: Any, field_name: str) -> str:
        """Return ``value`` as a string; a missing value becomes an empty string."""
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValidationError(
                f"Invalid field '{field_name}': expected a string, got {type(value).__name__}",
                field=field_name,
            )
        return value

    @staticmethod
    def safe_string(value: Any) -> str | None:
        if value is None or value == "":
            return None
        return str(value)

    def debug_context(self, envelope: Envelope | None, **fields: Any) -> str:
        """Build a bounded, single-line context string for operator triage."""
        parts = [f"source={self.name}"]
        if envelope and envelope.event_id:
            parts.append(f"messageId={envelope.event_id}")
        for key, value in fields.items():
            if value not in (None, ""):
                parts.append(f'{key}="{str(value)[:120]}"')
        return f"[{', '.join(parts)}]"
