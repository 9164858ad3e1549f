"""
Structural validation of canonical AlertEvent documents.

Used for events that arrive already normalized by a third-party emitter.
Every violated field is reported, not just the first one, so the emitter
can fix its payload in one round trip.

Canonical documents use ``teams`` (list). A legacy ``team`` string is still
accepted when ``teams`` is absent.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from apps.alerts.choices import Priority, ProviderState
from apps.alerts.drivers.base import (
    LINK_FIELDS,
    MAX_DESCRIPTION_LENGTH,
    MAX_REASON_LENGTH,
    MAX_SUMMARY_LENGTH,
    MAX_TEAM_NAME_LENGTH,
    MAX_TEAMS,
    MAX_TITLE_LENGTH,
    MAX_URL_LENGTH,
    SCHEMA_VERSION,
)

MAX_SOURCE_LENGTH = 50
MAX_IDENTITY_VALUE_LENGTH = 256

SOURCE_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]*$")
TIMESTAMP_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{1,9})?(Z|[+-]\d{2}:\d{2})$"
)

REQUIRED_FIELDS = (
    "schema_version",
    "source",
    "state",
    "title",
    "priority",
    "occurred_at",
    "identity",
    "links",
)

OPTIONAL_TEXT_FIELDS = {
    "description": MAX_DESCRIPTION_LENGTH,
    "summary": MAX_SUMMARY_LENGTH,
    "reason": MAX_REASON_LENGTH,
}


def _received(value: Any) -> str:
    try:
        text = json.dumps(value)
    except (TypeError, ValueError):
        text = repr(value)
    if len(text) > 80:
        text = text[:77] + "..."
    return f" (received: {text})"


def looks_canonical(payload: Any) -> bool:
    """Cheap structural check used for source detection.

    Only checks for presence of the required keys, not their validity.
    """
    if not isinstance(payload, dict):
        return False
    if not all(key in payload for key in REQUIRED_FIELDS):
        return False
    return "teams" in payload or "team" in payload


def is_iso_timestamp(value: Any) -> bool:
    """Return True for a full ISO-8601 date-time with an explicit offset."""
    if not isinstance(value, str) or not TIMESTAMP_PATTERN.match(value):
        return False
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def is_well_formed_url(value: Any) -> bool:
    if not isinstance(value, str) or not value or len(value) > MAX_URL_LENGTH:
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def validate_canonical(payload: Any) -> list[str]:
    """Validate a canonical AlertEvent document.

    Returns:
        A list of human-readable violations; empty when the payload is valid.
    """
    if not isinstance(payload, dict):
        return [f"root: must be an object{_received(payload)}"]

    errors: list[str] = []

    for key in REQUIRED_FIELDS:
        if key not in payload:
            errors.append(f"{key}: required field is missing")
    if "teams" not in payload and "team" not in payload:
        errors.append("teams: required field is missing")

    version = payload.get("schema_version")
    if "schema_version" in payload and (
        isinstance(version, bool) or not isinstance(version, int) or version != SCHEMA_VERSION
    ):
        errors.append(f"schema_version: must be the integer {SCHEMA_VERSION}{_received(version)}")

    source = payload.get("source")
    if "source" in payload and (
        not isinstance(source, str)
        or len(source) > MAX_SOURCE_LENGTH
        or not SOURCE_PATTERN.match(source)
    ):
        errors.append(
            f"source: must match {SOURCE_PATTERN.pattern} "
            f"(max {MAX_SOURCE_LENGTH} chars){_received(source)}"
        )

    state = payload.get("state")
    if "state" in payload and state not in ProviderState.values:
        errors.append(
            f"state: must be one of {', '.join(ProviderState.values)}{_received(state)}"
        )

    title = payload.get("title")
    if "title" in payload and (
        not isinstance(title, str) or not title.strip() or len(title) > MAX_TITLE_LENGTH
    ):
        errors.append(
            f"title: must be a non-empty string of at most {MAX_TITLE_LENGTH} chars"
            f"{_received(title)}"
        )

    priority = payload.get("priority")
    if "priority" in payload and priority not in Priority.values:
        errors.append(
            f"priority: must be one of {', '.join(Priority.values)}{_received(priority)}"
        )

    occurred_at = payload.get("occurred_at")
    if "occurred_at" in payload and not is_iso_timestamp(occurred_at):
        errors.append(
            f"occurred_at: must be an ISO-8601 date-time with timezone{_received(occurred_at)}"
        )

    errors.extend(_validate_teams(payload))

    for key, max_length in OPTIONAL_TEXT_FIELDS.items():
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, str) or len(value) > max_length:
            errors.append(f"{key}: must be a string of at most {max_length} chars")

    identity = payload.get("identity")
    if "identity" in payload:
        if not isinstance(identity, dict):
            errors.append(f"identity: must be an object{_received(identity)}")
        else:
            for key, value in identity.items():
                if not isinstance(value, (str, int)) or isinstance(value, bool):
                    errors.append(f"identity.{key}: must be a string{_received(value)}")
                elif len(str(value)) > MAX_IDENTITY_VALUE_LENGTH:
                    errors.append(
                        f"identity.{key}: must be at most {MAX_IDENTITY_VALUE_LENGTH} chars"
                    )

    links = payload.get("links")
    if "links" in payload:
        if not isinstance(links, dict):
            errors.append(f"links: must be an object{_received(links)}")
        else:
            for key, value in links.items():
                if key not in LINK_FIELDS:
                    errors.append(f"links.{key}: unknown link (allowed: {', '.join(LINK_FIELDS)})")
                elif value is not None and not is_well_formed_url(value):
                    errors.append(f"links.{key}: must be a well-formed URL{_received(value)}")

    return errors


def _validate_teams(payload: dict[str, Any]) -> list[str]:
    if "teams" in payload:
        teams = payload["teams"]
        if not isinstance(teams, list):
            return [f"teams: must be an array of strings{_received(teams)}"]
        if not 1 <= len(teams) <= MAX_TEAMS:
            return [f"teams: must contain between 1 and {MAX_TEAMS} entries (got {len(teams)})"]
        errors = []
        for i, team in enumerate(teams):
            if not isinstance(team, str) or not team.strip():
                errors.append(f"teams[{i}]: must be a non-empty string{_received(team)}")
            elif len(team) > MAX_TEAM_NAME_LENGTH:
                errors.append(f"teams[{i}]: must be at most {MAX_TEAM_NAME_LENGTH} chars")
        return errors

    if "team" in payload:
        team = payload["team"]
        if not isinstance(team, str) or not team.strip():
            return [f"team: must be a non-empty string{_received(team)}"]
    return []
