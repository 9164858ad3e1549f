"""
Stable fingerprints for alert deduplication.

A fingerprint identifies one logical alert condition across FIRING/RESOLVED
occurrences and delivery retries. It is derived from the source, the
case-folded title and whichever identity fields the provider supplied:

    sha256("account_id=1|alarm_id=abc|region=us-east-1|source=grafana|title=disk full")
"""

import hashlib

from apps.alerts.drivers.base import IDENTITY_FIELDS, AlertEvent

SEPARATOR = "|"


def normalize_title(title: str) -> str:
    """Normalize a title for fingerprinting (whitespace collapsed, case-folded)."""
    return " ".join(title.split()).casefold()


def fingerprint_inputs(event: AlertEvent) -> dict[str, str]:
    """Return the key/value pairs that feed the fingerprint."""
    inputs = {
        "source": event.source,
        "title": normalize_title(event.title),
    }
    for key in IDENTITY_FIELDS:
        value = event.identity.get(key)
        if value not in (None, ""):
            inputs[key] = str(value).strip()
    return inputs


def canonical_string(inputs: dict[str, str]) -> str:
    return SEPARATOR.join(f"{key}={inputs[key]}" for key in sorted(inputs))


def generate_fingerprint(event: AlertEvent) -> str:
    """Generate the hex SHA-256 fingerprint for an AlertEvent."""
    material = canonical_string(fingerprint_inputs(event))
    return hashlib.sha256(material.encode("utf-8")).hexdigest()
