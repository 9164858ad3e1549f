"""
Pass-through driver for events that are already in canonical form.

Custom emitters can publish AlertEvent documents directly. There is no
provider extraction to fall back on, so validation is strict: structural
violations are reported together, and any link that fails URL validation is
fatal instead of being dropped.
"""

import logging
from typing import Any

from apps.alerts.drivers.base import (
    LINK_FIELDS,
    AlertEvent,
    BaseAlertDriver,
    Envelope,
    canonical_identity,
    parse_teams,
)
from apps.alerts.errors import ValidationError
from apps.alerts.schema import looks_canonical, validate_canonical

logger = logging.getLogger(__name__)


class NormalizedDriver(BaseAlertDriver):
    """Driver for pre-normalized AlertEvent documents."""

    name = "normalized"

    def matches(self, payload: Any) -> bool:
        return looks_canonical(payload)

    def transform(self, payload: Any, envelope: Envelope) -> AlertEvent:
        """Validate a canonical document and build the AlertEvent from it."""
        errors = validate_canonical(payload)
        if errors:
            raise ValidationError(
                "AlertEvent validation failed",
                errors=errors,
                context=self._debug_context(payload, envelope),
            )

        links = self._strict_links(payload.get("links") or {}, payload, envelope)
        teams_value = payload["teams"] if "teams" in payload else payload.get("team")

        try:
            teams = parse_teams(teams_value)
        except ValidationError as e:
            raise e.with_context(self._debug_context(payload, envelope)) from None

        event = AlertEvent(
            schema_version=payload["schema_version"],
            source=payload["source"],
            state=payload["state"],
            title=payload["title"].strip(),
            priority=payload["priority"],
            occurred_at=self.parse_timestamp(payload["occurred_at"]),
            teams=teams,
            description=payload.get("description"),
            summary=payload.get("summary"),
            reason=payload.get("reason"),
            identity=canonical_identity(payload.get("identity")),
            links=links,
            raw_provider=payload.get("raw_provider") or {},
        )

        logger.info(
            "Processed normalized alert",
            extra={
                "source": event.source,
                "title": event.title,
                "teams": list(event.teams),
                "priority": event.priority,
                "state": event.state,
                "message_id": envelope.event_id,
            },
        )
        return event

    def _strict_links(
        self, links: dict[str, Any], payload: dict[str, Any], envelope: Envelope
    ) -> dict[str, str]:
        result = {}
        for key in LINK_FIELDS:
            value = links.get(key)
            if not value:
                continue
            url = self.validate_url(value)
            if url is None:
                raise ValidationError(
                    f"Invalid {key} after URL validation: {str(value)[:200]}",
                    field=f"links.{key}",
                    context=self._debug_context(payload, envelope),
                )
            result[key] = url
        return result

    def _debug_context(self, payload: Any, envelope: Envelope) -> str:
        if not isinstance(payload, dict):
            return self.debug_context(envelope)
        return self.debug_context(
            envelope,
            emitter=payload.get("source"),
            alertTitle=payload.get("title"),
            team=payload.get("teams") or payload.get("team"),
        )
