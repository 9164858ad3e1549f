"""
Lifecycle decision engine.

Turns an incoming AlertEvent plus the prior persisted state for its
fingerprint into exactly one Action and the state to persist next.

    prior        incoming   guard                      action
    -----        --------   -----                      ------
    none         FIRING                                CREATE
    none         RESOLVED                              SKIP
    any          any        occurred_at < last seen    SKIP_STALE
    OPEN         FIRING                                COMMENT
    OPEN         RESOLVED                              CLOSE
    OPEN/manual  RESOLVED                              SKIP_MANUAL_CLOSE (resolution recorded)
    OPEN/manual  FIRING     resolution already seen    CREATE
    OPEN/manual  FIRING     still the same episode     SKIP_MANUAL_CLOSE
    CLOSED       FIRING                                CREATE (fresh issue, never reopen)
    CLOSED       RESOLVED                              SKIP

decide() is pure: no clock, no I/O. Timestamps written into the state come
from the event itself, so the same (prior, event) pair always produces the
same Decision.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from apps.alerts.choices import Action, ProviderState, StateStatus
from apps.alerts.drivers.base import AlertEvent


@dataclass(frozen=True)
class AlertState:
    """Persisted lifecycle state of one fingerprint."""

    fingerprint: str
    status: str  # StateStatus
    source: str
    title: str
    priority: str
    teams: tuple[str, ...]
    last_provider_state: str  # ProviderState
    last_provider_state_at: datetime
    first_seen_at: datetime
    last_seen_at: datetime
    issue_ref: int | None = None
    manually_closed: bool = False
    manually_closed_at: datetime | None = None
    tracker_synced: bool = False
    # Store bookkeeping for conditional writes; not part of the lifecycle.
    version: int | None = field(default=None, compare=False)

    @property
    def is_open(self) -> bool:
        return self.status == StateStatus.OPEN

    def mark_manually_closed(self, at: datetime) -> "AlertState":
        """Return a copy recording an operator closure of the tracker issue."""
        if self.manually_closed:
            return self
        return replace(self, manually_closed=True, manually_closed_at=at)


@dataclass(frozen=True)
class Decision:
    """Outcome of decide(): one action plus the state to persist."""

    action: str  # Action
    state: AlertState | None
    prior: AlertState | None = None

    @property
    def changed(self) -> bool:
        """True when the state differs from the prior one and must be written."""
        return self.state is not None and self.state != self.prior

    @property
    def is_skip(self) -> bool:
        return self.action in (Action.SKIP, Action.SKIP_STALE, Action.SKIP_MANUAL_CLOSE)


def _new_state(
    fingerprint: str, event: AlertEvent, version: int | None = None
) -> AlertState:
    return AlertState(
        fingerprint=fingerprint,
        status=StateStatus.OPEN,
        source=event.source,
        title=event.title,
        priority=event.priority,
        teams=tuple(event.teams),
        last_provider_state=event.state,
        last_provider_state_at=event.occurred_at,
        first_seen_at=event.occurred_at,
        last_seen_at=event.occurred_at,
        version=version,
    )


def _advance(prior: AlertState, event: AlertEvent, **changes) -> AlertState:
    return replace(
        prior,
        title=event.title,
        priority=event.priority,
        teams=tuple(event.teams),
        last_provider_state=event.state,
        last_provider_state_at=event.occurred_at,
        last_seen_at=event.occurred_at,
        **changes,
    )


def decide(prior: AlertState | None, event: AlertEvent, fingerprint: str) -> Decision:
    """Decide the action for ``event`` given the prior state of its fingerprint."""
    firing = event.state == ProviderState.FIRING

    if prior is None:
        if firing:
            return Decision(Action.CREATE, _new_state(fingerprint, event))
        # Nothing to close for a condition we never tracked.
        return Decision(Action.SKIP, None)

    if event.occurred_at < prior.last_provider_state_at:
        return Decision(Action.SKIP_STALE, prior, prior)

    if prior.status == StateStatus.CLOSED:
        if firing:
            return Decision(Action.CREATE, _new_state(fingerprint, event, prior.version), prior)
        return Decision(Action.SKIP, prior, prior)

    if prior.manually_closed:
        if not firing:
            return Decision(Action.SKIP_MANUAL_CLOSE, _advance(prior, event), prior)
        if prior.last_provider_state == ProviderState.RESOLVED:
            # The condition resolved after the operator closed the issue and
            # is firing again: a new occurrence.
            return Decision(Action.CREATE, _new_state(fingerprint, event, prior.version), prior)
        return Decision(Action.SKIP_MANUAL_CLOSE, _advance(prior, event), prior)

    if firing:
        return Decision(Action.COMMENT, _advance(prior, event), prior)

    return Decision(Action.CLOSE, _advance(prior, event, status=StateStatus.CLOSED), prior)
