"""
Alert drivers for turning provider payloads into canonical AlertEvents.
"""

import logging
from typing import Any

from apps.alerts.drivers.base import AlertEvent, BaseAlertDriver, Envelope, parse_teams
from apps.alerts.drivers.cloudwatch import CloudWatchDriver
from apps.alerts.drivers.grafana import GrafanaDriver
from apps.alerts.drivers.normalized import NormalizedDriver

logger = logging.getLogger(__name__)

__all__ = [
    "AlertEvent",
    "BaseAlertDriver",
    "Envelope",
    "parse_teams",
    "CloudWatchDriver",
    "GrafanaDriver",
    "NormalizedDriver",
    "DRIVER_REGISTRY",
    "DEFAULT_DRIVER",
    "get_driver",
    "detect_source",
]

# Closed set of supported sources (order matters for detection)
DRIVER_REGISTRY: dict[str, type[BaseAlertDriver]] = {
    "normalized": NormalizedDriver,
    "cloudwatch": CloudWatchDriver,
    "grafana": GrafanaDriver,
}

# Used when neither metadata nor structure identifies the payload.
DEFAULT_DRIVER = "grafana"


def get_driver(name: str) -> BaseAlertDriver:
    """
    Get a driver instance by name (case-insensitive).

    Args:
        name: Driver name (e.g., "grafana", "cloudwatch", "normalized").

    Returns:
        Driver instance.

    Raises:
        ValueError: If driver name is not found.
    """
    key = (name or "").strip().lower()
    if key not in DRIVER_REGISTRY:
        raise ValueError(
            f"Unknown alert source: {name}. Available: {', '.join(DRIVER_REGISTRY.keys())}"
        )
    return DRIVER_REGISTRY[key]()


def detect_source(payload: Any, provider_hint: str | None = None) -> str:
    """
    Choose the source name for a payload. Never raises.

    An explicit, known provider hint from transport metadata wins. Otherwise
    each driver's structural check is tried in registry order, falling back
    to DEFAULT_DRIVER.

    Args:
        payload: Decoded payload (any JSON value).
        provider_hint: Optional source declared by the transport.

    Returns:
        A key of DRIVER_REGISTRY.
    """
    hint = (provider_hint or "").strip().lower()
    if hint in DRIVER_REGISTRY:
        return hint

    for name, driver_class in DRIVER_REGISTRY.items():
        try:
            if driver_class().matches(payload):
                return name
        except Exception:
            logger.debug(f"Driver {name} could not inspect payload", exc_info=True)

    return DEFAULT_DRIVER
