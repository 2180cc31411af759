"""
messages.py — SMS text for each message variant.

Texts are rendered from a ZoneSnapshot only, so a job formats the zone as
it was when the job was dispatched.
"""

from __future__ import annotations

from backend.app.alerts.models import MessageVariant
from backend.app.zones.models import ZoneSnapshot, ZoneStatus

_APPROVED = (
    'ALERT: RedZone "{title}" at {location} has been verified and approved. '
    "Severity: {severity}. Please exercise caution in this area."
)
_REPORTED = (
    'ALERT: RedZone "{title}" at {location} has been reported. '
    "Severity: {severity}. Please exercise caution in this area."
)
_SAFE = (
    'SAFETY UPDATE: The area "{title}" at {location} is now marked as SAFE '
    "by authorities. You can resume normal activities in this area."
)
_REPORTER = (
    'Good news! Your RedZone report "{title}" at {location} has been approved '
    "by a moderator. Thank you for helping keep our community safe."
)


def format_message(zone: ZoneSnapshot, variant: MessageVariant) -> str:
    """Render the SMS body for *variant*."""
    variant = MessageVariant(variant)
    if variant == MessageVariant.APPROVED:
        template = _APPROVED
    elif variant == MessageVariant.CREATED:
        template = _APPROVED if zone.status == ZoneStatus.APPROVED else _REPORTED
    elif variant == MessageVariant.SAFE:
        template = _SAFE
    else:
        template = _REPORTER

    return template.format(
        title=zone.title,
        location=zone.location,
        severity=zone.severity.value.upper(),
    )
