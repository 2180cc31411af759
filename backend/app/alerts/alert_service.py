"""
alert_service.py — Turns zone lifecycle events into notification jobs.

``ZoneAlertService.on_lifecycle_event`` is registered as a ZoneLifecycle
listener. For each event it:

    1. Picks the broadcast variant (see alerts.models for the table)
    2. Takes a snapshot of the recipient list from the ContactDirectory
    3. Submits a broadcast job to the NotificationJobManager
    4. On pending → approved, submits a second job carrying the
       reporter-personalized message to the reporter's contact

The listener returns as soon as the jobs are queued. Send outcomes are
visible only through logs and the job registry.

═══════════════════════════════════════════════════════════════════════════
ORCHESTRATION FLOW
═══════════════════════════════════════════════════════════════════════════

    ZoneLifecycle ──event──▶ ZoneAlertService ──▶ ContactDirectory
                                   │                 (recipient snapshot)
                                   ▼
                         NotificationJobManager ──▶ NotificationFanout ──▶ SMSProvider
"""

from __future__ import annotations

import logging
from typing import List, Optional

from backend.app.alerts.jobs import NotificationJobManager
from backend.app.alerts.models import MessageVariant, NotificationJob
from backend.app.contacts.directory import ContactDirectory
from backend.app.core.cache import cache_clear_prefix
from backend.app.zones.models import LifecycleEvent, ZoneStatus

logger = logging.getLogger(__name__)

RECENT_ZONES_CACHE_PREFIX = "zones:recent:"


def broadcast_variant(event: LifecycleEvent) -> Optional[MessageVariant]:
    """Variant broadcast to every contact for *event*, or None for no broadcast."""
    if event.new_status == ZoneStatus.APPROVED:
        return MessageVariant.CREATED if event.is_creation else MessageVariant.APPROVED
    if event.new_status == ZoneStatus.SAFE:
        return MessageVariant.SAFE
    return None


def notifies_reporter(event: LifecycleEvent) -> bool:
    return event.previous_status == ZoneStatus.PENDING and event.new_status == ZoneStatus.APPROVED


class ZoneAlertService:
    """
    Lifecycle listener that schedules SMS fanout.

    Usage:
        alerts = ZoneAlertService(directory, job_manager)
        lifecycle.add_listener(alerts.on_lifecycle_event)
    """

    def __init__(self, directory: ContactDirectory, job_manager: NotificationJobManager):
        self.directory = directory
        self.job_manager = job_manager

    async def on_lifecycle_event(self, event: LifecycleEvent) -> List[NotificationJob]:
        variant = broadcast_variant(event)
        if variant is None:
            logger.debug(
                "No notification for zone %s → %s", event.zone.id, event.new_status.value,
                extra={"zone_id": event.zone.id},
            )
            return []

        snapshot = event.zone.snapshot()
        recipients = await self.directory.list_active_recipients()
        jobs = [self.job_manager.submit(snapshot, recipients, variant)]

        if notifies_reporter(event):
            contact = await self.directory.find_by_user(event.zone.reported_by.id)
            if contact is not None:
                jobs.append(self.job_manager.submit(
                    snapshot, [contact.phone], MessageVariant.REPORTER_PERSONALIZED,
                ))
            else:
                logger.info(
                    "Reporter %s of zone %s has no contact; skipping personal message",
                    event.zone.reported_by.id, event.zone.id,
                    extra={"zone_id": event.zone.id},
                )
        return jobs


async def invalidate_recent_zones(event: LifecycleEvent) -> None:
    """Lifecycle listener: drop cached recent-zone lists."""
    removed = await cache_clear_prefix(RECENT_ZONES_CACHE_PREFIX)
    if removed:
        logger.debug("Invalidated %d recent-zone cache key(s)", removed,
                     extra={"zone_id": event.zone.id})
