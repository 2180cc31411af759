"""
lifecycle.py — Zone moderation state machine.

Every status change goes through ``ZoneLifecycle``. It checks privilege,
existence and the transition table (in that order), applies the change as a
compare-and-set on the store, then hands a ``LifecycleEvent`` to each
registered listener.

═══════════════════════════════════════════════════════════════════════════
TRANSITIONS
═══════════════════════════════════════════════════════════════════════════

    From       To         Stamps reviewer
    ────────   ────────   ───────────────
    pending    approved   yes
    pending    rejected   yes
    approved   safe       no

Listeners run after the store commit. A listener that raises is logged and
skipped; the transition has already succeeded and is returned as such.
"""

from __future__ import annotations

import inspect
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, FrozenSet, List, Optional, Union

from backend.app.core.errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from backend.app.spatial.radius_utils import Coordinate
from backend.app.zones.models import (
    DESCRIPTION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    LifecycleEvent,
    Severity,
    UserRef,
    Zone,
    ZoneStatus,
)
from backend.app.zones.store import ZoneStore

logger = logging.getLogger(__name__)

LifecycleListener = Callable[[LifecycleEvent], Union[None, Awaitable[None]]]


ALLOWED_TRANSITIONS: Dict[ZoneStatus, FrozenSet[ZoneStatus]] = {
    ZoneStatus.PENDING:  frozenset({ZoneStatus.APPROVED, ZoneStatus.REJECTED}),
    ZoneStatus.APPROVED: frozenset({ZoneStatus.SAFE}),
}

# Transitions that record who reviewed the report
_REVIEW_TARGETS = frozenset({ZoneStatus.APPROVED, ZoneStatus.REJECTED})

_ACTION_NAMES = {
    ZoneStatus.APPROVED: "approve zones",
    ZoneStatus.REJECTED: "reject zones",
    ZoneStatus.SAFE:     "mark zones safe",
}


def is_allowed(current: ZoneStatus, target: ZoneStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def _clean_text(value: Optional[str], field: str, max_length: Optional[int] = None) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    if max_length is not None and len(text) > max_length:
        raise ValidationError(
            f"{field} must be at most {max_length} characters",
            field=field, max_length=max_length,
        )
    return text


class ZoneLifecycle:
    """
    Applies zone state transitions and notifies listeners.

    Usage:
        lifecycle = ZoneLifecycle(store)
        lifecycle.add_listener(alert_service.on_lifecycle_event)

        zone = await lifecycle.transition(zone_id, ZoneStatus.APPROVED,
                                          actor_id="u-42", actor_is_moderator=True)
    """

    def __init__(
        self,
        store: ZoneStore,
        listeners: Optional[List[LifecycleListener]] = None,
    ):
        self.store = store
        self._listeners: List[LifecycleListener] = list(listeners or [])

    def add_listener(self, listener: LifecycleListener) -> None:
        self._listeners.append(listener)

    # ── Creation ─────────────────────────────────────────────────────────

    async def create(
        self,
        *,
        title: str,
        description: str,
        location: str,
        severity: Union[Severity, str],
        reporter: UserRef,
        reporter_is_moderator: bool = False,
        landmark: Optional[str] = None,
        coordinates: Optional[Coordinate] = None,
        approve: bool = False,
    ) -> Zone:
        """
        Store a new report.

        Reports start as pending. A moderator may ask for the report to be
        approved at creation; the zone is then stored as approved with the
        creator as reviewer, and a creation event is emitted.
        """
        try:
            severity = Severity(severity)
        except ValueError:
            raise ValidationError(
                f"Unknown severity '{severity}'", field="severity",
                allowed=[s.value for s in Severity],
            )

        zone = Zone(
            title=_clean_text(title, "title", TITLE_MAX_LENGTH),
            description=_clean_text(description, "description", DESCRIPTION_MAX_LENGTH),
            location=_clean_text(location, "location"),
            landmark=(landmark or "").strip() or None,
            coordinates=coordinates,
            severity=severity,
            reported_by=reporter,
        )

        auto_approved = approve and reporter_is_moderator
        if auto_approved:
            zone.status = ZoneStatus.APPROVED
            zone.reviewed_by = reporter.id
            zone.reviewed_at = zone.created_at
        zone.updated_at = zone.created_at

        zone = await self.store.create(zone)
        logger.info(
            "Zone %s created (%s) by %s", zone.id, zone.status.value, reporter.id,
            extra={"zone_id": zone.id},
        )

        if auto_approved:
            await self._emit(LifecycleEvent(
                zone=zone,
                previous_status=None,
                new_status=zone.status,
                actor_id=reporter.id,
            ))
        return zone

    # ── Transitions ──────────────────────────────────────────────────────

    async def transition(
        self,
        zone_id: str,
        target: Union[ZoneStatus, str],
        actor_id: str,
        actor_is_moderator: bool,
    ) -> Zone:
        """
        Move a zone to *target*.

        Raises ForbiddenError, NotFoundError or InvalidTransitionError, in
        that order of precedence. A concurrent transition that commits first
        makes this call fail with InvalidTransitionError.
        """
        try:
            target = ZoneStatus(target)
        except ValueError:
            raise ValidationError(f"Unknown status '{target}'", field="status")

        if not actor_is_moderator:
            raise ForbiddenError(
                _ACTION_NAMES.get(target, "change zone status"), zone_id=zone_id,
            )

        zone = await self.store.get(zone_id)
        if zone is None:
            raise NotFoundError("Zone", id=zone_id)

        current = zone.status
        if not is_allowed(current, target):
            raise InvalidTransitionError(zone_id, current.value, target.value)

        now = datetime.now(timezone.utc)
        stamp_reviewer = target in _REVIEW_TARGETS
        updated = await self.store.update_status(
            zone_id,
            expected=current,
            status=target,
            updated_at=now,
            reviewed_by=actor_id if stamp_reviewer else None,
            reviewed_at=now if stamp_reviewer else None,
        )
        if updated is None:
            # Lost the race: report against whatever the zone is now
            latest = await self.store.get(zone_id)
            observed = latest.status.value if latest else current.value
            raise InvalidTransitionError(zone_id, observed, target.value)

        logger.info(
            "Zone %s: %s → %s by %s", zone_id, current.value, target.value, actor_id,
            extra={"zone_id": zone_id},
        )
        await self._emit(LifecycleEvent(
            zone=updated,
            previous_status=current,
            new_status=target,
            actor_id=actor_id,
            occurred_at=now,
        ))
        return updated

    async def approve(self, zone_id: str, actor_id: str, actor_is_moderator: bool) -> Zone:
        return await self.transition(zone_id, ZoneStatus.APPROVED, actor_id, actor_is_moderator)

    async def reject(self, zone_id: str, actor_id: str, actor_is_moderator: bool) -> Zone:
        return await self.transition(zone_id, ZoneStatus.REJECTED, actor_id, actor_is_moderator)

    async def mark_safe(self, zone_id: str, actor_id: str, actor_is_moderator: bool) -> Zone:
        return await self.transition(zone_id, ZoneStatus.SAFE, actor_id, actor_is_moderator)

    # ── Listeners ────────────────────────────────────────────────────────

    async def _emit(self, event: LifecycleEvent) -> None:
        for listener in self._listeners:
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Lifecycle listener %r failed for zone %s",
                    listener, event.zone.id,
                    extra={"zone_id": event.zone.id},
                )
