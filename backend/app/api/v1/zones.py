"""
FastAPI routes: zone reporting, moderation and proximity.

    POST /zones                 — report a zone (moderators may publish directly)
    GET  /zones/recent          — approved zones, newest first (cached)
    POST /zones/proximity       — risk tier for a position
    GET  /zones/{id}            — one zone
    PUT  /zones/{id}/approve    — moderator: pending → approved (SMS fanout)
    PUT  /zones/{id}/reject     — moderator: pending → rejected
    PUT  /zones/{id}/safe-now   — moderator: approved → safe (SMS fanout)

Moderation responses return as soon as the transition commits; SMS delivery
runs in the background and never changes the response.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status

from backend.app.alerts.alert_service import RECENT_ZONES_CACHE_PREFIX
from backend.app.api.deps import Services, get_identity, get_services
from backend.app.api.schemas import ProximityRequest, ZoneCreateRequest
from backend.app.core.cache import cache_get, cache_set
from backend.app.core.config import settings
from backend.app.core.errors import NotFoundError
from backend.app.core.security import Identity
from backend.app.zones.models import UserRef, ZoneStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/zones", tags=["zones"])

# Statuses anyone may read; pending and rejected reports are visible only
# to moderators and the reporter
_PUBLIC_STATUSES = frozenset({ZoneStatus.APPROVED, ZoneStatus.SAFE})


@router.post("", status_code=status.HTTP_201_CREATED)
async def report_zone(
    body: ZoneCreateRequest,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """
    Report a hazardous zone.

    Reports are queued for moderation. ``approved=true`` publishes the zone
    immediately when the caller is a moderator and is ignored otherwise.
    """
    if body.approved and not identity.is_moderator:
        logger.info("Ignoring approved=true from non-moderator %s", identity.user_id)

    zone = await services.lifecycle.create(
        title=body.title,
        description=body.description,
        location=body.location,
        landmark=body.landmark,
        severity=body.severity,
        coordinates=body.coordinates.to_coordinate() if body.coordinates else None,
        reporter=UserRef(id=identity.user_id, name=identity.name),
        reporter_is_moderator=identity.is_moderator,
        approve=body.approved,
    )
    return zone.to_dict()


@router.get("/recent")
async def recent_zones(
    limit: Optional[int] = Query(
        None, ge=1, le=settings.RECENT_ZONES_MAX_LIMIT,
        description="Maximum zones to return",
    ),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    """Approved zones, newest first."""
    limit = limit or settings.RECENT_ZONES_LIMIT
    cache_key = f"{RECENT_ZONES_CACHE_PREFIX}{limit}"

    cached = await cache_get(cache_key)
    if cached is not None:
        return cached

    zones = await services.store.list_by_status(ZoneStatus.APPROVED, limit=limit)
    payload = [z.to_dict() for z in zones]
    await cache_set(cache_key, payload, ttl=settings.REDIS_RECENT_ZONES_TTL)
    return payload


@router.post("/proximity")
async def proximity(
    body: ProximityRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Classify a position against every approved zone."""
    zones = await services.store.list_by_status(ZoneStatus.APPROVED)
    result = services.proximity.evaluate(body.to_coordinate(), zones)
    return result.to_dict()


@router.get("/{zone_id}")
async def get_zone(
    zone_id: str,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    zone = await services.store.get(zone_id)
    visible = zone is not None and (
        zone.status in _PUBLIC_STATUSES
        or identity.is_moderator
        or zone.reported_by.id == identity.user_id
    )
    if not visible:
        raise NotFoundError("Zone", id=zone_id)
    return zone.to_dict()


@router.put("/{zone_id}/approve")
async def approve_zone(
    zone_id: str,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    zone = await services.lifecycle.approve(zone_id, identity.user_id, identity.is_moderator)
    return zone.to_dict()


@router.put("/{zone_id}/reject")
async def reject_zone(
    zone_id: str,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    zone = await services.lifecycle.reject(zone_id, identity.user_id, identity.is_moderator)
    return zone.to_dict()


@router.put("/{zone_id}/safe-now")
async def mark_zone_safe(
    zone_id: str,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    zone = await services.lifecycle.mark_safe(zone_id, identity.user_id, identity.is_moderator)
    return zone.to_dict()
