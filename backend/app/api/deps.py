"""
FastAPI dependencies — service wiring and caller identity.

All long-lived collaborators (stores, lifecycle, fanout, job pool) are
built once per application by ``build_services`` and hung on
``app.state.services``. Routes reach them through ``get_services`` so tests
can swap in fakes by building their own ``Services``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.alerts.alert_service import ZoneAlertService, invalidate_recent_zones
from backend.app.alerts.channels.sms_gateway import SMSProvider, build_sms_provider
from backend.app.alerts.fanout import NotificationFanout
from backend.app.alerts.jobs import NotificationJobManager
from backend.app.contacts.directory import ContactDirectory, SqlContactDirectory
from backend.app.core.errors import ForbiddenError
from backend.app.core.logging_config import update_request_context
from backend.app.core.security import AuthContext, Identity
from backend.app.spatial.proximity import ProximityClassifier
from backend.app.zones.lifecycle import ZoneLifecycle
from backend.app.zones.store import SqlZoneStore, ZoneStore

logger = logging.getLogger(__name__)

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Services:
    store: ZoneStore
    directory: ContactDirectory
    lifecycle: ZoneLifecycle
    provider: SMSProvider
    fanout: NotificationFanout
    job_manager: NotificationJobManager
    alerts: ZoneAlertService
    proximity: ProximityClassifier
    auth: AuthContext
    default_country_prefix: str = "+91"

    def shutdown(self, wait: bool = True) -> None:
        self.job_manager.shutdown(wait=wait)


def build_services(
    settings: Any,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    provider: Optional[SMSProvider] = None,
    store: Optional[ZoneStore] = None,
    directory: Optional[ContactDirectory] = None,
) -> Services:
    """Wire the application's collaborators from *settings*."""
    store = store or SqlZoneStore(session_factory)
    directory = directory or SqlContactDirectory(session_factory)
    provider = provider or build_sms_provider(settings)

    fanout = NotificationFanout(
        provider,
        default_country_prefix=settings.DEFAULT_COUNTRY_PREFIX,
        max_workers=settings.FANOUT_MAX_WORKERS,
    )
    job_manager = NotificationJobManager(
        fanout,
        max_workers=settings.FANOUT_JOB_WORKERS,
        history=settings.FANOUT_JOB_HISTORY,
    )
    alerts = ZoneAlertService(directory, job_manager)

    lifecycle = ZoneLifecycle(store)
    lifecycle.add_listener(invalidate_recent_zones)
    lifecycle.add_listener(alerts.on_lifecycle_event)

    return Services(
        store=store,
        directory=directory,
        lifecycle=lifecycle,
        provider=provider,
        fanout=fanout,
        job_manager=job_manager,
        alerts=alerts,
        proximity=ProximityClassifier(settings.DANGER_RADIUS_KM, settings.WARNING_RADIUS_KM),
        auth=AuthContext(settings.JWT_SECRET, settings.JWT_ALGORITHM),
        default_country_prefix=settings.DEFAULT_COUNTRY_PREFIX,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> Identity:
    """Verify the bearer token. Raises UnauthorizedError (401)."""
    identity = services.auth.verify(credentials.credentials if credentials else None)
    update_request_context(user_id=identity.user_id)
    return identity


async def require_moderator(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_moderator:
        raise ForbiddenError("perform this action", user_id=identity.user_id)
    return identity
