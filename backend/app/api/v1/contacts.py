"""
FastAPI routes: SMS alert opt-in.

    POST   /contacts/notify                 — create or update my contact
    GET    /contacts/me                     — my contact
    PUT    /contacts/me/request-removal     — ask a moderator to remove me
    DELETE /contacts/me                     — remove my contact now
    PUT    /contacts/{id}/approve-removal   — moderator: delete the contact
    PUT    /contacts/{id}/reject-removal    — moderator: keep the contact active
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response, status

from backend.app.api.deps import Services, get_identity, get_services, require_moderator
from backend.app.api.schemas import ContactNotifyRequest
from backend.app.contacts.models import ContactStatus
from backend.app.contacts.phone import normalize
from backend.app.core.errors import NotFoundError
from backend.app.core.security import Identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.post("/notify")
async def opt_in(
    body: ContactNotifyRequest,
    response: Response,
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Register the caller for zone SMS alerts (201 on create, 200 on update)."""
    phone = normalize(body.phone, services.default_country_prefix)
    contact, created = await services.directory.upsert(
        identity.user_id, name=body.name, phone=phone, email=body.email,
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    logger.info("Contact %s for user %s", "created" if created else "updated", identity.user_id)
    return contact.to_dict()


@router.get("/me")
async def my_contact(
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    contact = await services.directory.find_by_user(identity.user_id)
    if contact is None:
        raise NotFoundError("Contact", user_id=identity.user_id)
    return contact.to_dict()


@router.put("/me/request-removal")
async def request_removal(
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Mark the caller's contact pending removal. Alerts continue until approved."""
    contact = await services.directory.request_removal(identity.user_id)
    if contact is None:
        raise NotFoundError("Contact", user_id=identity.user_id)
    return contact.to_dict()


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_my_contact(
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
) -> Response:
    if not await services.directory.delete_by_user(identity.user_id):
        raise NotFoundError("Contact", user_id=identity.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{contact_id}/approve-removal")
async def approve_removal(
    contact_id: str,
    moderator: Identity = Depends(require_moderator),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    if not await services.directory.delete(contact_id):
        raise NotFoundError("Contact", id=contact_id)
    logger.info("Contact %s removed by %s", contact_id, moderator.user_id)
    return {"id": contact_id, "deleted": True}


@router.put("/{contact_id}/reject-removal")
async def reject_removal(
    contact_id: str,
    moderator: Identity = Depends(require_moderator),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    contact = await services.directory.set_status(contact_id, ContactStatus.ACTIVE)
    if contact is None:
        raise NotFoundError("Contact", id=contact_id)
    logger.info("Removal of contact %s rejected by %s", contact_id, moderator.user_id)
    return contact.to_dict()
