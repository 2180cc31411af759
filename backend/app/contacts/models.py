"""
models.py — Contact data structures.

A contact is one user's opt-in to SMS alerts. Each user has at most one.

    active ──request-removal──▶ pending_removal ──approve──▶ (deleted)
                                      │
                                      └──reject──▶ active

pending_removal contacts still receive alerts until a moderator approves
the removal.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ContactStatus(str, Enum):
    ACTIVE          = "active"
    PENDING_REMOVAL = "pending_removal"


# Statuses that still receive zone alerts
NOTIFIABLE_STATUSES = frozenset({ContactStatus.ACTIVE, ContactStatus.PENDING_REMOVAL})


def _generate_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Contact:
    """
    Attributes
    ----------
    user_id : str
        Owning user; unique across contacts.
    phone : str
        Canonical form produced by ``contacts.phone.normalize``.
    email : str | None
        Stored for the moderators' records; alerts go out by SMS only.
    """
    user_id: str
    name: str
    phone: str
    email: Optional[str] = None
    id: str = field(default_factory=_generate_id)
    status: ContactStatus = ContactStatus.ACTIVE
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def is_notifiable(self) -> bool:
        return self.status in NOTIFIABLE_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
