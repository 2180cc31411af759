"""
models.py — Zone domain types shared by the store, lifecycle, fanout and
proximity modules.

Defines:
    • Severity       — reported hazard level
    • ZoneStatus     — moderation state
    • UserRef        — typed reference to the reporting user
    • Zone           — one reported hazard
    • ZoneSnapshot   — immutable view handed to notification jobs
    • LifecycleEvent — emitted after every successful status change

═══════════════════════════════════════════════════════════════════════════
ZONE STATE MACHINE
═══════════════════════════════════════════════════════════════════════════

    pending ──approve──▶ approved ──safe-now──▶ safe
       │
       └────reject────▶ rejected

    rejected and safe are terminal. reviewed_by / reviewed_at are stamped
    by approve and reject only.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from backend.app.spatial.radius_utils import Coordinate

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class Severity(str, Enum):
    LOW    = "low"
    MEDIUM = "medium"
    HIGH   = "high"


class ZoneStatus(str, Enum):
    PENDING  = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SAFE     = "safe"


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

def _generate_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class UserRef:
    """
    The reporting user: always an id, optionally with an expanded view.

    Query paths that join user details fill ``name``; business logic only
    ever reads ``id``.
    """
    id: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class ZoneSnapshot:
    """The fields a notification needs, frozen at dispatch time."""
    id: str
    title: str
    location: str
    severity: Severity
    status: ZoneStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "location": self.location,
            "severity": self.severity.value,
            "status": self.status.value,
        }


@dataclass
class Zone:
    """One reported hazard."""
    title: str
    description: str
    location: str
    severity: Severity
    reported_by: UserRef
    id: str = field(default_factory=_generate_id)
    status: ZoneStatus = ZoneStatus.PENDING
    landmark: Optional[str] = None
    coordinates: Optional[Coordinate] = None
    reviewed_by: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    reviewed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def snapshot(self) -> ZoneSnapshot:
        return ZoneSnapshot(
            id=self.id,
            title=self.title,
            location=self.location,
            severity=self.severity,
            status=self.status,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "location": self.location,
            "landmark": self.landmark,
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
            "severity": self.severity.value,
            "status": self.status.value,
            "reported_by": self.reported_by.to_dict(),
            "reviewed_by": self.reviewed_by,
            "created_at": _iso(self.created_at),
            "reviewed_at": _iso(self.reviewed_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class LifecycleEvent:
    """
    A committed status change.

    ``previous_status`` is None when a moderator created the zone directly
    in the approved state.
    """
    zone: Zone
    previous_status: Optional[ZoneStatus]
    new_status: ZoneStatus
    actor_id: str
    occurred_at: datetime = field(default_factory=_now)

    @property
    def is_creation(self) -> bool:
        return self.previous_status is None
