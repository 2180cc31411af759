"""
Pydantic schemas for the zone, contact and proximity API.

Separated from the route handlers so they are reusable across
the codebase (background workers, tests).

Field-level limits here give fast 422s; ZoneLifecycle re-validates the
trimmed text so non-HTTP callers get the same rules.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from backend.app.spatial.radius_utils import Coordinate
from backend.app.zones.models import DESCRIPTION_MAX_LENGTH, TITLE_MAX_LENGTH, Severity


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------

class CoordinatesIn(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0, description="Latitude in decimal degrees",
                       examples=[19.0769])
    lng: float = Field(..., ge=-180.0, le=180.0, description="Longitude in decimal degrees",
                       examples=[83.7603])

    def to_coordinate(self) -> Coordinate:
        return Coordinate(lat=self.lat, lng=self.lng)


def _strip(value: Optional[str]) -> Optional[str]:
    return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Zones
# ---------------------------------------------------------------------------

class ZoneCreateRequest(BaseModel):
    """Request body for POST /zones."""
    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH,
                       examples=["Flooded underpass"])
    description: str = Field(..., min_length=1, max_length=DESCRIPTION_MAX_LENGTH,
                             examples=["Water above knee level, vehicles stalled"])
    location: str = Field(..., min_length=1, examples=["Station Road, Rayagada"])
    landmark: Optional[str] = Field(None, examples=["Near the railway gate"])
    severity: Severity = Field(..., examples=["high"])
    coordinates: Optional[CoordinatesIn] = None
    approved: bool = Field(
        False,
        description="Moderators only: publish immediately instead of queueing for review",
    )

    @field_validator("title", "description", "location", "landmark", mode="before")
    @classmethod
    def _strip_text(cls, v):
        return _strip(v)


class ProximityRequest(BaseModel):
    """Request body for POST /zones/proximity."""
    lat: float = Field(..., ge=-90.0, le=90.0, examples=[19.0769])
    lng: float = Field(..., ge=-180.0, le=180.0, examples=[83.7603])

    def to_coordinate(self) -> Coordinate:
        return Coordinate(lat=self.lat, lng=self.lng)


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

class ContactNotifyRequest(BaseModel):
    """Request body for POST /contacts/notify. The phone is normalised server-side."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Asha"])
    phone: str = Field(..., min_length=1, max_length=32, examples=["98765 43210"])
    email: Optional[EmailStr] = Field(None, examples=["asha@example.com"])

    @field_validator("name", mode="before")
    @classmethod
    def _strip_text(cls, v):
        return _strip(v)

    @field_validator("email", mode="before")
    @classmethod
    def _blank_email(cls, v):
        return _strip(v) or None
