"""
store.py — Zone persistence.

Two implementations of the same contract:

    InMemoryZoneStore  — dict + lock, for tests and single-process demos
    SqlZoneStore       — SQLAlchemy async (PostgreSQL / SQLite)

Status changes go through ``update_status``, a compare-and-set keyed on the
status the caller last observed. When two moderators act on the same pending
zone at once, exactly one conditional update matches; the other gets None
and the lifecycle reports an invalid transition.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import Float, String, Text, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.database import Base, UTCDateTime
from backend.app.spatial.radius_utils import Coordinate
from backend.app.zones.models import Severity, UserRef, Zone, ZoneStatus


class ZoneStore(ABC):
    """Persistence contract used by ZoneLifecycle and the API."""

    @abstractmethod
    async def create(self, zone: Zone) -> Zone:
        ...

    @abstractmethod
    async def get(self, zone_id: str) -> Optional[Zone]:
        ...

    @abstractmethod
    async def update_status(
        self,
        zone_id: str,
        *,
        expected: ZoneStatus,
        status: ZoneStatus,
        updated_at: datetime,
        reviewed_by: Optional[str] = None,
        reviewed_at: Optional[datetime] = None,
    ) -> Optional[Zone]:
        """
        Set *status* only if the zone is currently *expected*.

        Reviewer fields are written only when given. Returns the updated
        zone, or None when the zone is missing or its status has moved on.
        """

    @abstractmethod
    async def list_by_status(
        self, status: ZoneStatus, *, limit: Optional[int] = None,
    ) -> List[Zone]:
        """Zones in *status*, newest first."""


# ═══════════════════════════════════════════════════════════════════════════
# In-memory
# ═══════════════════════════════════════════════════════════════════════════

class InMemoryZoneStore(ZoneStore):
    """Dict-backed store; hands out copies so callers cannot mutate state."""

    def __init__(self) -> None:
        self._zones: Dict[str, Zone] = {}
        self._lock = threading.Lock()

    async def create(self, zone: Zone) -> Zone:
        with self._lock:
            self._zones[zone.id] = replace(zone)
        return replace(zone)

    async def get(self, zone_id: str) -> Optional[Zone]:
        with self._lock:
            zone = self._zones.get(zone_id)
            return replace(zone) if zone else None

    async def update_status(
        self,
        zone_id: str,
        *,
        expected: ZoneStatus,
        status: ZoneStatus,
        updated_at: datetime,
        reviewed_by: Optional[str] = None,
        reviewed_at: Optional[datetime] = None,
    ) -> Optional[Zone]:
        with self._lock:
            zone = self._zones.get(zone_id)
            if zone is None or zone.status != expected:
                return None
            changes = {"status": status, "updated_at": updated_at}
            if reviewed_by is not None:
                changes["reviewed_by"] = reviewed_by
                changes["reviewed_at"] = reviewed_at
            zone = replace(zone, **changes)
            self._zones[zone_id] = zone
            return replace(zone)

    async def list_by_status(
        self, status: ZoneStatus, *, limit: Optional[int] = None,
    ) -> List[Zone]:
        with self._lock:
            zones = [replace(z) for z in self._zones.values() if z.status == status]
        zones.sort(key=lambda z: z.created_at, reverse=True)
        return zones[:limit] if limit is not None else zones


# ═══════════════════════════════════════════════════════════════════════════
# SQLAlchemy
# ═══════════════════════════════════════════════════════════════════════════

class ZoneRecord(Base):
    __tablename__ = "zones"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    title: Mapped[str] = mapped_column(String(100))
    description: Mapped[str] = mapped_column(Text)
    location: Mapped[str] = mapped_column(String(255))
    landmark: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    severity: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(16), index=True)
    reported_by_id: Mapped[str] = mapped_column(String(64), index=True)
    reported_by_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), index=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(timezone=True), nullable=True)

    @classmethod
    def from_domain(cls, zone: Zone) -> "ZoneRecord":
        return cls(
            id=zone.id,
            title=zone.title,
            description=zone.description,
            location=zone.location,
            landmark=zone.landmark,
            lat=zone.coordinates.lat if zone.coordinates else None,
            lng=zone.coordinates.lng if zone.coordinates else None,
            severity=zone.severity.value,
            status=zone.status.value,
            reported_by_id=zone.reported_by.id,
            reported_by_name=zone.reported_by.name,
            reviewed_by=zone.reviewed_by,
            created_at=zone.created_at,
            reviewed_at=zone.reviewed_at,
            updated_at=zone.updated_at,
        )

    def to_domain(self) -> Zone:
        coordinates = None
        if self.lat is not None and self.lng is not None:
            coordinates = Coordinate(lat=self.lat, lng=self.lng)
        return Zone(
            id=self.id,
            title=self.title,
            description=self.description,
            location=self.location,
            landmark=self.landmark,
            coordinates=coordinates,
            severity=Severity(self.severity),
            status=ZoneStatus(self.status),
            reported_by=UserRef(id=self.reported_by_id, name=self.reported_by_name),
            reviewed_by=self.reviewed_by,
            created_at=self.created_at,
            reviewed_at=self.reviewed_at,
            updated_at=self.updated_at,
        )


class SqlZoneStore(ZoneStore):
    """Zones table access; one short transaction per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, zone: Zone) -> Zone:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(ZoneRecord.from_domain(zone))
        return zone

    async def get(self, zone_id: str) -> Optional[Zone]:
        async with self._session_factory() as session:
            record = await session.get(ZoneRecord, zone_id)
            return record.to_domain() if record else None

    async def update_status(
        self,
        zone_id: str,
        *,
        expected: ZoneStatus,
        status: ZoneStatus,
        updated_at: datetime,
        reviewed_by: Optional[str] = None,
        reviewed_at: Optional[datetime] = None,
    ) -> Optional[Zone]:
        values = {"status": status.value, "updated_at": updated_at}
        if reviewed_by is not None:
            values["reviewed_by"] = reviewed_by
            values["reviewed_at"] = reviewed_at

        stmt = (
            update(ZoneRecord)
            .where(ZoneRecord.id == zone_id, ZoneRecord.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)
                if result.rowcount != 1:
                    return None
                record = await session.get(ZoneRecord, zone_id)
                return record.to_domain()

    async def list_by_status(
        self, status: ZoneStatus, *, limit: Optional[int] = None,
    ) -> List[Zone]:
        stmt = (
            select(ZoneRecord)
            .where(ZoneRecord.status == status.value)
            .order_by(ZoneRecord.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [record.to_domain() for record in result.scalars()]
