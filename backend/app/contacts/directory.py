"""
directory.py — Contact persistence.

    InMemoryContactDirectory  — dict + lock, for tests
    SqlContactDirectory       — SQLAlchemy async

``list_active_recipients`` is what the notification fanout reads: a snapshot
of canonical phones taken at call time. Contacts added or removed after
that call do not affect a job already dispatched.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import String, delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.contacts.models import NOTIFIABLE_STATUSES, Contact, ContactStatus
from backend.app.core.database import Base, UTCDateTime


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ContactDirectory(ABC):

    @abstractmethod
    async def list_active_recipients(self) -> List[str]:
        """Canonical phones of every notifiable contact, oldest first."""

    @abstractmethod
    async def find_by_user(self, user_id: str) -> Optional[Contact]:
        ...

    @abstractmethod
    async def get(self, contact_id: str) -> Optional[Contact]:
        ...

    @abstractmethod
    async def upsert(
        self, user_id: str, *, name: str, phone: str, email: Optional[str] = None,
    ) -> Tuple[Contact, bool]:
        """
        Create or update the user's contact.

        Returns ``(contact, created)``. An update re-activates a contact
        that was pending removal.
        """

    @abstractmethod
    async def set_status(self, contact_id: str, status: ContactStatus) -> Optional[Contact]:
        ...

    @abstractmethod
    async def delete(self, contact_id: str) -> bool:
        ...

    @abstractmethod
    async def delete_by_user(self, user_id: str) -> bool:
        ...

    async def request_removal(self, user_id: str) -> Optional[Contact]:
        contact = await self.find_by_user(user_id)
        if contact is None:
            return None
        return await self.set_status(contact.id, ContactStatus.PENDING_REMOVAL)


# ═══════════════════════════════════════════════════════════════════════════
# In-memory
# ═══════════════════════════════════════════════════════════════════════════

class InMemoryContactDirectory(ContactDirectory):

    def __init__(self) -> None:
        self._contacts: Dict[str, Contact] = {}
        self._lock = threading.Lock()

    def _by_user(self, user_id: str) -> Optional[Contact]:
        for contact in self._contacts.values():
            if contact.user_id == user_id:
                return contact
        return None

    async def list_active_recipients(self) -> List[str]:
        with self._lock:
            contacts = sorted(self._contacts.values(), key=lambda c: c.created_at)
            return [c.phone for c in contacts if c.is_notifiable]

    async def find_by_user(self, user_id: str) -> Optional[Contact]:
        with self._lock:
            contact = self._by_user(user_id)
            return replace(contact) if contact else None

    async def get(self, contact_id: str) -> Optional[Contact]:
        with self._lock:
            contact = self._contacts.get(contact_id)
            return replace(contact) if contact else None

    async def upsert(
        self, user_id: str, *, name: str, phone: str, email: Optional[str] = None,
    ) -> Tuple[Contact, bool]:
        with self._lock:
            existing = self._by_user(user_id)
            if existing is None:
                contact = Contact(user_id=user_id, name=name, phone=phone, email=email)
                self._contacts[contact.id] = contact
                return replace(contact), True
            contact = replace(
                existing, name=name, phone=phone, email=email,
                status=ContactStatus.ACTIVE, updated_at=_now(),
            )
            self._contacts[contact.id] = contact
            return replace(contact), False

    async def set_status(self, contact_id: str, status: ContactStatus) -> Optional[Contact]:
        with self._lock:
            contact = self._contacts.get(contact_id)
            if contact is None:
                return None
            contact = replace(contact, status=status, updated_at=_now())
            self._contacts[contact_id] = contact
            return replace(contact)

    async def delete(self, contact_id: str) -> bool:
        with self._lock:
            return self._contacts.pop(contact_id, None) is not None

    async def delete_by_user(self, user_id: str) -> bool:
        with self._lock:
            contact = self._by_user(user_id)
            if contact is None:
                return False
            del self._contacts[contact.id]
            return True


# ═══════════════════════════════════════════════════════════════════════════
# SQLAlchemy
# ═══════════════════════════════════════════════════════════════════════════

class ContactRecord(Base):
    __tablename__ = "contacts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    phone: Mapped[str] = mapped_column(String(32))
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True))

    def to_domain(self) -> Contact:
        return Contact(
            id=self.id,
            user_id=self.user_id,
            name=self.name,
            phone=self.phone,
            email=self.email,
            status=ContactStatus(self.status),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class SqlContactDirectory(ContactDirectory):

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_active_recipients(self) -> List[str]:
        stmt = (
            select(ContactRecord.phone)
            .where(ContactRecord.status.in_([s.value for s in NOTIFIABLE_STATUSES]))
            .order_by(ContactRecord.created_at)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars())

    async def find_by_user(self, user_id: str) -> Optional[Contact]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ContactRecord).where(ContactRecord.user_id == user_id)
            )
            record = result.scalar_one_or_none()
            return record.to_domain() if record else None

    async def get(self, contact_id: str) -> Optional[Contact]:
        async with self._session_factory() as session:
            record = await session.get(ContactRecord, contact_id)
            return record.to_domain() if record else None

    async def upsert(
        self, user_id: str, *, name: str, phone: str, email: Optional[str] = None,
    ) -> Tuple[Contact, bool]:
        now = _now()
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(ContactRecord).where(ContactRecord.user_id == user_id)
                )
                record = result.scalar_one_or_none()
                created = record is None
                if created:
                    contact = Contact(user_id=user_id, name=name, phone=phone, email=email)
                    record = ContactRecord(
                        id=contact.id,
                        user_id=user_id,
                        created_at=contact.created_at,
                    )
                    session.add(record)
                record.name = name
                record.phone = phone
                record.email = email
                record.status = ContactStatus.ACTIVE.value
                record.updated_at = now
            return record.to_domain(), created

    async def set_status(self, contact_id: str, status: ContactStatus) -> Optional[Contact]:
        async with self._session_factory() as session:
            async with session.begin():
                record = await session.get(ContactRecord, contact_id)
                if record is None:
                    return None
                record.status = status.value
                record.updated_at = _now()
            return record.to_domain()

    async def delete(self, contact_id: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(ContactRecord).where(ContactRecord.id == contact_id)
                )
            return result.rowcount > 0

    async def delete_by_user(self, user_id: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(ContactRecord).where(ContactRecord.user_id == user_id)
                )
            return result.rowcount > 0
