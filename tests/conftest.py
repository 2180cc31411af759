"""
Shared fixtures.

The environment is pinned before any application module is imported:
settings are read once at import time, and the database engine is built
from DATABASE_URL at the same moment.
"""

from __future__ import annotations

import os
import tempfile
import threading

_DB_DIR = tempfile.mkdtemp(prefix="redzone-tests-")

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/redzone.db"
os.environ["CACHE_ENABLED"] = "false"
os.environ["SMS_PROVIDER"] = "simulation"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DEFAULT_COUNTRY_PREFIX"] = "+91"
os.environ["LOG_LEVEL"] = "WARNING"

import asyncio  # noqa: E402
from typing import Iterable, List, Optional, Tuple  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from backend.app.alerts.channels.sms_gateway import SMSProvider, SMSReceipt  # noqa: E402
from backend.app.api.deps import build_services  # noqa: E402
from backend.app.core.config import settings  # noqa: E402
from backend.app.core.database import async_session_factory, engine, reset_db  # noqa: E402
from backend.app.core.errors import ProviderUnavailableError, SMSDeliveryError  # noqa: E402
from backend.app.main import create_app  # noqa: E402


class RecordingProvider(SMSProvider):
    """SMS provider that records sends and fails on chosen numbers."""

    name = "recording"

    def __init__(
        self,
        fail_on: Iterable[str] = (),
        unavailable_on: Iterable[str] = (),
    ):
        self.fail_on = set(fail_on)
        self.unavailable_on = set(unavailable_on)
        self.sent: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def send(self, to: str, body: str) -> SMSReceipt:
        if to in self.fail_on:
            raise SMSDeliveryError(to, "number rejected")
        if to in self.unavailable_on:
            raise ProviderUnavailableError(self.name, "connection reset")
        with self._lock:
            self.sent.append((to, body))
            return SMSReceipt(id=f"REC{len(self.sent)}", status="queued")

    def bodies_for(self, phone: str) -> List[str]:
        with self._lock:
            return [body for to, body in self.sent if to == phone]


@pytest.fixture
def provider_factory():
    return RecordingProvider


@pytest.fixture
def provider() -> RecordingProvider:
    return RecordingProvider()


@pytest.fixture
def services(provider):
    asyncio.run(reset_db(engine))
    return build_services(settings, async_session_factory, provider=provider)


@pytest.fixture
def client(services):
    app = create_app(services)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    """Build an Authorization header for a user id and role."""

    def _headers(user_id: str, role: str = "user", name: Optional[str] = None):
        claims = {"sub": user_id, "role": role}
        if name:
            claims["name"] = name
        token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
        return {"Authorization": f"Bearer {token}"}

    return _headers
