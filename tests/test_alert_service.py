"""
test_alert_service.py — Lifecycle events → notification jobs.

Covers:
    • Variant selection per lifecycle event
    • Recipient snapshot from the contact directory
    • Reporter-personalized message on approval
    • End to end: lifecycle + listener + job pool + fanout

Run with:
    pytest tests/test_alert_service.py -v
"""

from __future__ import annotations

import asyncio

import pytest

from backend.app.alerts.alert_service import (
    ZoneAlertService,
    broadcast_variant,
    invalidate_recent_zones,
    notifies_reporter,
)
from backend.app.alerts.fanout import NotificationFanout
from backend.app.alerts.jobs import NotificationJobManager
from backend.app.alerts.models import MessageVariant
from backend.app.contacts.directory import InMemoryContactDirectory
from backend.app.contacts.models import ContactStatus
from backend.app.zones.lifecycle import ZoneLifecycle
from backend.app.zones.models import LifecycleEvent, Severity, UserRef, Zone, ZoneStatus
from backend.app.zones.store import InMemoryZoneStore

REPORTER = "user-7"
MODERATOR = "mod-1"


def _make_zone(status: ZoneStatus = ZoneStatus.APPROVED, reporter: str = REPORTER) -> Zone:
    return Zone(
        title="Live wire",
        description="Electric line down across the lane",
        location="Gandhi Nagar",
        severity=Severity.HIGH,
        reported_by=UserRef(id=reporter),
        status=status,
    )


def _make_event(previous, new, reporter: str = REPORTER) -> LifecycleEvent:
    return LifecycleEvent(
        zone=_make_zone(new, reporter),
        previous_status=previous,
        new_status=new,
        actor_id=MODERATOR,
    )


@pytest.fixture
def directory():
    d = InMemoryContactDirectory()
    asyncio.run(d.upsert("user-1", name="Asha", phone="+919000000001"))
    asyncio.run(d.upsert("user-2", name="Bilal", phone="+919000000002"))
    return d


@pytest.fixture
def job_manager(provider):
    manager = NotificationJobManager(NotificationFanout(provider))
    yield manager
    manager.shutdown()


def _run(service: ZoneAlertService, event: LifecycleEvent):
    jobs = asyncio.run(service.on_lifecycle_event(event))
    assert service.job_manager.wait(timeout=5)
    return jobs


# ═══════════════════════════════════════════════════════════════════════════
# Variant selection
# ═══════════════════════════════════════════════════════════════════════════

class TestVariantSelection:

    def test_approval(self):
        event = _make_event(ZoneStatus.PENDING, ZoneStatus.APPROVED)
        assert broadcast_variant(event) == MessageVariant.APPROVED
        assert notifies_reporter(event)

    def test_creation_as_approved(self):
        event = _make_event(None, ZoneStatus.APPROVED)
        assert broadcast_variant(event) == MessageVariant.CREATED
        assert not notifies_reporter(event)

    def test_safe(self):
        event = _make_event(ZoneStatus.APPROVED, ZoneStatus.SAFE)
        assert broadcast_variant(event) == MessageVariant.SAFE
        assert not notifies_reporter(event)

    def test_rejection_sends_nothing(self):
        event = _make_event(ZoneStatus.PENDING, ZoneStatus.REJECTED)
        assert broadcast_variant(event) is None
        assert not notifies_reporter(event)


# ═══════════════════════════════════════════════════════════════════════════
# Listener
# ═══════════════════════════════════════════════════════════════════════════

class TestZoneAlertService:

    def test_approval_broadcasts_to_all_contacts(self, directory, job_manager, provider):
        service = ZoneAlertService(directory, job_manager)
        jobs = _run(service, _make_event(ZoneStatus.PENDING, ZoneStatus.APPROVED))

        assert len(jobs) == 1  # reporter has no contact
        assert jobs[0].variant == MessageVariant.APPROVED
        assert sorted(to for to, _ in provider.sent) == ["+919000000001", "+919000000002"]

    def test_reporter_gets_personal_message_too(self, directory, job_manager, provider):
        asyncio.run(directory.upsert(REPORTER, name="Ravi", phone="+919000000007"))
        service = ZoneAlertService(directory, job_manager)
        jobs = _run(service, _make_event(ZoneStatus.PENDING, ZoneStatus.APPROVED))

        assert [j.variant for j in jobs] == [
            MessageVariant.APPROVED, MessageVariant.REPORTER_PERSONALIZED,
        ]
        bodies = provider.bodies_for("+919000000007")
        assert len(bodies) == 2
        assert any(b.startswith("ALERT:") for b in bodies)
        assert any(b.startswith("Good news!") for b in bodies)

    def test_safe_broadcast(self, directory, job_manager, provider):
        service = ZoneAlertService(directory, job_manager)
        jobs = _run(service, _make_event(ZoneStatus.APPROVED, ZoneStatus.SAFE))
        assert [j.variant for j in jobs] == [MessageVariant.SAFE]
        assert all(body.startswith("SAFETY UPDATE") for _, body in provider.sent)

    def test_rejection_no_jobs(self, directory, job_manager, provider):
        service = ZoneAlertService(directory, job_manager)
        jobs = _run(service, _make_event(ZoneStatus.PENDING, ZoneStatus.REJECTED))
        assert jobs == []
        assert provider.sent == []

    def test_pending_removal_contacts_still_notified(self, directory, job_manager, provider):
        asyncio.run(directory.request_removal("user-2"))
        contact = asyncio.run(directory.find_by_user("user-2"))
        assert contact.status == ContactStatus.PENDING_REMOVAL

        service = ZoneAlertService(directory, job_manager)
        _run(service, _make_event(ZoneStatus.APPROVED, ZoneStatus.SAFE))
        assert "+919000000002" in {to for to, _ in provider.sent}

    def test_recipients_snapshot_at_dispatch(self, directory, job_manager):
        service = ZoneAlertService(directory, job_manager)
        jobs = _run(service, _make_event(ZoneStatus.APPROVED, ZoneStatus.SAFE))
        asyncio.run(directory.upsert("user-3", name="Chen", phone="+919000000003"))
        assert jobs[0].targets == ["+919000000001", "+919000000002"]

    def test_no_contacts(self, job_manager, provider):
        service = ZoneAlertService(InMemoryContactDirectory(), job_manager)
        jobs = _run(service, _make_event(ZoneStatus.PENDING, ZoneStatus.APPROVED))
        assert jobs[0].result.attempted == 0
        assert provider.sent == []


class TestEndToEnd:

    def test_moderator_reporter_gets_broadcast_and_personal(self, job_manager, provider):
        directory = InMemoryContactDirectory()
        asyncio.run(directory.upsert(MODERATOR, name="Mod", phone="9000000009"))
        lifecycle = ZoneLifecycle(InMemoryZoneStore())
        lifecycle.add_listener(ZoneAlertService(directory, job_manager).on_lifecycle_event)

        async def scenario():
            zone = await lifecycle.create(
                title="Pothole cluster", description="Three deep potholes",
                location="Ring Road", severity="medium",
                reporter=UserRef(id=MODERATOR), reporter_is_moderator=True,
            )
            await lifecycle.approve(zone.id, MODERATOR, True)

        asyncio.run(scenario())
        assert job_manager.wait(timeout=5)

        bodies = provider.bodies_for("+919000000009")
        assert len(bodies) == 2
        assert sum(b.startswith("ALERT:") for b in bodies) == 1
        assert sum(b.startswith("Good news!") for b in bodies) == 1

    def test_failed_send_does_not_fail_transition(self, provider_factory):
        provider = provider_factory(fail_on={"+919000000001"})
        manager = NotificationJobManager(NotificationFanout(provider))
        directory = InMemoryContactDirectory()
        asyncio.run(directory.upsert("user-1", name="Asha", phone="+919000000001"))
        asyncio.run(directory.upsert("user-2", name="Bilal", phone="+919000000002"))
        lifecycle = ZoneLifecycle(InMemoryZoneStore())
        lifecycle.add_listener(ZoneAlertService(directory, manager).on_lifecycle_event)

        try:
            async def scenario():
                zone = await lifecycle.create(
                    title="Gas leak", description="Smell of gas near the market",
                    location="Main Bazaar", severity="high", reporter=UserRef(id=REPORTER),
                )
                return await lifecycle.approve(zone.id, MODERATOR, True)

            zone = asyncio.run(scenario())
            assert zone.status == ZoneStatus.APPROVED
            assert manager.wait(timeout=5)
            job = manager.list_jobs()[0]
            assert job.result.succeeded == 1
            assert job.result.failed == 1
        finally:
            manager.shutdown()


class TestCacheInvalidation:

    def test_noop_when_cache_disabled(self):
        asyncio.run(invalidate_recent_zones(_make_event(ZoneStatus.PENDING, ZoneStatus.APPROVED)))
