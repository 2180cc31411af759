"""
test_lifecycle.py — Zone moderation state machine.

Covers:
    • Creation (pending, moderator direct approval, validation)
    • Allowed and forbidden transitions
    • Error precedence (Forbidden → NotFound → InvalidTransition)
    • Reviewer stamping
    • Concurrent approve / reject on one zone
    • Listener dispatch and isolation

Run with:
    pytest tests/test_lifecycle.py -v
"""

from __future__ import annotations

import asyncio
from typing import List

import pytest

from backend.app.core.errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from backend.app.spatial.radius_utils import Coordinate
from backend.app.zones.lifecycle import ALLOWED_TRANSITIONS, ZoneLifecycle, is_allowed
from backend.app.zones.models import LifecycleEvent, Severity, UserRef, Zone, ZoneStatus
from backend.app.zones.store import InMemoryZoneStore

MODERATOR = "mod-1"
REPORTER = "user-7"


def _make_lifecycle(store=None, listeners=None) -> ZoneLifecycle:
    return ZoneLifecycle(store or InMemoryZoneStore(), listeners)


def _create(lifecycle: ZoneLifecycle, **overrides) -> Zone:
    kwargs = dict(
        title="Open manhole",
        description="Cover missing near the bus stop",
        location="MG Road",
        severity=Severity.HIGH,
        reporter=UserRef(id=REPORTER, name="Ravi"),
        coordinates=Coordinate(19.0769, 83.7603),
    )
    kwargs.update(overrides)
    return asyncio.run(lifecycle.create(**kwargs))


def _transition(lifecycle: ZoneLifecycle, zone_id: str, target, actor=MODERATOR, moderator=True):
    return asyncio.run(lifecycle.transition(zone_id, target, actor, moderator))


class _RecordingListener:
    def __init__(self):
        self.events: List[LifecycleEvent] = []

    async def __call__(self, event: LifecycleEvent) -> None:
        self.events.append(event)


# ═══════════════════════════════════════════════════════════════════════════
# Creation
# ═══════════════════════════════════════════════════════════════════════════

class TestCreate:

    def test_report_starts_pending(self):
        lifecycle = _make_lifecycle()
        zone = _create(lifecycle)
        assert zone.status == ZoneStatus.PENDING
        assert zone.reviewed_by is None
        assert zone.reviewed_at is None
        assert zone.reported_by.id == REPORTER

    def test_text_is_trimmed(self):
        zone = _create(_make_lifecycle(), title="  Fallen tree  ", landmark="   ")
        assert zone.title == "Fallen tree"
        assert zone.landmark is None

    def test_moderator_can_publish_directly(self):
        listener = _RecordingListener()
        lifecycle = _make_lifecycle(listeners=[listener])
        zone = _create(lifecycle, approve=True, reporter_is_moderator=True,
                       reporter=UserRef(id=MODERATOR))
        assert zone.status == ZoneStatus.APPROVED
        assert zone.reviewed_by == MODERATOR
        assert zone.reviewed_at is not None
        assert len(listener.events) == 1
        assert listener.events[0].is_creation
        assert listener.events[0].new_status == ZoneStatus.APPROVED

    def test_non_moderator_approve_flag_ignored(self):
        listener = _RecordingListener()
        lifecycle = _make_lifecycle(listeners=[listener])
        zone = _create(lifecycle, approve=True, reporter_is_moderator=False)
        assert zone.status == ZoneStatus.PENDING
        assert listener.events == []

    def test_pending_creation_emits_nothing(self):
        listener = _RecordingListener()
        _create(_make_lifecycle(listeners=[listener]))
        assert listener.events == []

    @pytest.mark.parametrize("field, value", [
        ("title", ""),
        ("title", "x" * 101),
        ("description", "   "),
        ("description", "x" * 501),
        ("location", ""),
        ("severity", "extreme"),
    ])
    def test_invalid_input(self, field, value):
        with pytest.raises(ValidationError):
            _create(_make_lifecycle(), **{field: value})

    def test_limits_are_inclusive(self):
        zone = _create(_make_lifecycle(), title="x" * 100, description="y" * 500)
        assert len(zone.title) == 100


# ═══════════════════════════════════════════════════════════════════════════
# Transitions
# ═══════════════════════════════════════════════════════════════════════════

class TestTransitionTable:

    def test_allowed(self):
        assert is_allowed(ZoneStatus.PENDING, ZoneStatus.APPROVED)
        assert is_allowed(ZoneStatus.PENDING, ZoneStatus.REJECTED)
        assert is_allowed(ZoneStatus.APPROVED, ZoneStatus.SAFE)

    @pytest.mark.parametrize("current", list(ZoneStatus))
    @pytest.mark.parametrize("target", list(ZoneStatus))
    def test_everything_else_refused(self, current, target):
        expected = target in ALLOWED_TRANSITIONS.get(current, set())
        assert is_allowed(current, target) is expected

    def test_terminal_states(self):
        assert ZoneStatus.REJECTED not in ALLOWED_TRANSITIONS
        assert ZoneStatus.SAFE not in ALLOWED_TRANSITIONS


class TestTransition:

    def test_approve_stamps_reviewer(self):
        lifecycle = _make_lifecycle()
        zone = _create(lifecycle)
        updated = _transition(lifecycle, zone.id, ZoneStatus.APPROVED)
        assert updated.status == ZoneStatus.APPROVED
        assert updated.reviewed_by == MODERATOR
        assert updated.reviewed_at is not None
        assert updated.updated_at >= zone.updated_at

    def test_reject_stamps_reviewer(self):
        lifecycle = _make_lifecycle()
        zone = _create(lifecycle)
        updated = _transition(lifecycle, zone.id, "rejected")
        assert updated.status == ZoneStatus.REJECTED
        assert updated.reviewed_by == MODERATOR

    def test_safe_keeps_original_reviewer(self):
        lifecycle = _make_lifecycle()
        zone = _create(lifecycle)
        approved = _transition(lifecycle, zone.id, ZoneStatus.APPROVED)
        safe = _transition(lifecycle, zone.id, ZoneStatus.SAFE, actor="mod-2")
        assert safe.status == ZoneStatus.SAFE
        assert safe.reviewed_by == MODERATOR
        assert safe.reviewed_at == approved.reviewed_at

    def test_immutable_fields_unchanged(self):
        lifecycle = _make_lifecycle()
        zone = _create(lifecycle)
        updated = _transition(lifecycle, zone.id, ZoneStatus.APPROVED)
        assert (updated.title, updated.description, updated.severity) == (
            zone.title, zone.description, zone.severity,
        )

    @pytest.mark.parametrize("path, target", [
        ([], ZoneStatus.SAFE),
        ([], ZoneStatus.PENDING),
        ([ZoneStatus.APPROVED], ZoneStatus.APPROVED),
        ([ZoneStatus.APPROVED], ZoneStatus.REJECTED),
        ([ZoneStatus.REJECTED], ZoneStatus.APPROVED),
        ([ZoneStatus.REJECTED], ZoneStatus.SAFE),
        ([ZoneStatus.APPROVED, ZoneStatus.SAFE], ZoneStatus.APPROVED),
        ([ZoneStatus.APPROVED, ZoneStatus.SAFE], ZoneStatus.PENDING),
    ])
    def test_invalid_transition_leaves_zone_unchanged(self, path, target):
        lifecycle = _make_lifecycle()
        zone = _create(lifecycle)
        for step in path:
            _transition(lifecycle, zone.id, step)
        before = asyncio.run(lifecycle.store.get(zone.id))

        with pytest.raises(InvalidTransitionError) as exc_info:
            _transition(lifecycle, zone.id, target)

        assert exc_info.value.status_code == 409
        assert asyncio.run(lifecycle.store.get(zone.id)) == before

    def test_unknown_status(self):
        lifecycle = _make_lifecycle()
        zone = _create(lifecycle)
        with pytest.raises(ValidationError):
            _transition(lifecycle, zone.id, "archived")


class TestErrorPrecedence:

    def test_forbidden_for_non_moderator(self):
        lifecycle = _make_lifecycle()
        zone = _create(lifecycle)
        with pytest.raises(ForbiddenError):
            _transition(lifecycle, zone.id, ZoneStatus.APPROVED, actor=REPORTER, moderator=False)
        assert asyncio.run(lifecycle.store.get(zone.id)).status == ZoneStatus.PENDING

    def test_forbidden_before_not_found(self):
        with pytest.raises(ForbiddenError):
            _transition(_make_lifecycle(), "missing", ZoneStatus.APPROVED, moderator=False)

    def test_not_found_before_invalid_transition(self):
        with pytest.raises(NotFoundError):
            _transition(_make_lifecycle(), "missing", ZoneStatus.SAFE)

    def test_forbidden_before_invalid_transition(self):
        lifecycle = _make_lifecycle()
        zone = _create(lifecycle)
        with pytest.raises(ForbiddenError):
            _transition(lifecycle, zone.id, ZoneStatus.SAFE, moderator=False)


# ═══════════════════════════════════════════════════════════════════════════
# Concurrency
# ═══════════════════════════════════════════════════════════════════════════

class _InterleavingStore(InMemoryZoneStore):
    """Yields inside get() so concurrent transitions both read the old status."""

    async def get(self, zone_id):
        zone = await super().get(zone_id)
        await asyncio.sleep(0.01)
        return zone


class TestConcurrentTransitions:

    def test_exactly_one_winner(self):
        listener = _RecordingListener()
        lifecycle = _make_lifecycle(store=_InterleavingStore(), listeners=[listener])
        zone = _create(lifecycle)

        async def race():
            return await asyncio.gather(
                lifecycle.transition(zone.id, ZoneStatus.APPROVED, "mod-a", True),
                lifecycle.transition(zone.id, ZoneStatus.REJECTED, "mod-b", True),
                return_exceptions=True,
            )

        results = asyncio.run(race())
        winners = [r for r in results if isinstance(r, Zone)]
        losers = [r for r in results if isinstance(r, InvalidTransitionError)]

        assert len(winners) == 1
        assert len(losers) == 1
        final = asyncio.run(lifecycle.store.get(zone.id))
        assert final.status == winners[0].status
        assert len(listener.events) == 1

    def test_double_approve_one_event(self):
        listener = _RecordingListener()
        lifecycle = _make_lifecycle(store=_InterleavingStore(), listeners=[listener])
        zone = _create(lifecycle)

        async def race():
            return await asyncio.gather(
                *(lifecycle.transition(zone.id, ZoneStatus.APPROVED, f"mod-{i}", True)
                  for i in range(5)),
                return_exceptions=True,
            )

        results = asyncio.run(race())
        assert sum(isinstance(r, Zone) for r in results) == 1
        assert sum(isinstance(r, InvalidTransitionError) for r in results) == 4
        assert len(listener.events) == 1


# ═══════════════════════════════════════════════════════════════════════════
# Listeners
# ═══════════════════════════════════════════════════════════════════════════

class TestListeners:

    def test_event_carries_previous_and_new_status(self):
        listener = _RecordingListener()
        lifecycle = _make_lifecycle(listeners=[listener])
        zone = _create(lifecycle)
        _transition(lifecycle, zone.id, ZoneStatus.APPROVED)
        _transition(lifecycle, zone.id, ZoneStatus.SAFE)

        assert [(e.previous_status, e.new_status) for e in listener.events] == [
            (ZoneStatus.PENDING, ZoneStatus.APPROVED),
            (ZoneStatus.APPROVED, ZoneStatus.SAFE),
        ]
        assert listener.events[-1].zone.status == ZoneStatus.SAFE

    def test_sync_listener_supported(self):
        seen = []
        lifecycle = _make_lifecycle(listeners=[seen.append])
        zone = _create(lifecycle)
        _transition(lifecycle, zone.id, ZoneStatus.REJECTED)
        assert seen[0].new_status == ZoneStatus.REJECTED

    def test_failing_listener_does_not_fail_transition(self):
        after = _RecordingListener()

        async def broken(event):
            raise RuntimeError("listener down")

        lifecycle = _make_lifecycle(listeners=[broken, after])
        zone = _create(lifecycle)
        updated = _transition(lifecycle, zone.id, ZoneStatus.APPROVED)

        assert updated.status == ZoneStatus.APPROVED
        assert len(after.events) == 1

    def test_no_event_on_failure(self):
        listener = _RecordingListener()
        lifecycle = _make_lifecycle(listeners=[listener])
        zone = _create(lifecycle)
        with pytest.raises(InvalidTransitionError):
            _transition(lifecycle, zone.id, ZoneStatus.SAFE)
        assert listener.events == []
