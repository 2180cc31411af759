"""
zones — Reported hazard zones and their moderation lifecycle.

Sub-modules:
    models     — Zone, ZoneSnapshot, LifecycleEvent and the status enums
    store      — persistence (in-memory and SQLAlchemy)
    lifecycle  — state machine: create, approve, reject, mark safe
"""
