"""
Core package — cross-cutting concerns.

Modules:
    config      — environment variables & settings
    logging     — structured JSON logging
    errors      — exception hierarchy & handlers
    health      — health check aggregation
    database    — async SQLAlchemy engine and sessions
    cache       — Redis cache layer
    security    — bearer token verification & roles
    middleware  — request logging
"""
