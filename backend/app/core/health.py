"""
Health check aggregation — deep health probe for all subsystems.

Checks:
    • Database connectivity (PostgreSQL / SQLite)
    • Cache connectivity (Redis)
    • SMS provider mode (simulated sends count as degraded)

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
    - Monitoring dashboards
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from backend.app.core.cache import ping_cache
from backend.app.core.config import settings
from backend.app.core.database import engine, ping_db

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


def _redact_url(url: str) -> str:
    return url.split("@")[-1] if "@" in url else url


async def check_database(bind: AsyncEngine = engine) -> ComponentHealth:
    """Round-trip a query through the engine."""
    comp = ComponentHealth(name="database")
    start = time.monotonic()
    try:
        await ping_db(bind)
        comp.message = "Connection available"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database health check failed: %s", e)
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(e)
    comp.details = {"url": _redact_url(str(bind.url))}
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_redis() -> ComponentHealth:
    """Check Redis connectivity. An unreachable cache only degrades service."""
    comp = ComponentHealth(name="redis")
    start = time.monotonic()
    reachable = await ping_cache()
    if reachable is None:
        comp.status = HealthStatus.HEALTHY
        comp.message = "Caching disabled"
    elif reachable:
        comp.message = "Cache available"
    else:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Cache unreachable — serving uncached"
    comp.details = {"url": _redact_url(settings.REDIS_URL)}
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_sms_provider(provider: Optional[Any]) -> ComponentHealth:
    """Report which SMS provider is active."""
    comp = ComponentHealth(name="sms_provider")
    if provider is None:
        comp.status = HealthStatus.DEGRADED
        comp.message = "No SMS provider configured"
        return comp

    comp.details = {"provider": provider.name, "configured": settings.SMS_PROVIDER}
    if provider.is_simulated:
        comp.status = HealthStatus.DEGRADED
        comp.message = "SMS sends are simulated"
    else:
        comp.message = f"Sending via {provider.name}"
    return comp


async def run_health_check(
    provider: Optional[Any] = None,
    bind: AsyncEngine = engine,
) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    checks = [
        check_database(bind),
        check_redis(),
        check_sms_provider(provider),
    ]

    # Run all checks
    for coro in checks:
        comp = await coro
        report.components.append(comp)

    # Aggregate status
    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
