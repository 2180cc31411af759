"""
FastAPI routes: notification job inspection (moderators).

    GET /notifications/jobs        — recent jobs, newest first
    GET /notifications/jobs/{id}   — one job with per-recipient results
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from backend.app.alerts.models import JobStatus
from backend.app.api.deps import Services, get_services, require_moderator
from backend.app.core.errors import NotFoundError
from backend.app.core.security import Identity

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/jobs")
async def list_jobs(
    status: Optional[JobStatus] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    _: Identity = Depends(require_moderator),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    jobs = services.job_manager.list_jobs(status)[:limit]
    return [job.to_dict() for job in jobs]


@router.get("/jobs/{job_id}")
async def get_job(
    job_id: str,
    _: Identity = Depends(require_moderator),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    job = services.job_manager.get(job_id)
    if job is None:
        raise NotFoundError("Notification job", id=job_id)
    return job.to_dict()
