"""
jobs.py — Background execution and tracking of notification jobs.

Lifecycle-triggered fanout must not hold up the HTTP response, and must not
be cancelled when the client disconnects. Jobs therefore run on a dedicated
thread pool owned by ``NotificationJobManager``, not on the request's event
loop.

    submit() ──▶ PENDING ──▶ RUNNING ──▶ COMPLETED
                                 │
                                 └─────▶ FAILED   (fanout itself raised)

A job whose recipients partly failed is still COMPLETED; the failure counts
are logged and kept on the job result. Finished jobs are kept in a bounded
registry for inspection and dropped oldest-first.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from backend.app.alerts.fanout import NotificationFanout
from backend.app.alerts.models import JobStatus, MessageVariant, NotificationJob
from backend.app.core.errors import PartialFanoutFailure
from backend.app.zones.models import ZoneSnapshot

logger = logging.getLogger(__name__)


class NotificationJobManager:
    """
    Runs notification jobs off the request path.

    Usage:
        manager = NotificationJobManager(fanout, max_workers=2)
        job = manager.submit(zone.snapshot(), phones, MessageVariant.APPROVED)

        manager.wait(job.job_id, timeout=5)
        print(manager.get(job.job_id).to_dict())
    """

    def __init__(
        self,
        fanout: NotificationFanout,
        *,
        max_workers: int = 2,
        history: int = 200,
    ):
        self.fanout = fanout
        self._history = max(history, 1)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify-job")
        self._jobs: "OrderedDict[str, NotificationJob]" = OrderedDict()
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def submit(
        self,
        zone: ZoneSnapshot,
        targets: Sequence[str],
        variant: MessageVariant,
    ) -> NotificationJob:
        """Queue a fanout. Returns immediately with the PENDING job."""
        job = NotificationJob(zone=zone, targets=list(targets), variant=variant)
        with self._lock:
            self._jobs[job.job_id] = job
            self._trim_history()
            self._futures[job.job_id] = self._executor.submit(self._run, job)

        logger.info(
            "Queued notification %s [%s] for zone %s → %d recipient(s)",
            job.job_id, variant.value, zone.id, len(job.targets),
            extra={"job_id": job.job_id, "zone_id": zone.id, "variant": variant.value,
                   "recipient_count": len(job.targets)},
        )
        return job

    def get(self, job_id: str) -> Optional[NotificationJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self, status: Optional[JobStatus] = None) -> List[NotificationJob]:
        """Jobs newest first, optionally filtered by status."""
        with self._lock:
            jobs = list(self._jobs.values())
        if status:
            jobs = [j for j in jobs if j.status == status]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    def wait(self, job_id: Optional[str] = None, timeout: Optional[float] = None) -> bool:
        """
        Block until *job_id* (or every queued job) finishes.

        Returns False if the timeout expired first.
        """
        with self._lock:
            if job_id is not None:
                futures = [self._futures[job_id]] if job_id in self._futures else []
            else:
                futures = list(self._futures.values())
        if not futures:
            return True
        _, not_done = wait_futures(futures, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        logger.info("Notification job manager stopped")

    # ── Internals ────────────────────────────────────────────────────────

    def _run(self, job: NotificationJob) -> None:
        job.status = JobStatus.RUNNING
        job.started_at = datetime.now(timezone.utc)
        try:
            job.result = self.fanout.dispatch(
                job.zone, job.targets, job.variant, job_ref=job.job_id,
            )
            job.result.raise_for_failures(job.job_id)
        except PartialFanoutFailure as exc:
            logger.warning(
                "%s (%s)", exc.message, ", ".join(job.result.failed_phones),
                extra={"job_id": job.job_id, "zone_id": job.zone.id,
                       "recipient_count": exc.attempted, "failed": exc.failed},
            )
            job.status = JobStatus.COMPLETED
        except Exception as exc:
            logger.exception(
                "Notification %s failed", job.job_id,
                extra={"job_id": job.job_id, "zone_id": job.zone.id},
            )
            job.status = JobStatus.FAILED
            job.error = str(exc)
        else:
            job.status = JobStatus.COMPLETED
        finally:
            job.completed_at = datetime.now(timezone.utc)
            with self._lock:
                self._futures.pop(job.job_id, None)

    def _trim_history(self) -> None:
        """Drop the oldest finished jobs beyond the history bound. Caller holds the lock."""
        excess = len(self._jobs) - self._history
        if excess <= 0:
            return
        for job_id in [jid for jid, j in self._jobs.items() if j.is_finished][:excess]:
            del self._jobs[job_id]
