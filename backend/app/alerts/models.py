"""
models.py — Shared data structures for zone notifications.

Defines:
    • MessageVariant    — which message text a job sends
    • DeliveryOutcome   — per-recipient result
    • JobStatus         — notification job state
    • RecipientResult   — one recipient's send record
    • NotificationResult — aggregate of one fanout
    • NotificationJob   — one dispatched fanout, kept in the job registry

═══════════════════════════════════════════════════════════════════════════
VARIANT SELECTION
═══════════════════════════════════════════════════════════════════════════

    Lifecycle event                 Broadcast    Reporter
    ────────────────────────────    ─────────    ─────────────────────
    created directly as approved    CREATED      —
    pending  → approved             APPROVED     REPORTER_PERSONALIZED
    approved → safe                 SAFE         —
    pending  → rejected             —            —

The reporter message goes only to the reporter's own contact, if one
exists, and is sent in addition to the broadcast. A zone created directly
as approved was reviewed by its own reporter, so it gets no reporter message.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from backend.app.core.errors import PartialFanoutFailure
from backend.app.zones.models import ZoneSnapshot


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class MessageVariant(str, Enum):
    CREATED               = "created"
    APPROVED              = "approved"
    SAFE                  = "safe"
    REPORTER_PERSONALIZED = "reporter-personalized"


class DeliveryOutcome(str, Enum):
    SENT   = "sent"
    FAILED = "failed"


class JobStatus(str, Enum):
    PENDING   = "pending"
    RUNNING   = "running"
    COMPLETED = "completed"
    FAILED    = "failed"


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

def _generate_id() -> str:
    return f"NTF-{uuid.uuid4().hex[:12].upper()}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RecipientResult:
    """One recipient's outcome. ``phone`` is the target as given to dispatch."""
    phone: str
    outcome: DeliveryOutcome
    provider_message_id: Optional[str] = None
    simulated: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phone": self.phone,
            "outcome": self.outcome.value,
            "provider_message_id": self.provider_message_id,
            "simulated": self.simulated,
            "error": self.error,
        }


@dataclass
class NotificationResult:
    """
    Aggregate outcome of one fanout.

    ``attempted`` counts distinct canonical targets, so duplicates in the
    input do not inflate it. ``simulated`` counts sends that were simulated
    rather than handed to a real provider.
    """
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    simulated: int = 0
    per_recipient: List[RecipientResult] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: List[RecipientResult]) -> "NotificationResult":
        succeeded = sum(1 for r in results if r.outcome == DeliveryOutcome.SENT)
        return cls(
            attempted=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            simulated=sum(1 for r in results if r.simulated),
            per_recipient=list(results),
        )

    @property
    def failed_phones(self) -> List[str]:
        return [r.phone for r in self.per_recipient if r.outcome == DeliveryOutcome.FAILED]

    def raise_for_failures(self, job_ref: str = "") -> None:
        """Raise PartialFanoutFailure if any recipient failed."""
        if self.failed:
            raise PartialFanoutFailure(job_ref, self.attempted, self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "simulated": self.simulated,
            "per_recipient": [r.to_dict() for r in self.per_recipient],
        }


@dataclass
class NotificationJob:
    """
    One dispatched fanout.

    Jobs live only in the in-process registry; nothing is persisted and a
    restart forgets them.
    """
    zone: ZoneSnapshot
    targets: List[str]
    variant: MessageVariant
    job_id: str = field(default_factory=_generate_id)
    status: JobStatus = JobStatus.PENDING
    result: Optional[NotificationResult] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        elapsed = None
        if self.started_at:
            elapsed = ((self.completed_at or _now()) - self.started_at).total_seconds()
        return {
            "job_id": self.job_id,
            "zone": self.zone.to_dict(),
            "variant": self.variant.value,
            "target_count": len(self.targets),
            "status": self.status.value,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "elapsed_seconds": elapsed,
        }
