"""
fanout.py — Concurrent SMS delivery with per-recipient failure isolation.

═══════════════════════════════════════════════════════════════════════════
DISPATCH PIPELINE
═══════════════════════════════════════════════════════════════════════════

    targets ──normalize──▶ canonical phones ──dedupe──▶ worker pool ──▶ results
       │                                                   │
       └─ invalid → failed result                          └─ one send per phone

    1. The message body is rendered once from the zone snapshot.
    2. Each target is normalised. A target that cannot be normalised is
       recorded as failed; it is never sent.
    3. Within one dispatch, a canonical phone is sent at most once; the
       first occurrence in target order wins.
    4. Sends run on a pool of ``min(max_workers, n)`` threads. One slow or
       failing recipient never blocks or aborts the others.
    5. Results are written under a lock and returned in target order.

═══════════════════════════════════════════════════════════════════════════
DEGRADED MODE
═══════════════════════════════════════════════════════════════════════════

    Provider raises            Recipient outcome
    ────────────────────────   ──────────────────────────────────
    (nothing)                  sent
    SMSDeliveryError           failed
    ProviderUnavailableError   sent, simulated=True (warning logged)
    anything else              failed (logged with traceback)
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Tuple

from backend.app.alerts.channels.sms_gateway import SimulatedSMSProvider, SMSProvider
from backend.app.alerts.messages import format_message
from backend.app.alerts.models import (
    DeliveryOutcome,
    MessageVariant,
    NotificationResult,
    RecipientResult,
)
from backend.app.contacts.phone import normalize
from backend.app.core.errors import (
    InvalidPhoneError,
    ProviderUnavailableError,
    SMSDeliveryError,
)
from backend.app.zones.models import ZoneSnapshot

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


class NotificationFanout:
    """
    Sends one message to many recipients.

    Usage:
        fanout = NotificationFanout(build_sms_provider(settings))
        result = fanout.dispatch(zone.snapshot(), ["+919876543210"], MessageVariant.APPROVED)
        print(result.succeeded, result.failed)
    """

    def __init__(
        self,
        provider: SMSProvider,
        *,
        default_country_prefix: str = "+91",
        max_workers: int = DEFAULT_MAX_WORKERS,
        fallback: Optional[SMSProvider] = None,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.provider = provider
        self.default_country_prefix = default_country_prefix
        self.max_workers = max_workers
        self._fallback = fallback or SimulatedSMSProvider()

    def dispatch(
        self,
        zone: ZoneSnapshot,
        recipients: Sequence[str],
        variant: MessageVariant,
        *,
        job_ref: str = "",
    ) -> NotificationResult:
        """Send the *variant* message for *zone* to every recipient. Never raises per recipient."""
        start = time.perf_counter()
        body = format_message(zone, variant)

        results: Dict[int, RecipientResult] = {}
        lock = threading.Lock()
        sendable: List[Tuple[int, str, str]] = []
        seen = set()

        for index, raw in enumerate(recipients):
            try:
                canonical = normalize(raw, self.default_country_prefix)
            except InvalidPhoneError as exc:
                key = ("invalid", repr(raw))
                if key not in seen:
                    seen.add(key)
                    results[index] = RecipientResult(
                        phone=str(raw), outcome=DeliveryOutcome.FAILED, error=exc.message,
                    )
                continue
            if canonical in seen:
                continue
            seen.add(canonical)
            sendable.append((index, raw, canonical))

        def deliver(index: int, raw: str, canonical: str) -> None:
            result = self._send_one(raw, canonical, body)
            with lock:
                results[index] = result

        if sendable:
            workers = min(self.max_workers, len(sendable))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sms-fanout") as pool:
                for index, raw, canonical in sendable:
                    pool.submit(deliver, index, raw, canonical)

        outcome = NotificationResult.from_results([results[i] for i in sorted(results)])
        logger.info(
            "Fanout %s [%s] zone %s: %d/%d sent, %d failed, %d simulated",
            job_ref or "-", variant.value, zone.id,
            outcome.succeeded, outcome.attempted, outcome.failed, outcome.simulated,
            extra={
                "zone_id": zone.id,
                "job_id": job_ref or None,
                "variant": variant.value,
                "recipient_count": outcome.attempted,
                "succeeded": outcome.succeeded,
                "failed": outcome.failed,
                "simulated": outcome.simulated,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return outcome

    def _send_one(self, raw: str, canonical: str, body: str) -> RecipientResult:
        try:
            receipt = self.provider.send(canonical, body)
        except SMSDeliveryError as exc:
            return RecipientResult(phone=raw, outcome=DeliveryOutcome.FAILED, error=exc.message)
        except ProviderUnavailableError as exc:
            logger.warning("%s — simulating send to %s", exc.message, canonical)
            receipt = self._fallback.send(canonical, body)
            return RecipientResult(
                phone=raw,
                outcome=DeliveryOutcome.SENT,
                provider_message_id=receipt.id,
                simulated=True,
            )
        except Exception as exc:
            logger.exception("Unexpected SMS error for %s", canonical)
            return RecipientResult(phone=raw, outcome=DeliveryOutcome.FAILED, error=str(exc))

        return RecipientResult(
            phone=raw,
            outcome=DeliveryOutcome.SENT,
            provider_message_id=receipt.id,
            simulated=receipt.simulated,
        )
