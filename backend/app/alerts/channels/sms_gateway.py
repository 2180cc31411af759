"""
sms_gateway.py — SMS delivery via Twilio, or simulated.

═══════════════════════════════════════════════════════════════════════════
SMS GATEWAY ARCHITECTURE
═══════════════════════════════════════════════════════════════════════════

    NotificationFanout  →  SMSProvider.send(to, body)  →  Twilio REST  →  Carrier
                                     │
                                     └── SimulatedSMSProvider (logs only)

    The provider is chosen once, at construction, by ``build_sms_provider``:

        SMS_PROVIDER=simulation            → SimulatedSMSProvider
        SMS_PROVIDER=twilio, valid creds   → TwilioSMSProvider
        SMS_PROVIDER=twilio, missing /
            malformed / test credentials   → SimulatedSMSProvider (warning)

═══════════════════════════════════════════════════════════════════════════
ERROR MAPPING
═══════════════════════════════════════════════════════════════════════════

    TwilioRestException (API rejected the message)   → SMSDeliveryError
    other TwilioException, transport OSError         → ProviderUnavailableError

    Fanout treats the first as a failed recipient and the second as a cue
    to degrade that recipient to a simulated send.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.rest import Client

from backend.app.core.errors import ProviderUnavailableError, SMSDeliveryError

logger = logging.getLogger(__name__)

# Maximum GSM 7-bit SMS length
SMS_MAX_GSM7 = 160

# Twilio's published magic test credentials; they never deliver
_TEST_ACCOUNT_SID = "AC" + "0" * 32
_TEST_AUTH_TOKEN = "0" * 32


def segment_count(body: str) -> int:
    """Number of GSM 7-bit segments *body* occupies."""
    return 1 + max(len(body) - 1, 0) // SMS_MAX_GSM7


@dataclass(frozen=True)
class SMSReceipt:
    """What a provider returns for an accepted message."""
    id: str
    status: str
    simulated: bool = False


class SMSProvider(ABC):
    """Sends one SMS. Implementations raise instead of returning errors."""

    name: str = "sms"

    @property
    def is_simulated(self) -> bool:
        return False

    @abstractmethod
    def send(self, to: str, body: str) -> SMSReceipt:
        """
        Send *body* to the canonical phone *to*.

        Raises
        ------
        SMSDeliveryError
            The provider refused this message.
        ProviderUnavailableError
            The provider could not be reached.
        """


class SimulatedSMSProvider(SMSProvider):
    """Logs the message and reports it delivered."""

    name = "simulation"

    @property
    def is_simulated(self) -> bool:
        return True

    def send(self, to: str, body: str) -> SMSReceipt:
        receipt = SMSReceipt(
            id=f"SIM{uuid.uuid4().hex[:16].upper()}",
            status="delivered",
            simulated=True,
        )
        logger.info(
            "[SMS/simulated] → %s: %d chars, %d segment(s) → '%s'",
            to,
            len(body),
            segment_count(body),
            body[:80] + ("..." if len(body) > 80 else ""),
        )
        return receipt


class TwilioSMSProvider(SMSProvider):
    """Twilio Programmable Messaging through a messaging service."""

    name = "twilio"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        messaging_service_sid: str,
        client: Optional[Client] = None,
    ):
        self._messaging_service_sid = messaging_service_sid
        self._client = client or Client(account_sid, auth_token)

    def send(self, to: str, body: str) -> SMSReceipt:
        try:
            message = self._client.messages.create(
                body=body,
                messaging_service_sid=self._messaging_service_sid,
                to=to,
            )
        except TwilioRestException as exc:
            logger.warning(
                "[SMS/Twilio] Rejected %s: code=%s status=%s msg=%s",
                to, exc.code, exc.status, exc.msg,
            )
            raise SMSDeliveryError(to, exc.msg, code=exc.code, status=exc.status)
        except (TwilioException, OSError) as exc:
            raise ProviderUnavailableError(self.name, str(exc))

        logger.info("[SMS/Twilio] Sent to %s: sid=%s status=%s", to, message.sid, message.status)
        return SMSReceipt(id=message.sid, status=str(message.status))


def _twilio_config_problem(
    account_sid: Optional[str],
    auth_token: Optional[str],
    messaging_service_sid: Optional[str],
) -> Optional[str]:
    if not (account_sid and auth_token and messaging_service_sid):
        return "credentials not set"
    if not account_sid.startswith("AC"):
        return "account SID must start with 'AC'"
    if account_sid == _TEST_ACCOUNT_SID and auth_token == _TEST_AUTH_TOKEN:
        return "test credentials never deliver"
    return None


def build_sms_provider(settings: Any) -> SMSProvider:
    """Pick the provider for *settings*; misconfiguration falls back to simulation."""
    mode = (settings.SMS_PROVIDER or "simulation").lower()
    if mode == "simulation":
        logger.info("SMS provider: simulation")
        return SimulatedSMSProvider()

    if mode != "twilio":
        logger.warning("Unknown SMS_PROVIDER '%s' — using simulation", settings.SMS_PROVIDER)
        return SimulatedSMSProvider()

    problem = _twilio_config_problem(
        settings.TWILIO_ACCOUNT_SID,
        settings.TWILIO_AUTH_TOKEN,
        settings.TWILIO_MESSAGING_SERVICE_SID,
    )
    if problem:
        logger.warning("Twilio misconfigured (%s) — SMS will be simulated", problem)
        return SimulatedSMSProvider()

    logger.info("SMS provider: twilio")
    return TwilioSMSProvider(
        settings.TWILIO_ACCOUNT_SID,
        settings.TWILIO_AUTH_TOKEN,
        settings.TWILIO_MESSAGING_SERVICE_SID,
    )
