"""
Notification delivery for SLA events.

Handles all outbound notifications:
- Email (via the send-email-template edge function)
- WhatsApp (via the send-gate-whatsapp edge function)

The Dispatcher sends one composed message to one recipient on every
channel the recipient has. Channels are independent: a failure on one is
logged and reported, never raised, and never blocks the other.
No retries within a run.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from sla_escalation.core.config import settings
from sla_escalation.core.exceptions import NotificationDeliveryError
from sla_escalation.models.schemas import Recipient
from sla_escalation.services.composer import ComposedMessage


# Configure logging
logger = logging.getLogger(__name__)


class NotificationChannel(Enum):
    """Supported notification channels."""
    EMAIL = "EMAIL"
    WHATSAPP = "WHATSAPP"


@dataclass
class NotificationResult:
    """Result of a notification attempt."""
    success: bool
    channel: NotificationChannel
    error: Optional[str] = None


@dataclass(frozen=True)
class DispatchOutcome:
    """
    Per-channel outcome of dispatching one message to one recipient.

    sms_ok is None when the recipient has no phone and WhatsApp was not attempted.
    """
    email_ok: bool
    sms_ok: Optional[bool] = None

    @property
    def any_delivered(self) -> bool:
        return self.email_ok or bool(self.sms_ok)


# ==========================================
# TRANSPORTS
# ==========================================

class EdgeFunctionTransport:
    """Base for transports that POST to a Supabase edge function."""

    channel: NotificationChannel

    def __init__(
        self,
        url: str,
        service_role_key: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url
        self.service_role_key = service_role_key
        self.timeout = timeout
        self._transport = transport

    async def _post(self, payload: dict) -> NotificationResult:
        """POST the payload; non-2xx responses raise NotificationDeliveryError."""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                self.url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.service_role_key}",
                    "Content-Type": "application/json",
                },
            )

        if not response.is_success:
            raise NotificationDeliveryError(
                f"{self.channel.value} function returned {response.status_code}",
                channel=self.channel.value,
                status_code=response.status_code,
                response_text=response.text,
            )

        return NotificationResult(success=True, channel=self.channel)


class EmailTransport(EdgeFunctionTransport):
    """send(to, subject, html_body, module_tag) -> NotificationResult"""

    channel = NotificationChannel.EMAIL

    async def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        module_tag: str = "inspections"
    ) -> NotificationResult:
        return await self._post({
            "to": to,
            "subject": subject,
            "html": html_body,
            "module": module_tag,
        })


class WhatsAppTransport(EdgeFunctionTransport):
    """send(phone, text_body) -> NotificationResult"""

    channel = NotificationChannel.WHATSAPP

    async def send(self, phone: str, text_body: str) -> NotificationResult:
        return await self._post({"phone": phone, "message": text_body})


def build_email_transport(transport: Optional[httpx.AsyncBaseTransport] = None) -> EmailTransport:
    return EmailTransport(
        url=settings.email_function_url,
        service_role_key=settings.supabase_service_role_key,
        timeout=settings.transport_timeout_seconds,
        transport=transport,
    )


def build_whatsapp_transport(transport: Optional[httpx.AsyncBaseTransport] = None) -> WhatsAppTransport:
    return WhatsAppTransport(
        url=settings.whatsapp_function_url,
        service_role_key=settings.supabase_service_role_key,
        timeout=settings.transport_timeout_seconds,
        transport=transport,
    )


# ==========================================
# DISPATCHER
# ==========================================

class Dispatcher:
    """
    Delivers a composed message to a recipient on every available channel.

    Email is always attempted; WhatsApp only when the recipient has a phone.
    """

    def __init__(
        self,
        email_transport: EmailTransport,
        messaging_transport: WhatsAppTransport,
        module_tag: str = "inspections"
    ):
        self.email_transport = email_transport
        self.messaging_transport = messaging_transport
        self.module_tag = module_tag

    async def dispatch(self, recipient: Recipient, message: ComposedMessage) -> DispatchOutcome:
        """Send on every channel. Never raises."""
        email_ok = await self._send_email(recipient, message)

        sms_ok = None
        if recipient.phone:
            sms_ok = await self._send_whatsapp(recipient, message)

        return DispatchOutcome(email_ok=email_ok, sms_ok=sms_ok)

    async def _send_email(self, recipient: Recipient, message: ComposedMessage) -> bool:
        if not recipient.email:
            logger.warning(f"Email skipped: recipient {recipient.id} has no email address")
            return False

        try:
            result = await self.email_transport.send(
                recipient.email, message.subject, message.email_body, self.module_tag
            )
        except NotificationDeliveryError as e:
            logger.warning(f"Email notification failed for {recipient.email}: {e.message} {e.details}")
            return False
        except Exception as e:
            logger.warning(f"Email notification error for {recipient.email}: {e}")
            return False

        if not result.success:
            logger.warning(f"Email notification failed for {recipient.email}: {result.error}")
        return result.success

    async def _send_whatsapp(self, recipient: Recipient, message: ComposedMessage) -> bool:
        try:
            result = await self.messaging_transport.send(recipient.phone, message.sms_body)
        except NotificationDeliveryError as e:
            logger.warning(f"WhatsApp notification failed for {recipient.id}: {e.message} {e.details}")
            return False
        except Exception as e:
            logger.warning(f"WhatsApp notification error for {recipient.id}: {e}")
            return False

        if not result.success:
            logger.warning(f"WhatsApp notification failed for {recipient.id}: {result.error}")
        return result.success
