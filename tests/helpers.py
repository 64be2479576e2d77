"""
Test helper functions for the SLA escalation tests.

Provides row builders for the mock tables and a recording transport for
the notification edge functions.
"""
import json
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional
from uuid import uuid4

import httpx

from sla_escalation.services.notifications import Dispatcher, EmailTransport, WhatsAppTransport


# Fixed evaluation time used across tests
NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)

TENANT_ID = "tenant-1"
OTHER_TENANT_ID = "tenant-2"


# ==========================================
# ROW BUILDERS
# ==========================================

def iso(value: datetime) -> str:
    return value.isoformat()


def finding_row(
    reference_id: str = "AIF-001",
    due_in_days: Optional[float] = 2,
    classification: str = "major_nc",
    status: str = "open",
    escalation_level: Optional[int] = 0,
    warning_sent_at: Optional[str] = None,
    tenant_id: str = TENANT_ID,
    created_by: Optional[str] = "owner-1",
    **overrides: Any
) -> dict:
    """A raw area_inspection_findings row, due relative to NOW."""
    row = {
        "id": str(uuid4()),
        "reference_id": reference_id,
        "classification": classification,
        "description": f"Finding {reference_id}",
        "status": status,
        "due_date": iso(NOW + timedelta(days=due_in_days)) if due_in_days is not None else None,
        "escalation_level": escalation_level,
        "warning_sent_at": warning_sent_at,
        "last_escalated_at": None,
        "tenant_id": tenant_id,
        "session_id": "session-1",
        "created_by": created_by,
        "deleted_at": None,
    }
    row.update(overrides)
    return row


def profile_row(
    profile_id: str,
    email: Optional[str] = None,
    role: str = "inspector",
    tenant_id: str = TENANT_ID,
    phone: Optional[str] = None,
    preferred_language: Optional[str] = "en",
    is_active: bool = True,
    **overrides: Any
) -> dict:
    row = {
        "id": profile_id,
        "email": email if email is not None else f"{profile_id}@example.com",
        "full_name": profile_id.replace("-", " ").title(),
        "phone": phone,
        "preferred_language": preferred_language,
        "role": role,
        "tenant_id": tenant_id,
        "is_active": is_active,
        "deleted_at": None,
    }
    row.update(overrides)
    return row


def sla_config_row(
    classification: str = "major_nc",
    tenant_id: str = TENANT_ID,
    warning_days_before: int = 3,
    escalation_days_after: int = 2,
    second_escalation_days_after: Optional[int] = 5,
    **overrides: Any
) -> dict:
    row = {
        "id": str(uuid4()),
        "tenant_id": tenant_id,
        "classification": classification,
        "target_days": 14,
        "warning_days_before": warning_days_before,
        "escalation_days_after": escalation_days_after,
        "second_escalation_days_after": second_escalation_days_after,
        "deleted_at": None,
    }
    row.update(overrides)
    return row


# ==========================================
# NOTIFICATION TRANSPORTS
# ==========================================

class RecordingTransport:
    """
    Records edge-function requests and answers them.

    fail_channels: subset of {"email", "whatsapp"} answered with HTTP 500.
    """

    def __init__(self, fail_channels: Optional[set] = None):
        self.fail_channels = fail_channels or set()
        self.requests: List[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        channel = "email" if request.url.path.endswith("send-email-template") else "whatsapp"
        self.requests.append({
            "channel": channel,
            "url": str(request.url),
            "authorization": request.headers.get("Authorization"),
            "body": json.loads(request.content),
        })
        if channel in self.fail_channels:
            return httpx.Response(500, text="provider unavailable")
        return httpx.Response(200, json={"ok": True})

    def sent(self, channel: str) -> List[dict]:
        return [r["body"] for r in self.requests if r["channel"] == channel]

    def build_dispatcher(self) -> Dispatcher:
        mock = httpx.MockTransport(self.handler)
        return Dispatcher(
            email_transport=EmailTransport(
                "https://test-project.supabase.co/functions/v1/send-email-template",
                "test-service-role-key",
                transport=mock,
            ),
            messaging_transport=WhatsAppTransport(
                "https://test-project.supabase.co/functions/v1/send-gate-whatsapp",
                "test-service-role-key",
                transport=mock,
            ),
        )


