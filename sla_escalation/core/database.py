"""
Supabase database client management.
Provides the store operations the escalation engine needs.

Features:
- Active SLA policy snapshot for all tenants
- Open, due-dated findings across all tenants
- Profile lookups (owner by id, managers by tenant + role)
- Single-row SLA marker updates on findings

Rows are validated into typed records before they leave this module.
"""
from dataclasses import dataclass, field
from typing import Any, Optional
import logging

from pydantic import ValidationError
from supabase import create_client, Client

from .config import settings
from .exceptions import DatabaseError, InvalidPolicyError
from sla_escalation.models.enums import TERMINAL_STATUSES
from sla_escalation.models.schemas import Finding, Recipient, SLAPolicy


logger = logging.getLogger(__name__)


FINDINGS_TABLE = "area_inspection_findings"
SLA_CONFIGS_TABLE = "finding_sla_configs"
PROFILES_TABLE = "profiles"

FINDING_COLUMNS = (
    "id, reference_id, classification, description, status, due_date, "
    "escalation_level, warning_sent_at, last_escalated_at, tenant_id, "
    "session_id, created_by"
)
PROFILE_COLUMNS = "id, email, full_name, phone, preferred_language, is_active"


@dataclass
class FindingBatch:
    """Open findings loaded for one run, plus rows that failed validation."""
    findings: list[Finding] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)  # reference ids

    @property
    def total(self) -> int:
        return len(self.findings) + len(self.rejected)


def _parse_policy(row: dict) -> SLAPolicy:
    """Parse a finding_sla_configs row into an SLAPolicy."""
    try:
        return SLAPolicy.model_validate(row)
    except ValidationError as e:
        raise InvalidPolicyError(
            f"Invalid SLA config {row.get('id')}: {e.errors()[0].get('msg')}",
            tenant_id=row.get("tenant_id"),
            classification=row.get("classification"),
        ) from e


def _is_active_profile(row: dict) -> bool:
    return row.get("is_active") is not False


class SupabaseClient:
    """
    Singleton wrapper for Supabase client.
    Provides methods for the escalation engine's store operations.
    """

    _instance: Optional["SupabaseClient"] = None
    _client: Optional[Client] = None

    def __new__(cls) -> "SupabaseClient":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._client is None:
            self._client = create_client(
                settings.supabase_url,
                settings.supabase_service_role_key
            )

    @property
    def client(self) -> Client:
        """Get the Supabase client instance."""
        if self._client is None:
            raise RuntimeError("Supabase client not initialized")
        return self._client

    # ==========================================
    # SLA POLICIES
    # ==========================================

    def get_active_sla_policies(self) -> list[SLAPolicy]:
        """
        Load every non-deleted SLA policy row for all tenants.

        Rows that violate threshold ordering are logged and skipped, so
        their findings fall back to the default table.
        """
        try:
            response = (
                self.client.table(SLA_CONFIGS_TABLE)
                .select("*")
                .is_("deleted_at", "null")
                .execute()
            )
        except Exception as e:
            raise DatabaseError(
                "Failed to load SLA policies",
                table=SLA_CONFIGS_TABLE,
                operation="select",
                original_error=str(e),
            ) from e

        policies = []
        for row in response.data or []:
            try:
                policies.append(_parse_policy(row))
            except InvalidPolicyError as e:
                logger.warning(f"Skipping SLA config: {e.message} ({e.details})")
        return policies

    # ==========================================
    # FINDINGS
    # ==========================================

    def get_open_findings(self) -> FindingBatch:
        """
        Load open, non-deleted findings that have a due date.

        Terminal statuses and null due dates are excluded by the query.
        """
        try:
            response = (
                self.client.table(FINDINGS_TABLE)
                .select(FINDING_COLUMNS)
                .is_("deleted_at", "null")
                .not_.in_("status", list(TERMINAL_STATUSES))
                .not_.is_("due_date", "null")
                .execute()
            )
        except Exception as e:
            raise DatabaseError(
                "Failed to load open findings",
                table=FINDINGS_TABLE,
                operation="select",
                original_error=str(e),
            ) from e

        batch = FindingBatch()
        for row in response.data or []:
            try:
                finding = Finding.model_validate(row)
            except ValidationError as e:
                reference = row.get("reference_id") or row.get("id") or "unknown"
                logger.error(f"Malformed finding {reference}: {e.errors()[0].get('msg')}")
                batch.rejected.append(str(reference))
                continue
            # Filters are re-applied on the typed record
            if finding.is_terminal or finding.due_date is None:
                continue
            batch.findings.append(finding)
        return batch

    def update_finding(self, finding_id: str, update_data: dict[str, Any]) -> dict:
        """Update SLA-tracking fields on a single finding."""
        try:
            response = (
                self.client.table(FINDINGS_TABLE)
                .update(update_data)
                .eq("id", finding_id)
                .execute()
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to update finding {finding_id}",
                table=FINDINGS_TABLE,
                operation="update",
                original_error=str(e),
            ) from e
        return response.data[0] if response.data else {}

    # ==========================================
    # PROFILES
    # ==========================================

    def get_profile(self, profile_id: str) -> Optional[Recipient]:
        """Get a single profile by id, or None if it doesn't exist."""
        response = (
            self.client.table(PROFILES_TABLE)
            .select(PROFILE_COLUMNS)
            .eq("id", profile_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return Recipient.model_validate(response.data[0])

    def get_profiles_by_roles(self, tenant_id: str, roles: list[str]) -> list[Recipient]:
        """Get active profiles in a tenant holding any of the given roles."""
        response = (
            self.client.table(PROFILES_TABLE)
            .select(PROFILE_COLUMNS)
            .eq("tenant_id", tenant_id)
            .in_("role", roles)
            .is_("deleted_at", "null")
            .execute()
        )
        return [
            Recipient.model_validate(row)
            for row in (response.data or [])
            if _is_active_profile(row)
        ]


def get_supabase_client() -> SupabaseClient:
    """Get the Supabase client singleton."""
    return SupabaseClient()
