"""
Recipient resolution for SLA notifications.

- Warnings go to the finding's owner (created_by profile)
- Escalations go to every active management role-holder in the tenant

A resolver lives for one run; manager lists are cached per tenant for that run.
"""
import logging
import threading
from typing import Optional, Protocol

from sla_escalation.models.schemas import Finding, Recipient


logger = logging.getLogger(__name__)


class ProfileStore(Protocol):
    """Profile lookups the resolver needs from the store."""

    def get_profile(self, profile_id: str) -> Optional[Recipient]: ...

    def get_profiles_by_roles(self, tenant_id: str, roles: list[str]) -> list[Recipient]: ...


class RecipientResolver:
    """Determines who receives each SLA event."""

    def __init__(self, store: ProfileStore, management_roles: list[str]):
        self.store = store
        self.management_roles = list(management_roles)
        self._managers_by_tenant: dict[str, list[Recipient]] = {}
        # Lookups run in worker threads; one query per tenant per run.
        self._managers_lock = threading.Lock()

    def resolve_warning_recipient(self, finding: Finding) -> Optional[Recipient]:
        """
        Get the finding's owner.

        Returns None when the finding has no owner, the profile is missing,
        or the profile has no email address.
        """
        if not finding.created_by:
            logger.warning(f"Finding {finding.reference_id} has no owner")
            return None

        owner = self.store.get_profile(finding.created_by)
        if owner is None:
            logger.warning(
                f"Owner profile {finding.created_by} not found for finding {finding.reference_id}"
            )
            return None

        if not owner.email:
            logger.warning(
                f"Owner {finding.created_by} of finding {finding.reference_id} has no email configured"
            )
            return None

        return owner

    def resolve_escalation_recipients(self, tenant_id: str) -> list[Recipient]:
        """Get every active management role-holder in the tenant with an email."""
        with self._managers_lock:
            if tenant_id not in self._managers_by_tenant:
                self._managers_by_tenant[tenant_id] = self._load_managers(tenant_id)
            return self._managers_by_tenant[tenant_id]

    def _load_managers(self, tenant_id: str) -> list[Recipient]:
        profiles = self.store.get_profiles_by_roles(tenant_id, self.management_roles)
        managers = [p for p in profiles if p.email]

        skipped = len(profiles) - len(managers)
        if skipped:
            logger.warning(f"{skipped} manager(s) in tenant {tenant_id} have no email configured")

        return managers
