"""
SLA Policy Resolver.

Resolves the effective warning/escalation thresholds for a finding:
tenant-specific policy row -> default for the classification -> observation default.

The policy snapshot is loaded once per run; resolution never touches the store.
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from sla_escalation.models.enums import FindingClassification
from sla_escalation.models.schemas import EffectivePolicy, SLAPolicy


@dataclass(frozen=True)
class PolicyDefaults:
    """Default thresholds for one classification (days)."""
    warning: int
    escalation: int
    second_escalation: int


# Most severe classification = shortest windows
DEFAULT_POLICY_TABLE: Mapping[str, PolicyDefaults] = MappingProxyType({
    FindingClassification.CRITICAL_NC.value: PolicyDefaults(warning=1, escalation=1, second_escalation=2),
    FindingClassification.MAJOR_NC.value: PolicyDefaults(warning=2, escalation=2, second_escalation=4),
    FindingClassification.MINOR_NC.value: PolicyDefaults(warning=3, escalation=3, second_escalation=7),
    FindingClassification.OBSERVATION.value: PolicyDefaults(warning=5, escalation=5, second_escalation=10),
})

FALLBACK_CLASSIFICATION = FindingClassification.OBSERVATION.value


class PolicyResolver:
    """
    Tenant -> classification policy lookup with defaulting.

    Args:
        policies: Active SLA policy rows for all tenants
        defaults: Default table keyed by classification (must contain 'observation')
    """

    def __init__(
        self,
        policies: Iterable[SLAPolicy] = (),
        defaults: Mapping[str, PolicyDefaults] = DEFAULT_POLICY_TABLE
    ):
        if FALLBACK_CLASSIFICATION not in defaults:
            raise ValueError(f"Default policy table must define '{FALLBACK_CLASSIFICATION}'")

        self.defaults = MappingProxyType(dict(defaults))
        self._lookup: dict[str, dict[str, SLAPolicy]] = {}
        for policy in policies:
            # Later rows for the same pair win
            self._lookup.setdefault(policy.tenant_id, {})[policy.classification] = policy

    @property
    def tenant_count(self) -> int:
        return len(self._lookup)

    def get_tenant_policy(self, tenant_id: str, classification: str) -> Optional[SLAPolicy]:
        """Get the tenant's own policy row, if one exists."""
        return self._lookup.get(tenant_id, {}).get(classification)

    def get_defaults(self, classification: str) -> PolicyDefaults:
        """Default thresholds for a classification, or the observation default."""
        return self.defaults.get(classification) or self.defaults[FALLBACK_CLASSIFICATION]

    def resolve(self, tenant_id: str, classification: str) -> EffectivePolicy:
        """
        Resolve the effective policy for a tenant and classification.

        Never raises. A tenant row without a second escalation threshold
        takes it from the classification's default entry, bumped past the
        tenant's first threshold if needed.
        """
        defaults = self.get_defaults(classification)
        policy = self.get_tenant_policy(tenant_id, classification)

        if policy is None:
            return EffectivePolicy(
                classification=classification,
                warning_lead_days=defaults.warning,
                escalation_lead_days=defaults.escalation,
                second_escalation_lead_days=defaults.second_escalation,
                is_default=True,
            )

        second = policy.second_escalation_lead_days
        if second is None:
            second = max(defaults.second_escalation, policy.escalation_lead_days + 1)

        return EffectivePolicy(
            classification=classification,
            warning_lead_days=policy.warning_lead_days,
            escalation_lead_days=policy.escalation_lead_days,
            second_escalation_lead_days=second,
            target_days=policy.target_days,
            is_default=False,
        )
