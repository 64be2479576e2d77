"""
Finding SLA Escalation Orchestrator.

The batch coordinator for finding SLA tracking.

Responsibilities:
1. Load the SLA policy snapshot and all open, due-dated findings once
2. Evaluate each finding against its effective policy
3. Warn the owner when the due date approaches
4. Escalate overdue findings to tenant management (level 1, then level 2)
5. Commit markers so each transition fires once
6. Isolate per-finding failures and return aggregate counts

The run is stateless: everything it needs to stay idempotent lives on the
finding rows (warning_sent_at, escalation_level).
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from sla_escalation.core.config import settings
from sla_escalation.core.database import FindingBatch, get_supabase_client
from sla_escalation.core.exceptions import ConfigurationError
from sla_escalation.models.enums import EventKind
from sla_escalation.models.schemas import Finding, Recipient, SLAPolicy
from sla_escalation.services.composer import compose
from sla_escalation.services.due_dates import Evaluation, evaluate
from sla_escalation.services.notifications import (
    Dispatcher,
    DispatchOutcome,
    build_email_transport,
    build_whatsapp_transport,
)
from sla_escalation.services.policy_resolver import (
    DEFAULT_POLICY_TABLE,
    PolicyDefaults,
    PolicyResolver,
)
from sla_escalation.services.recipients import RecipientResolver
from sla_escalation.services.state_writer import StateTransitionWriter


# Configure logging
logger = logging.getLogger(__name__)

# Unresolvable-recipient references kept in the summary
MAX_UNRESOLVABLE_REFERENCES = 50


class EscalationStore(Protocol):
    """Store operations used by one engine run."""

    def get_active_sla_policies(self) -> list[SLAPolicy]: ...

    def get_open_findings(self) -> FindingBatch: ...

    def get_profile(self, profile_id: str) -> Optional[Recipient]: ...

    def get_profiles_by_roles(self, tenant_id: str, roles: list[str]) -> list[Recipient]: ...

    def update_finding(self, finding_id: str, update_data: dict[str, Any]) -> dict: ...


@dataclass
class FindingOutcome:
    """What happened to one finding during a run."""
    reference_id: str
    evaluation: Evaluation
    event_kind: Optional[EventKind] = None
    committed: bool = False
    unresolvable_recipient: bool = False
    deliveries: List[DispatchOutcome] = field(default_factory=list)


@dataclass
class RunSummary:
    """Aggregate counts for one run."""
    findings_checked: int = 0
    warnings_sent: int = 0
    escalations_sent: int = 0
    escalations_by_level: Dict[int, int] = field(default_factory=lambda: {1: 0, 2: 0})
    unresolvable_recipients: int = 0
    unresolvable_references: List[str] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)
    timed_out: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    def record(self, outcome: FindingOutcome) -> None:
        """Fold a finding's outcome into the totals."""
        if outcome.unresolvable_recipient:
            self.unresolvable_recipients += 1
            if len(self.unresolvable_references) < MAX_UNRESOLVABLE_REFERENCES:
                self.unresolvable_references.append(outcome.reference_id)

        if not outcome.committed or outcome.event_kind is None:
            return

        if outcome.event_kind == EventKind.WARNING:
            self.warnings_sent += 1
        elif outcome.deliveries:
            # Escalations committed without any recipient are not "sent"
            level = outcome.event_kind.escalation_level
            self.escalations_sent += 1
            self.escalations_by_level[level] = self.escalations_by_level.get(level, 0) + 1

    def record_error(self, reference_id: str, error: str) -> None:
        self.errors.append({"finding": reference_id, "error": error})

    def to_response(self) -> Dict[str, Any]:
        """JSON body returned to the trigger."""
        return {
            "success": True,
            "warningsSent": self.warnings_sent,
            "escalationsSent": self.escalations_sent,
            "findingsChecked": self.findings_checked,
            "escalationsByLevel": {str(k): v for k, v in sorted(self.escalations_by_level.items())},
            "unresolvableRecipients": self.unresolvable_recipients,
            "errors": len(self.errors),
            "timedOut": self.timed_out,
        }


class SLAEscalationEngine:
    """
    One invocation of the finding SLA escalation batch.

    Args:
        store: Store for policies, findings, profiles and marker updates
        dispatcher: Channel dispatcher for composed messages
        defaults: Default policy table (injected so tests can override)
        management_roles: Roles that receive escalations
        default_language: Language for recipients without a preference
        max_concurrent_items: Findings processed in parallel
        run_timeout_seconds: Deadline for the evaluation phase (None = unbounded)
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        store: EscalationStore,
        dispatcher: Dispatcher,
        defaults: Mapping[str, PolicyDefaults] = DEFAULT_POLICY_TABLE,
        management_roles: Optional[List[str]] = None,
        default_language: str = "en",
        max_concurrent_items: int = 5,
        run_timeout_seconds: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        if max_concurrent_items < 1:
            raise ConfigurationError(
                "max_concurrent_items must be at least 1",
                config_key="max_concurrent_items",
                expected_type="positive int",
                actual_value=str(max_concurrent_items),
            )

        self.store = store
        self.dispatcher = dispatcher
        self.defaults = defaults
        self.management_roles = management_roles or ["hsse_manager", "admin"]
        self.default_language = default_language
        self.max_concurrent_items = max_concurrent_items
        self.run_timeout_seconds = run_timeout_seconds
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def run(self) -> RunSummary:
        """
        Run one pass over all open, due-dated findings.

        Raises:
            DatabaseError: If policies or findings cannot be loaded. Nothing
                has been committed at that point.
        """
        summary = RunSummary(started_at=self.clock())
        logger.info("Starting finding SLA escalation check...")

        policies = await asyncio.to_thread(self.store.get_active_sla_policies)
        resolver = PolicyResolver(policies, self.defaults)
        logger.info(f"Loaded {len(policies)} SLA policies for {resolver.tenant_count} tenants")

        batch = await asyncio.to_thread(self.store.get_open_findings)
        summary.findings_checked = batch.total
        for reference in batch.rejected:
            summary.record_error(reference, "malformed finding row")
        logger.info(f"Found {batch.total} open findings to check")

        recipients = RecipientResolver(self.store, self.management_roles)
        writer = StateTransitionWriter(self.store, self.clock)
        now = self.clock()
        semaphore = asyncio.Semaphore(self.max_concurrent_items)

        async def process(finding: Finding) -> None:
            async with semaphore:
                try:
                    outcome = await self.process_finding(finding, resolver, recipients, writer, now)
                except Exception as e:
                    logger.error(
                        f"Failed to process finding {finding.reference_id}: {e}",
                        exc_info=True
                    )
                    summary.record_error(finding.reference_id, str(e))
                    return
                summary.record(outcome)

        tasks = [asyncio.create_task(process(f)) for f in batch.findings]
        if tasks:
            try:
                await asyncio.wait_for(asyncio.gather(*tasks), timeout=self._remaining(summary))
            except asyncio.TimeoutError:
                summary.timed_out = True
                pending = sum(1 for t in tasks if t.cancelled() or not t.done())
                logger.warning(
                    f"Run deadline of {self.run_timeout_seconds}s reached; "
                    f"{pending} findings left for the next run"
                )

        if summary.unresolvable_recipients:
            logger.warning(
                f"{summary.unresolvable_recipients} findings had no resolvable recipient: "
                f"{', '.join(summary.unresolvable_references)}"
            )

        summary.finished_at = self.clock()
        logger.info(
            f"Finding SLA check complete. Warnings: {summary.warnings_sent}, "
            f"Escalations: {summary.escalations_sent}, Errors: {len(summary.errors)}"
        )
        return summary

    def _remaining(self, summary: RunSummary) -> Optional[float]:
        if self.run_timeout_seconds is None:
            return None
        elapsed = (self.clock() - summary.started_at).total_seconds()
        return max(self.run_timeout_seconds - elapsed, 0.0)

    async def process_finding(
        self,
        finding: Finding,
        resolver: PolicyResolver,
        recipients: RecipientResolver,
        writer: StateTransitionWriter,
        now: datetime
    ) -> FindingOutcome:
        """Evaluate one finding and carry out the transition it calls for."""
        policy = resolver.resolve(finding.tenant_id, finding.classification)
        evaluation = evaluate(finding, policy, now)
        outcome = FindingOutcome(
            reference_id=finding.reference_id,
            evaluation=evaluation,
            event_kind=evaluation.event_kind,
        )

        if outcome.event_kind is None:
            return outcome

        if outcome.event_kind == EventKind.WARNING:
            owner = await asyncio.to_thread(recipients.resolve_warning_recipient, finding)
            if owner is None:
                # Not committed: the finding stays eligible until an owner resolves
                outcome.unresolvable_recipient = True
                return outcome

            message = compose(
                EventKind.WARNING, finding, policy,
                owner.language(self.default_language), evaluation.days_delta
            )
            delivery = await self.dispatcher.dispatch(owner, message)
            outcome.deliveries.append(delivery)
            if not delivery.any_delivered:
                logger.warning(f"Warning for finding {finding.reference_id} reached no channel")

            await asyncio.to_thread(writer.commit_warning, finding.id)
            outcome.committed = True
            logger.info(f"Warning sent for finding {finding.reference_id}")
            return outcome

        level = outcome.event_kind.escalation_level
        managers = await asyncio.to_thread(
            recipients.resolve_escalation_recipients, finding.tenant_id
        )
        if not managers:
            outcome.unresolvable_recipient = True
            logger.warning(
                f"No managers to notify for finding {finding.reference_id} "
                f"(tenant {finding.tenant_id}); recording Level {level} anyway"
            )

        for manager in managers:
            message = compose(
                outcome.event_kind, finding, policy,
                manager.language(self.default_language), evaluation.days_overdue
            )
            outcome.deliveries.append(await self.dispatcher.dispatch(manager, message))

        await asyncio.to_thread(
            writer.commit_escalation,
            finding.id,
            level,
            evaluation.days_overdue,
            finding.escalation_level,
        )
        outcome.committed = True
        logger.info(f"Escalation L{level} sent for finding {finding.reference_id}")
        return outcome


def build_engine(store: Optional[EscalationStore] = None) -> SLAEscalationEngine:
    """Build an engine wired to Supabase and the notification functions."""
    dispatcher = Dispatcher(
        email_transport=build_email_transport(),
        messaging_transport=build_whatsapp_transport(),
        module_tag=settings.email_module_tag,
    )
    return SLAEscalationEngine(
        store=store or get_supabase_client(),
        dispatcher=dispatcher,
        management_roles=settings.management_role_list,
        default_language=settings.default_language,
        max_concurrent_items=settings.max_concurrent_items,
        run_timeout_seconds=settings.run_timeout_seconds,
    )


async def run_finding_sla_escalation() -> RunSummary:
    """
    Run the finding SLA escalation batch once.

    This is the main entry point for the scheduler job and the trigger endpoint.
    """
    return await build_engine().run()
