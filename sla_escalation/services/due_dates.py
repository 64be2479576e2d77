"""
Due-date evaluation for findings under SLA.

Classifies a finding against its effective policy into one of:
not yet due, needs warning, needs escalation (level 1 or 2), or no action.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sla_escalation.models.enums import EventKind, TemporalState
from sla_escalation.models.schemas import EffectivePolicy, Finding


SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class Evaluation:
    """Result of evaluating one finding."""
    state: TemporalState
    days_delta: int  # positive = days remaining, negative = days overdue

    @property
    def days_overdue(self) -> int:
        return max(-self.days_delta, 0)

    @property
    def event_kind(self) -> Optional[EventKind]:
        """The notification event this state calls for, if any."""
        return {
            TemporalState.NEEDS_WARNING: EventKind.WARNING,
            TemporalState.NEEDS_ESCALATION_1: EventKind.ESCALATION_1,
            TemporalState.NEEDS_ESCALATION_2: EventKind.ESCALATION_2,
        }.get(self.state)

    @property
    def is_actionable(self) -> bool:
        return self.event_kind is not None


def days_until(due: datetime, now: datetime) -> int:
    """
    Whole days from now until due, rounding partial days up.

    A finding due 36 hours from now is 2 days out; one due 12 hours ago
    is 0 (due today), not overdue yet.
    """
    if due.tzinfo is None:
        due = due.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return math.ceil((due - now).total_seconds() / SECONDS_PER_DAY)


def evaluate(
    finding: Finding,
    policy: EffectivePolicy,
    now: Optional[datetime] = None
) -> Evaluation:
    """
    Evaluate a finding against its SLA policy.

    Precedence:
    1. More than warning_lead_days away -> NOT_YET_DUE
    2. Inside the warning window with no warning sent -> NEEDS_WARNING
    3. Due or overdue -> highest escalation level not yet reached
    4. Everything else -> NO_ACTION

    Args:
        finding: Finding with a due date
        policy: Effective policy for the finding
        now: Evaluation time (defaults to current UTC time)

    Returns:
        Evaluation with state and days_delta

    Raises:
        ValueError: If the finding has no due date
    """
    if finding.due_date is None:
        raise ValueError(f"Finding {finding.reference_id} has no due date")

    if now is None:
        now = datetime.now(timezone.utc)

    delta = days_until(finding.due_date, now)

    if delta > policy.warning_lead_days:
        return Evaluation(TemporalState.NOT_YET_DUE, delta)

    if delta > 0:
        if finding.warning_sent_at is None:
            return Evaluation(TemporalState.NEEDS_WARNING, delta)
        return Evaluation(TemporalState.NO_ACTION, delta)

    overdue = -delta
    level = finding.escalation_level

    # Highest severity first so a long-overdue finding skips level 1
    if overdue >= policy.second_escalation_lead_days and level < 2:
        return Evaluation(TemporalState.NEEDS_ESCALATION_2, delta)
    if overdue >= policy.escalation_lead_days and level < 1:
        return Evaluation(TemporalState.NEEDS_ESCALATION_1, delta)

    return Evaluation(TemporalState.NO_ACTION, delta)
