"""
State Transition Writer.

Persists the SLA markers on a finding after a notification decision so the
next run does not repeat it:
- warning_sent_at (set once)
- escalation_level + last_escalated_at + escalation_notes (monotonic)
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

from sla_escalation.core.exceptions import InvalidTransitionError


logger = logging.getLogger(__name__)

MAX_ESCALATION_LEVEL = 2


class FindingStore(Protocol):
    def update_finding(self, finding_id: str, update_data: dict[str, Any]) -> dict: ...


def escalation_note(level: int, days_overdue: int) -> str:
    """Audit note written alongside an automatic escalation."""
    return f"Auto-escalated to Level {level} - {days_overdue} days overdue"


class StateTransitionWriter:
    """Single-row marker updates keyed by finding id."""

    def __init__(
        self,
        store: FindingStore,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def commit_warning(self, finding_id: str) -> datetime:
        """
        Mark the warning as sent.

        Called once a warning dispatch was attempted, whatever the channel
        results were.
        """
        sent_at = self.clock()
        self.store.update_finding(finding_id, {"warning_sent_at": sent_at.isoformat()})
        logger.debug(f"Finding {finding_id}: warning_sent_at={sent_at.isoformat()}")
        return sent_at

    def commit_escalation(
        self,
        finding_id: str,
        new_level: int,
        days_overdue: int,
        current_level: Optional[int] = None
    ) -> datetime:
        """
        Raise the escalation level and record when and why.

        Raises:
            InvalidTransitionError: If new_level is out of range or would not
                raise the finding's current level
        """
        if not 1 <= new_level <= MAX_ESCALATION_LEVEL:
            raise InvalidTransitionError(
                f"Escalation level must be between 1 and {MAX_ESCALATION_LEVEL}",
                finding_id=finding_id,
                requested_level=new_level,
            )
        if current_level is not None and new_level <= current_level:
            raise InvalidTransitionError(
                "Escalation level can only increase",
                finding_id=finding_id,
                current_level=current_level,
                requested_level=new_level,
            )

        escalated_at = self.clock()
        self.store.update_finding(finding_id, {
            "escalation_level": new_level,
            "last_escalated_at": escalated_at.isoformat(),
            "escalation_notes": escalation_note(new_level, days_overdue),
        })
        logger.debug(f"Finding {finding_id}: escalation_level={new_level}")
        return escalated_at
