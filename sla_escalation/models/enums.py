"""
Enum types that match the text values stored in Supabase.
These must stay in sync with the database schema.
"""
from enum import Enum
from typing import Optional


class FindingClassification(str, Enum):
    """
    Finding severity classifications, most severe first.
    Matches: area_inspection_findings.classification
    """
    CRITICAL_NC = "critical_nc"
    MAJOR_NC = "major_nc"
    MINOR_NC = "minor_nc"
    OBSERVATION = "observation"


class FindingStatus(str, Enum):
    """Finding status values that matter to the engine."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"
    RESOLVED = "resolved"


# Findings in these states never enter evaluation
TERMINAL_STATUSES = (FindingStatus.CLOSED.value, FindingStatus.RESOLVED.value)


class TemporalState(str, Enum):
    """Outcome of evaluating a finding against its SLA policy."""
    NOT_YET_DUE = "not_yet_due"
    NEEDS_WARNING = "needs_warning"
    NEEDS_ESCALATION_1 = "needs_escalation_1"
    NEEDS_ESCALATION_2 = "needs_escalation_2"
    NO_ACTION = "no_action"


class EventKind(str, Enum):
    """Notification events the engine can emit."""
    WARNING = "warning"
    ESCALATION_1 = "escalation_1"
    ESCALATION_2 = "escalation_2"

    @property
    def escalation_level(self) -> int:
        return {"warning": 0, "escalation_1": 1, "escalation_2": 2}[self.value]

    @classmethod
    def for_level(cls, level: int) -> "EventKind":
        return cls.ESCALATION_2 if level >= 2 else cls.ESCALATION_1


class Language(str, Enum):
    """Supported notification languages. English is the base language."""
    EN = "en"
    AR = "ar"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Language":
        """Map a profile's preferred_language to a supported language."""
        if value and value.strip().lower().startswith("ar"):
            return cls.AR
        return cls.EN
