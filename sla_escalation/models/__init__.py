# Data models - Enums and Pydantic Schemas
from .enums import (
    FindingClassification,
    FindingStatus,
    TERMINAL_STATUSES,
    TemporalState,
    EventKind,
    Language,
)
from .schemas import (
    SLAPolicy,
    EffectivePolicy,
    Finding,
    Recipient,
)

__all__ = [
    # Enums
    "FindingClassification",
    "FindingStatus",
    "TERMINAL_STATUSES",
    "TemporalState",
    "EventKind",
    "Language",
    # Schemas
    "SLAPolicy",
    "EffectivePolicy",
    "Finding",
    "Recipient",
]
