# Services - Business Logic Layer
"""
Finding SLA Escalation Services Module.

This module provides the core business logic for:
- Policy resolution and due-date evaluation
- Recipient resolution and message composition
- Notification delivery and SLA marker writes
- Batch orchestration and background job scheduling
"""

# Policy Resolution
from .policy_resolver import (
    PolicyDefaults,
    PolicyResolver,
    DEFAULT_POLICY_TABLE,
)

# Due-Date Evaluation
from .due_dates import (
    Evaluation,
    days_until,
    evaluate,
)

# Message Composition
from .composer import (
    ComposedMessage,
    NotificationTemplates,
    compose,
)

# Recipient Resolution
from .recipients import RecipientResolver

# Notification Services
from .notifications import (
    NotificationChannel,
    NotificationResult,
    DispatchOutcome,
    EmailTransport,
    WhatsAppTransport,
    Dispatcher,
)

# State Writes
from .state_writer import StateTransitionWriter

# Orchestration
from .orchestrator import (
    RunSummary,
    SLAEscalationEngine,
    build_engine,
    run_finding_sla_escalation,
)

# Background Job Scheduler
from .scheduler import (
    EscalationScheduler,
    get_scheduler,
)


__all__ = [
    # Policy
    "PolicyDefaults",
    "PolicyResolver",
    "DEFAULT_POLICY_TABLE",

    # Evaluation
    "Evaluation",
    "days_until",
    "evaluate",

    # Composition
    "ComposedMessage",
    "NotificationTemplates",
    "compose",

    # Recipients
    "RecipientResolver",

    # Notifications
    "NotificationChannel",
    "NotificationResult",
    "DispatchOutcome",
    "EmailTransport",
    "WhatsAppTransport",
    "Dispatcher",

    # State
    "StateTransitionWriter",

    # Orchestration
    "RunSummary",
    "SLAEscalationEngine",
    "build_engine",
    "run_finding_sla_escalation",

    # Scheduler
    "EscalationScheduler",
    "get_scheduler",
]
