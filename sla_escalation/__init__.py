"""Finding SLA escalation engine for area inspection findings."""

__version__ = "0.1.0"
