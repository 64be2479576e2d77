# Core modules - Database, Config, Exceptions
from .database import get_supabase_client
from .config import settings
from .exceptions import (
    EscalationEngineException,
    DatabaseError,
    ConfigurationError,
    InvalidPolicyError,
    InvalidTransitionError,
    NotificationDeliveryError,
)

__all__ = [
    "get_supabase_client",
    "settings",
    "EscalationEngineException",
    "DatabaseError",
    "ConfigurationError",
    "InvalidPolicyError",
    "InvalidTransitionError",
    "NotificationDeliveryError",
]
