"""
Custom exceptions for the SLA escalation engine.
Provides meaningful error types for different failure scenarios.
"""
from typing import Any, Optional


class EscalationEngineException(Exception):
    """Base exception for all escalation engine errors."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500
    ):
        self.message = message
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class DatabaseError(EscalationEngineException):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[str] = None
    ):
        details = {}
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = original_error

        super().__init__(message, details, status_code=500)


class InvalidPolicyError(EscalationEngineException):
    """Raised when an SLA policy row violates its threshold ordering."""

    def __init__(
        self,
        message: str,
        tenant_id: Optional[str] = None,
        classification: Optional[str] = None
    ):
        details = {}
        if tenant_id:
            details["tenant_id"] = tenant_id
        if classification:
            details["classification"] = classification

        super().__init__(message, details, status_code=422)


class InvalidTransitionError(EscalationEngineException):
    """Raised when a state write would move a finding backwards."""

    def __init__(
        self,
        message: str,
        finding_id: str,
        current_level: Optional[int] = None,
        requested_level: Optional[int] = None
    ):
        details = {"finding_id": finding_id}
        if current_level is not None:
            details["current_level"] = current_level
        if requested_level is not None:
            details["requested_level"] = requested_level

        super().__init__(message, details, status_code=409)


class NotificationDeliveryError(EscalationEngineException):
    """Raised by a transport when a provider rejects a message."""

    def __init__(
        self,
        message: str,
        channel: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None
    ):
        details = {"channel": channel}
        if status_code is not None:
            details["provider_status"] = status_code
        if response_text:
            details["response_text"] = response_text[:200]

        super().__init__(message, details, status_code=502)


class SchedulerJobError(EscalationEngineException):
    """Raised when a scheduler job fails repeatedly."""

    def __init__(
        self,
        message: str,
        job_id: str,
        failure_count: int,
        last_error: Optional[str] = None
    ):
        details = {
            "job_id": job_id,
            "failure_count": failure_count,
        }
        if last_error:
            details["last_error"] = last_error

        super().__init__(message, details, status_code=500)


class ConfigurationError(EscalationEngineException):
    """Raised when required configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        config_key: str,
        expected_type: Optional[str] = None,
        actual_value: Optional[str] = None
    ):
        details = {
            "config_key": config_key
        }
        if expected_type:
            details["expected_type"] = expected_type
        if actual_value:
            details["actual_value"] = actual_value[:50] if len(str(actual_value)) > 50 else actual_value

        super().__init__(message, details, status_code=500)
