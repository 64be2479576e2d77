"""
Pydantic schemas for rows read from the store.
Covers: SLA policy configs, inspection findings, profiles (recipients).

Rows are validated here so the evaluation pipeline never handles raw dicts.
"""
from datetime import date, datetime, time, timezone
from typing import Optional, Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from .enums import Language, TERMINAL_STATUSES


def _date_only_to_midnight(value: Any) -> Any:
    """Plain dates (``date`` or ``YYYY-MM-DD``) become midnight UTC; other values pass through."""
    if value is None or value == "":
        return None
    if isinstance(value, str) and len(value.strip()) == 10:
        value = date.fromisoformat(value.strip())
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return value


# ==========================================
# SLA POLICY SCHEMAS
# ==========================================

class SLAPolicy(BaseModel):
    """
    Tenant-specific SLA policy for one classification.

    Accepts either the engine's field names or the finding_sla_configs
    column names (warning_days_before, escalation_days_after, ...).
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[str] = None
    tenant_id: str
    classification: str
    target_days: Optional[int] = Field(None, ge=0)
    warning_lead_days: int = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("warning_lead_days", "warning_days_before"),
    )
    escalation_lead_days: int = Field(
        ...,
        gt=0,
        validation_alias=AliasChoices("escalation_lead_days", "escalation_days_after"),
    )
    second_escalation_lead_days: Optional[int] = Field(
        None,
        validation_alias=AliasChoices(
            "second_escalation_lead_days", "second_escalation_days_after"
        ),
    )

    @field_validator("id", "tenant_id", mode="before")
    @classmethod
    def stringify_ids(cls, v: Any) -> Any:
        return str(v) if v is not None else None

    @model_validator(mode="after")
    def validate_thresholds(self) -> "SLAPolicy":
        """Second escalation must come strictly after the first."""
        if (
            self.second_escalation_lead_days is not None
            and self.second_escalation_lead_days <= self.escalation_lead_days
        ):
            raise ValueError(
                "second_escalation_lead_days must be greater than escalation_lead_days"
            )
        return self


class EffectivePolicy(BaseModel):
    """Fully resolved thresholds used to evaluate a finding."""
    model_config = ConfigDict(frozen=True)

    classification: str
    warning_lead_days: int
    escalation_lead_days: int
    second_escalation_lead_days: int
    target_days: Optional[int] = None
    is_default: bool = True


# ==========================================
# FINDING SCHEMAS
# ==========================================

class Finding(BaseModel):
    """An inspection finding tracked under SLA."""
    model_config = ConfigDict(extra="ignore")

    id: str
    reference_id: str
    classification: str
    description: Optional[str] = None
    status: Optional[str] = None
    due_date: Optional[datetime] = None
    escalation_level: int = Field(0, ge=0, le=2)
    warning_sent_at: Optional[datetime] = None
    last_escalated_at: Optional[datetime] = None
    tenant_id: str
    session_id: Optional[str] = None
    created_by: Optional[str] = None

    @field_validator("id", "tenant_id", "created_by", "session_id", mode="before")
    @classmethod
    def stringify_ids(cls, v: Any) -> Any:
        return str(v) if v is not None else None

    @field_validator("escalation_level", mode="before")
    @classmethod
    def default_level(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("due_date", "warning_sent_at", "last_escalated_at", mode="before")
    @classmethod
    def expand_plain_dates(cls, v: Any) -> Any:
        return _date_only_to_midnight(v)

    @field_validator("due_date", "warning_sent_at", "last_escalated_at")
    @classmethod
    def normalize_to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return None
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# ==========================================
# RECIPIENT SCHEMAS
# ==========================================

class Recipient(BaseModel):
    """A resolved contact for one notification."""
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = Field(
        None, validation_alias=AliasChoices("phone", "phone_number")
    )
    preferred_language: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> Any:
        return str(v) if v is not None else None

    @field_validator("email", "phone", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    def language(self, default: str = Language.EN.value) -> Language:
        """Preferred language, falling back to the configured base language."""
        return Language.parse(self.preferred_language or default)
