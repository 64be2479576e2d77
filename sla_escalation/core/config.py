"""
Configuration management using Pydantic Settings.
Loads environment variables from .env file.
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Finding SLA Escalation"
    app_version: str = "0.1.0"
    debug: bool = False

    # Supabase Configuration
    supabase_url: str
    supabase_service_role_key: str  # Engine reads across all tenants

    # Notification Functions (edge functions on the Supabase project)
    email_function_path: str = "/functions/v1/send-email-template"
    whatsapp_function_path: str = "/functions/v1/send-gate-whatsapp"
    email_module_tag: str = "inspections"
    transport_timeout_seconds: float = 15.0

    # Recipients
    default_language: str = "en"
    management_roles: str = "hsse_manager,admin"  # Comma-separated

    # Run Settings
    max_concurrent_items: int = 5  # Findings evaluated in parallel
    run_timeout_seconds: float = 600.0  # Overall deadline for one run

    # Scheduler Settings
    enable_scheduler: bool = True
    scheduler_timezone: str = "UTC"
    escalation_cron_hour: str = "*"  # Hourly by default
    escalation_cron_minute: str = "0"

    # Only ONE worker should run the scheduler in multi-worker deployments
    run_scheduler: bool = False

    # Job Monitoring
    job_failure_alert_threshold: int = 2  # Alert after this many failures
    ops_escalation_email: Optional[str] = None

    @property
    def management_role_list(self) -> list[str]:
        """Parse comma-separated management roles into a list."""
        return [role.strip() for role in self.management_roles.split(",") if role.strip()]

    @property
    def email_function_url(self) -> str:
        return self.supabase_url.rstrip("/") + self.email_function_path

    @property
    def whatsapp_function_url(self) -> str:
        return self.supabase_url.rstrip("/") + self.whatsapp_function_path


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance.
    Call this function to get application settings.
    """
    return Settings()


# Global settings instance
settings = get_settings()
