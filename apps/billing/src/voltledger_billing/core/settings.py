from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    service_name: str = "voltledger-billing"
    database_url: str = "sqlite+aiosqlite:///./voltledger.db"

    # Stripe configuration
    stripe_secret_key: str = ""

    # Application URLs
    frontend_url: str = "http://localhost:3000"

    # Organization component (site areas with access control)
    organization_component_enabled: bool = False

    # Transaction billing
    billing_transaction_billing_activated: bool = True
    billing_periodic_billing_allowed: bool = False
    billing_batch_page_size: int = 1000
    billing_timezone: str = "UTC"

    # Suspicious session thresholds
    billing_usage_threshold_enforced: bool = True
    billing_min_session_duration_seconds: int = 60
    billing_min_session_consumption_wh: int = 1000

    # Periodic settlement worker
    billing_settlement_worker_enabled: bool = False
    billing_settlement_cron: str = "0 3 1 * *"
    billing_settlement_trigger_label: str = "scheduler"

    # Email / notification settings
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_sender_email: str | None = None
    sendgrid_api_key: str | None = None
    sendgrid_sender_email: str | None = None
    billing_notification_bcc: list[str] = Field(default_factory=list)

    @field_validator("billing_notification_bcc", mode="before")
    @classmethod
    def _parse_recipient_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
