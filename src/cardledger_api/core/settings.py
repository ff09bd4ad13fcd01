from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production", "test"] = "development"
    database_url: str = "sqlite+aiosqlite:///./cardledger.db"
    database_echo: bool = False
    log_level: str = "INFO"
    redis_url: str = "redis://localhost:6379/0"
    secret_key: str = "change-me"

    # Stripe configuration
    stripe_public_key: str = ""
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_currency: str = "usd"

    # Application URLs
    frontend_url: str = "http://localhost:3000"
    api_base_url: str = "http://localhost:8000"

    # Internal API security
    service_api_key: str = ""

    # Tracing
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_console_exporter: bool = False

    # Cashback rate composition
    cashback_tier_rate_cap_bps: int = Field(default=2000, ge=0, le=10000)
    cashback_total_rate_cap_bps: int = Field(default=5000, ge=0, le=10000)
    default_tier_code: str = "SILVER"

    # Deferred payment links
    payment_link_ttl_hours: int = Field(default=24, gt=0)
    payment_session_key_prefix: str = "cardledger:payment-session"

    # Email / notification settings
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_sender_email: str | None = None
    notification_admin_recipients: list[str] = Field(default_factory=list)

    @field_validator("notification_admin_recipients", mode="before")
    @classmethod
    def _parse_recipient_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []

    @field_validator("default_tier_code", mode="before")
    @classmethod
    def _normalize_tier_code(cls, value: object) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip().upper()
        return "SILVER"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
