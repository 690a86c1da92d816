"""Environment-driven configuration for the webhook service.

Values are read once per process by get_webhook_settings(); tests call
get_webhook_settings.cache_clear() after changing the environment.
"""

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WebhookSettings(BaseSettings):
    """Runtime configuration of the ingestion pipeline.

    Fields whose env var name differs from the field name carry it as a
    validation alias. Empty env vars count as unset.
    """

    model_config = SettingsConfigDict(populate_by_name=True, env_ignore_empty=True, extra="ignore")

    environment: str = "dev"

    # Authentication
    webhook_secret: str | None = Field(
        default=None, validation_alias="THIRDWEB_WEBHOOK_SECRET", repr=False
    )
    webhook_secret_ssm_parameter: str | None = None
    replay_window_seconds: int = Field(
        default=300, gt=0, validation_alias="WEBHOOK_REPLAY_WINDOW_SECONDS"
    )

    # Ledger store (Xano)
    xano_api_url: str | None = None
    xano_timeout_seconds: float = Field(default=10.0, gt=0)
    default_agency_id: int = 1

    # Reconciliation retry
    retry_attempts: int = Field(default=3, ge=1, validation_alias="WEBHOOK_RETRY_ATTEMPTS")
    retry_initial_delay_seconds: float = Field(
        default=1.0, ge=0, validation_alias="WEBHOOK_RETRY_INITIAL_DELAY_SECONDS"
    )

    # Idempotency cache
    idempotency_cache_backend: Literal["memory", "dynamodb"] = "memory"
    idempotency_cache_ttl_seconds: int = Field(default=300, gt=0)

    log_level: str = "INFO"

    @field_validator("idempotency_cache_backend", mode="before")
    @classmethod
    def _lowercase_backend(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


@lru_cache(maxsize=1)
def get_webhook_settings() -> WebhookSettings:
    """Get the process-wide settings (singleton pattern)."""
    return WebhookSettings()
