"""Notification dispatch configuration.

Provider credentials live in the central Settings; this class only holds
delivery behaviour. All settings can be overridden via
``NOTIFICATIONS_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationConfig(BaseSettings):
    """Configuration for notification dispatch."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_",
        case_sensitive=False,
        extra="ignore",
    )

    send_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Upper bound for one send to one endpoint",
    )
    push_ttl_seconds: int = Field(
        default=3600,
        ge=0,
        le=2419200,
        description="How long the push service keeps an undelivered message",
    )
    default_url: str = Field(
        default="/alerts",
        description="Click-through URL when the request carries none",
    )
    sms_max_length: int = Field(
        default=320,
        ge=20,
        le=1600,
        description="Maximum SMS body length; longer bodies are truncated",
    )
    default_list_limit: int = Field(
        default=50,
        ge=1,
        le=200,
        description="Default page size for notification listings",
    )
    max_list_limit: int = Field(
        default=200,
        ge=1,
        le=1000,
        description="Maximum page size for notification listings",
    )
