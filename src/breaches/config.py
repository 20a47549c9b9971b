"""Breach evaluator configuration.

Controls the evaluation period, the deduplication window, listing caps
and the optional cross-process lock. All settings can be overridden via
``BREACHES_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BreachConfig(BaseSettings):
    """Configuration for breach evaluation and listing."""

    model_config = SettingsConfigDict(
        env_prefix="BREACHES_",
        case_sensitive=False,
        extra="ignore",
    )

    eval_interval_seconds: float = Field(
        default=15.0,
        ge=1.0,
        le=3600.0,
        description="Seconds between evaluator ticks",
    )

    # Deduplication: suppress a new (metric, severity) breach while one
    # exists inside the trailing window
    dedup_window_minutes: float = Field(
        default=5.0,
        gt=0.0,
        le=1440.0,
        description="Trailing minutes during which an identical breach is suppressed",
    )

    list_limit: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Maximum breaches returned by a listing",
    )

    lock_key: str = Field(
        default="breaches:evaluator:lock",
        description="Redis key used to keep evaluations single-flight across workers",
    )
    lock_ttl_seconds: int = Field(
        default=60,
        ge=5,
        description="Expiry of the evaluator lock if a holder dies mid-tick",
    )

    sample_max_age_seconds: float = Field(
        default=300.0,
        ge=0.0,
        description="Readings older than this are ignored by the evaluator (0 disables)",
    )

    notify_on_breach: bool = Field(
        default=True,
        description="Dispatch a push notification for every newly recorded breach",
    )
