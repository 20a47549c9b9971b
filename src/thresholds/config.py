"""Threshold bootstrap configuration.

Default warn/critical levels written when the ``thresholds`` table is
first created. Existing rows are never overwritten by the defaults. All
settings can be overridden via ``THRESHOLDS_*`` environment variables.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ThresholdConfig(BaseSettings):
    """Default threshold levels per metric."""

    model_config = SettingsConfigDict(
        env_prefix="THRESHOLDS_",
        case_sensitive=False,
        extra="ignore",
    )

    traffic_warn: float = Field(default=70.0, description="Traffic congestion index warn level")
    traffic_critical: float = Field(default=90.0, description="Traffic congestion index critical level")

    air_quality_warn: float = Field(default=100.0, description="AQI warn level")
    air_quality_critical: float = Field(default=200.0, description="AQI critical level")

    waste_warn: float = Field(default=75.0, description="Bin fill percentage warn level")
    waste_critical: float = Field(default=90.0, description="Bin fill percentage critical level")

    power_warn: float = Field(default=80.0, description="Grid load percentage warn level")
    power_critical: float = Field(default=95.0, description="Grid load percentage critical level")

    @model_validator(mode="after")
    def _check_ordering(self) -> "ThresholdConfig":
        for metric, (warn, critical) in self.defaults().items():
            if warn >= critical:
                raise ValueError(
                    f"{metric}: warn ({warn}) must be < critical ({critical})"
                )
        return self

    def defaults(self) -> dict[str, tuple[float, float]]:
        """Return ``{metric: (warn, critical)}`` for seeding."""
        return {
            "traffic": (self.traffic_warn, self.traffic_critical),
            "air_quality": (self.air_quality_warn, self.air_quality_critical),
            "waste": (self.waste_warn, self.waste_critical),
            "power": (self.power_warn, self.power_critical),
        }
