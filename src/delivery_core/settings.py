from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FareSettings(BaseSettings):
    default_distance_km: float = Field(
        default=5.0,
        ge=0.0,
        description="Distance used when the provider has no usable answer",
    )
    free_distance_km: float = Field(
        default=3.0,
        ge=0.0,
        description="Distance covered by the vehicle base rate",
    )
    service_fee_rate: float = Field(default=0.18, ge=0.0, le=1.0)
    handling_minutes: float = Field(
        default=10.0,
        ge=0.0,
        description="Fixed pickup/handling allowance added to every ETA",
    )
    currency: str = "TZS"

    model_config = SettingsConfigDict(env_prefix="FARE_")


class TrackingSettings(BaseSettings):
    time_format: str = "%H:%M"
    timezone: str | None = Field(
        default=None,
        description="IANA zone for timeline times; local zone when unset",
    )
    arrival_allowance_minutes: int = Field(default=15, ge=0, le=240)

    model_config = SettingsConfigDict(env_prefix="TRACKING_")


class RedisSettings(BaseSettings):
    host: str = "localhost"
    port: int = 6379
    password: str | None = None
    ssl: bool = False
    delivery_channel_prefix: str = "delivery-updates"
    driver_location_channel_prefix: str = "driver-locations"
    driver_profile_key_prefix: str = "driver-profile"

    model_config = SettingsConfigDict(env_prefix="REDIS_")


class OSRMSettings(BaseSettings):
    base_url: str = "http://localhost:5000"
    timeout: float = Field(default=5.0, gt=0.0, le=60.0)

    model_config = SettingsConfigDict(env_prefix="OSRM_")

    @field_validator("base_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("OSRM base URL must start with http:// or https://")
        return v.rstrip("/")


class LoggingSettings(BaseSettings):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["text", "json"] = "text"
    environment: str = "development"

    model_config = SettingsConfigDict(env_prefix="LOG_")


class Settings(BaseSettings):
    fare: FareSettings = Field(default_factory=FareSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    osrm: OSRMSettings = Field(default_factory=OSRMSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        case_sensitive=False,
    )


def get_settings() -> Settings:
    """Load and validate settings from environment variables."""
    return Settings()
