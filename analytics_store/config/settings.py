"""
Analytics Store
Centralized Configuration Management

Pydantic settings with environment variable support for the analytics
document store, its capacity budget and the retention engine.
"""

from functools import lru_cache
from typing import Dict, Optional
from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Usage percentage at which a threshold-triggered cleanup pass stops early.
SAFETY_MARGIN_PERCENT = 70.0


class StoreSettings(BaseSettings):
    """MongoDB Analytics Store Configuration"""

    model_config = SettingsConfigDict(env_prefix="MONGODB_", extra="ignore")

    uri: Optional[str] = Field(default=None, description="Store connection URI (unset disables analytics)")
    database: str = Field(default="analytics", description="Database name")
    server_selection_timeout_ms: int = Field(default=5000, description="Connect/ping timeout in milliseconds")

    # Capacity budget
    max_storage_mb: float = Field(
        default=450.0,
        validation_alias=AliasChoices("MAX_STORAGE_MB", "MONGODB_MAX_STORAGE_MB", "max_storage_mb"),
        description="Storage budget in MB, below the provider's hard cap",
    )
    cleanup_threshold_percent: float = Field(
        default=85.0,
        validation_alias=AliasChoices(
            "CLEANUP_THRESHOLD_PERCENT",
            "MONGODB_CLEANUP_THRESHOLD_PERCENT",
            "cleanup_threshold_percent",
        ),
        description="Usage percentage that triggers cleanup",
    )

    # Reconnection backoff
    reconnect_initial_delay_seconds: float = Field(default=30.0, description="First reconnect delay")
    reconnect_max_delay_seconds: float = Field(default=1800.0, description="Reconnect delay cap")

    @field_validator("max_storage_mb")
    @classmethod
    def validate_max_storage(cls, v: float) -> float:
        """Budget must be positive"""
        if v <= 0:
            raise ValueError("max_storage_mb must be positive")
        return v

    @field_validator("cleanup_threshold_percent")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        """Threshold must sit above the safety margin"""
        if not SAFETY_MARGIN_PERCENT < v <= 100:
            raise ValueError(
                f"cleanup_threshold_percent must be in ({SAFETY_MARGIN_PERCENT:g}, 100]"
            )
        return v

    @model_validator(mode="after")
    def validate_backoff(self) -> "StoreSettings":
        if self.reconnect_initial_delay_seconds <= 0:
            raise ValueError("reconnect_initial_delay_seconds must be positive")
        if self.reconnect_max_delay_seconds < self.reconnect_initial_delay_seconds:
            raise ValueError("reconnect_max_delay_seconds must be >= reconnect_initial_delay_seconds")
        return self


class RetentionSettings(BaseSettings):
    """Retention Engine and Scheduler Configuration"""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    retention_overrides: Dict[str, int] = Field(
        default_factory=dict,
        description="Per-category retention days, keyed by category value",
    )
    compliance_override: bool = Field(
        default=False,
        description="Allow audit log retention below the compliance floor",
    )

    # Scheduler
    scheduler_enabled: bool = Field(default=True, description="Run periodic maintenance in-process")
    cleanup_interval_minutes: float = Field(default=60.0, description="Minutes between maintenance ticks")
    refresh_dashboard_stats: bool = Field(default=True, description="Refresh today's dashboard rollup on each tick")

    @field_validator("cleanup_interval_minutes")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("cleanup_interval_minutes must be positive")
        return v


class MonitoringSettings(BaseSettings):
    """Logging and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="analytics-store", description="Application name")
    app_env: str = Field(default="development", description="Environment")
    debug: bool = Field(default=False, description="Debug mode")

    # Admin API server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    store: StoreSettings = Field(default_factory=StoreSettings)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
