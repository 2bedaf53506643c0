"""Configuration management using pydantic-settings."""

import threading
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Valid log levels
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

DEFAULT_SYNC_MARKER = "[HealthToCalendar-Synced]"


class AppSettings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="APP_")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or console")
    timezone: str = Field(
        default="UTC", description="IANA timezone used for calendar-day boundaries"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        normalized = v.upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
            )
        return normalized

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is valid."""
        normalized = v.lower()
        if normalized not in ("json", "console"):
            raise ValueError(f"Invalid log format '{v}'. Must be 'json' or 'console'")
        return normalized

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate timezone is a known IANA name."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone '{v}'") from e
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class LedgerSettings(BaseSettings):
    """Sync ledger persistence settings."""

    model_config = SettingsConfigDict(env_prefix="LEDGER_")

    db_path: str = Field(
        default="data/health_calendar.db", description="SQLite key-value store path"
    )
    blob_key: str = Field(default="syncHistory", description="Key the ledger is stored under")

    @field_validator("blob_key")
    @classmethod
    def validate_blob_key(cls, v: str) -> str:
        """Validate blob key is not empty."""
        if not v or not v.strip():
            raise ValueError("Ledger blob key cannot be empty")
        return v.strip()


class CalendarSettings(BaseSettings):
    """External calendar provider settings."""

    model_config = SettingsConfigDict(env_prefix="CALENDAR_")

    base_url: str = Field(
        default="http://localhost:8080/api", description="Calendar REST API base URL"
    )
    token: str | None = Field(default=None, description="Bearer token for the calendar API")
    calendar_id: str | None = Field(
        default=None, description="Target calendar (provider default when unset)"
    )
    timeout_seconds: float = Field(default=30.0, description="Per-request timeout")
    max_retries: int = Field(default=3, description="Attempts per record on transient errors")
    retry_delay_seconds: float = Field(default=1.0, description="Base retry backoff")
    marker: str = Field(
        default=DEFAULT_SYNC_MARKER, description="Marker written into synced record notes"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate base URL is http(s) and strip the trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Calendar base URL must start with http:// or https://, got {v}")
        return v.rstrip("/")

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError(f"Timeout must be positive, got {v}")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Validate retry count is within range."""
        if not 1 <= v <= 10:
            raise ValueError(f"Max retries must be between 1 and 10, got {v}")
        return v

    @field_validator("retry_delay_seconds")
    @classmethod
    def validate_retry_delay(cls, v: float) -> float:
        """Validate retry delay is not negative."""
        if v < 0:
            raise ValueError(f"Retry delay cannot be negative, got {v}")
        return v

    @field_validator("marker")
    @classmethod
    def validate_marker(cls, v: str) -> str:
        """Validate marker is not empty."""
        if not v or not v.strip():
            raise ValueError("Sync marker cannot be empty")
        return v


class SourceSettings(BaseSettings):
    """Health data source settings."""

    model_config = SettingsConfigDict(env_prefix="SOURCE_")

    export_path: str | None = Field(
        default=None, description="Health Auto Export JSON file to read samples from"
    )


class TracingSettings(BaseSettings):
    """OpenTelemetry tracing settings."""

    model_config = SettingsConfigDict(env_prefix="TRACING_")

    enabled: bool = Field(default=False, description="Enable OTLP trace export")
    service_name: str = Field(default="health-calendar", description="Service name for traces")


class Settings(BaseSettings):
    """Combined application settings."""

    app: AppSettings = Field(default_factory=AppSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    calendar: CalendarSettings = Field(default_factory=CalendarSettings)
    source: SourceSettings = Field(default_factory=SourceSettings)
    tracing: TracingSettings = Field(default_factory=TracingSettings)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            app=AppSettings(),
            ledger=LedgerSettings(),
            calendar=CalendarSettings(),
            source=SourceSettings(),
            tracing=TracingSettings(),
        )


# Global settings instance with thread-safe initialization
_settings: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get or create the global settings instance.

    Thread-safe singleton pattern using double-checked locking.
    """
    global _settings
    if _settings is None:
        with _settings_lock:
            # Double-check after acquiring lock
            if _settings is None:
                _settings = Settings.load()
    return _settings
