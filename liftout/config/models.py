"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class InterestConfig(BaseModel):
    """Expression-of-interest lifecycle settings."""

    expiry_days: int = Field(
        30, ge=1, le=365, description="Days a pending EOI stays open before it reads as expired"
    )
    sweep_interval: str = Field(
        "1h", description="How often the background sweep persists lazy expiries"
    )

    # Computed from sweep_interval
    sweep_interval_seconds: Optional[int] = None

    @field_validator("sweep_interval")
    @classmethod
    def validate_sweep_interval(cls, v: str) -> str:
        """Reject intervals that are unparseable or outside 1 minute to 24 hours."""
        try:
            validate_duration_range(parse_duration(v))
        except DurationParseError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def compute_sweep_seconds(self):
        self.sweep_interval_seconds = parse_duration(self.sweep_interval)
        return self


class NotificationConfig(BaseModel):
    """Fire-and-forget notification dispatch settings."""

    email_enabled: bool = Field(True, description="Send e-mails alongside in-app notifications")
    max_workers: int = Field(
        4, ge=1, le=64, description="Thread pool size for background dispatch"
    )


class EmailConfig(BaseModel):
    """SMTP delivery settings."""

    use_tls: bool = Field(True, description="Use TLS/STARTTLS for secure connection")
    max_retries: int = Field(
        3, ge=0, le=10, description="Number of retry attempts for failed email sends"
    )
    retry_backoff_multiplier: float = Field(
        2.0, ge=1.0, le=5.0, description="Exponential backoff multiplier for retries"
    )
    retry_initial_delay: float = Field(
        2.0, ge=0.0, le=60.0, description="Initial retry delay in seconds"
    )


class AnonymizationConfig(BaseModel):
    """Extra location generalization rules for anonymized team projections."""

    region_overrides: Dict[str, str] = Field(
        default_factory=dict,
        description="Lower-case city name -> region label, merged over the built-in table",
    )

    @field_validator("region_overrides")
    @classmethod
    def normalize_keys(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Lower-case and strip city keys; drop blank entries."""
        normalized = {}
        for city, region in v.items():
            key = city.strip().lower()
            label = region.strip()
            if key and label:
                normalized[key] = label
        return normalized


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the matching engine."""

    interest: InterestConfig = Field(default_factory=InterestConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    anonymization: AnonymizationConfig = Field(default_factory=AnonymizationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
