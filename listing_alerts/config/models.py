"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Optional

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator, model_validator

from .interval import IntervalError, check_interval_bounds, parse_interval


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


class ReconciliationConfig(BaseModel):
    """Periodic reconciliation settings."""

    interval: str = Field("30s", description="Time between reconciliation cycles")
    interval_seconds: Optional[int] = None

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v: str) -> str:
        """Validate and parse the reconciliation interval."""
        try:
            check_interval_bounds(parse_interval(v))
            return v
        except IntervalError as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="after")
    def compute_interval_seconds(self):
        self.interval_seconds = parse_interval(self.interval)
        return self


class IngestionConfig(BaseModel):
    """Settings for the offer feed the reconciliation cycle pulls from."""

    feed_url: AnyHttpUrl = Field(..., description="URL of the normalized offer feed")
    page_limit: int = Field(40, ge=1, le=500, description="Offers requested per cycle")
    max_price: Optional[float] = Field(
        15000, ge=0, description="Upper price bound passed to the feed (priceTo)"
    )
    request_timeout: int = Field(
        30, ge=5, le=300, description="Request timeout for feed calls (seconds)"
    )
    user_agent: str = Field(
        "ListingAlerts/1.0",
        min_length=1,
        description="User-Agent string for HTTP requests",
    )

    @field_validator("user_agent")
    @classmethod
    def strip_user_agent(cls, v: str) -> str:
        """Strip whitespace from user agent."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("user_agent cannot be empty")
        return stripped


class EmailConfig(BaseModel):
    """Email channel settings."""

    use_tls: bool = Field(True, description="Use TLS/STARTTLS for secure connection")
    timeout: int = Field(30, ge=1, le=300, description="SMTP socket timeout (seconds)")


class WebhookConfig(BaseModel):
    """Webhook channel settings."""

    timeout: int = Field(10, ge=1, le=120, description="Webhook POST timeout (seconds)")
    username: str = Field(
        "Listing Alerts", min_length=1, max_length=80, description="Display name sent with payloads"
    )


class NotificationsConfig(BaseModel):
    """Notification channel settings."""

    email: EmailConfig = Field(default_factory=EmailConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the listing alerts service."""

    ingestion: IngestionConfig = Field(..., description="Offer feed settings")
    reconciliation: ReconciliationConfig = Field(
        default_factory=ReconciliationConfig, description="Reconciliation schedule"
    )
    notifications: NotificationsConfig = Field(
        default_factory=NotificationsConfig, description="Notification channel settings"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

    @property
    def reconciliation_interval_seconds(self) -> int:
        return self.reconciliation.interval_seconds
