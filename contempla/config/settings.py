"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from decimal import Decimal

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False
    database_busy_timeout: float = Field(
        default=30.0,
        gt=0,
        description="SQLite busy timeout in seconds (ignored for PostgreSQL)",
    )

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_dir: str = "logs"

    # Redis (for Dramatiq and distributed locks)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Dramatiq broker: "redis" in deployments, "stub" for tests and local runs
    broker_backend: str = "redis"

    # Group formation
    reservation_expiry_minutes: int = Field(
        default=60,
        gt=0,
        description="Minutes a PendingPayment seat is held before it expires",
    )
    join_max_attempts: int = Field(
        default=10,
        ge=1,
        description="Attempts for a join that keeps losing optimistic conflicts",
    )
    confirmation_max_attempts: int = Field(
        default=5,
        ge=1,
        description="Attempts for a payment confirmation transaction",
    )
    conflict_backoff_seconds: float = Field(
        default=0.05,
        ge=0,
        description="Base delay for exponential backoff between conflict retries",
    )
    referral_code_length: int = Field(default=8, ge=6, le=20)
    referral_code_max_attempts: int = Field(default=10, ge=1)

    # Commissions
    commission_max_depth: int = Field(
        default=2,
        ge=1,
        description="How many referral levels receive a commission",
    )

    # Payments
    payment_webhook_secret: str | None = None
    stale_processing_minutes: int = Field(
        default=15,
        gt=0,
        description="Age after which an in-flight payment ref may be reconciled",
    )

    # Credits
    min_withdrawal_amount: Decimal = Field(
        default=Decimal("50.00"),
        gt=0,
        description="Minimum withdrawal amount",
    )

    # Outbound facts
    event_sink_url: str | None = None
    outbox_batch_size: int = Field(default=100, ge=1)

    # HTTP surfaces
    api_host: str = "0.0.0.0"
    api_port: int = Field(default=8080, ge=1, le=65535)
    health_check_port: int = Field(
        default=8081, ge=1, le=65535, description="Scheduler health check port"
    )

    # Scheduler intervals
    expiry_sweep_interval_seconds: int = Field(default=60, ge=1)
    reconciliation_interval_seconds: int = Field(default=300, ge=1)
    outbox_relay_interval_seconds: int = Field(default=10, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(
            ("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")
        ):
            raise ValueError(
                "DATABASE_URL must start with postgresql+asyncpg:// "
                "(or sqlite+aiosqlite:// for local runs)"
            )
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @field_validator("broker_backend")
    @classmethod
    def validate_broker_backend(cls, v: str) -> str:
        """Validate dramatiq broker backend."""
        v = v.lower()
        if v not in ("redis", "stub"):
            raise ValueError("BROKER_BACKEND must be 'redis' or 'stub'")
        return v

    @model_validator(mode="after")
    def validate_production(self) -> "Settings":
        """Validate production-specific requirements."""
        if self.environment == "production":
            if self.debug:
                raise ValueError(
                    "DEBUG must be False in production environment. "
                    "Set DEBUG=false in your .env file."
                )
            if self.database_url.startswith("sqlite"):
                raise ValueError(
                    "SQLite cannot be used in production; "
                    "configure a PostgreSQL DATABASE_URL."
                )
            if not self.payment_webhook_secret:
                # Callbacks are still processed, but unauthenticated
                logger.warning(
                    "PAYMENT_WEBHOOK_SECRET is not set. "
                    "Payment callbacks will not be signature-checked."
                )
        return self


# Global settings instance
settings = Settings()
