from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class ConfigurationError(Exception):
    """Raised when a required setting is missing at startup."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Supabase / Postgres
    SUPABASE_DB_URL: str | None = None

    # Groq exposes an OpenAI-compatible API
    GROQ_API_KEY: str | None = None
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"
    SUGGESTION_MODEL: str = "llama-3.3-70b-versatile"
    SUGGESTION_MAX_TOKENS: int = 250
    SUGGESTION_TEMPERATURE: float = 0.7
    SUGGESTION_TIMEOUT_SECONDS: float = 30.0

    # =================================================================
    # DAILY CHECK BATCH SETTINGS - delays are in milliseconds
    # =================================================================
    BATCH_SIZE: int = 20
    DELAY_BETWEEN_BATCHES: int = 5000
    DELAY_BETWEEN_CONTACTS: int = 1000
    MAX_CONTACTS_PER_RUN: int = 100
    RETRY_ATTEMPTS: int = 3
    RETRY_DELAY: int = 2000
    MAX_RETRY_DELAY: int = 30000
    BACKOFF_MULTIPLIER: float = 2.0
    RATE_LIMIT_STATUS_CODES: str = "429,503"

    DAILY_CHECK_INTERVAL_HOURS: float = 24.0

    # Shared secret the external scheduler sends to POST /jobs/daily-check
    CRON_SECRET: str | None = None

    # =================================================================
    # DATABASE POOL SETTINGS
    # =================================================================
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 5
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("RATE_LIMIT_STATUS_CODES")
    @classmethod
    def _validate_status_codes(cls, value: str) -> str:
        for part in value.split(","):
            if part.strip() and not part.strip().isdigit():
                raise ValueError(f"Invalid HTTP status code in RATE_LIMIT_STATUS_CODES: {part!r}")
        return value

    def rate_limit_status_codes(self) -> frozenset[int]:
        """Parse the comma-separated RATE_LIMIT_STATUS_CODES value."""
        return frozenset(
            int(part) for part in self.RATE_LIMIT_STATUS_CODES.split(",") if part.strip()
        )

    def require(self, *names: str) -> None:
        """
        Fail fast when a setting needed by the caller is not configured.

        Raises:
            ConfigurationError: listing every missing setting
        """
        missing = [name for name in names if not getattr(self, name, None)]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}", missing=missing
            )

    def get_db_pool_config(self) -> dict:
        """Get database pool configuration."""
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # The daily check is a single short-lived process
            config.update({"min_size": 1, "max_size": 3, "timeout": 15.0})

        return config


settings = Settings()
