"""Configuration management for taskmarket."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="taskmarket.db", description="Path to the SQLite database file")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")

    # Redis Configuration (optional)
    redis_url: str | None = Field(default=None, description="Redis connection URL (e.g., redis://localhost:6379)")

    # Marketplace rules
    max_active_tasks_per_creator: int = Field(
        default=3, description="Maximum number of simultaneously active tasks a creator may own"
    )

    # Verification rate limiting (applied at the HTTP surface, requires Redis)
    verification_attempts_per_window: int = Field(
        default=10, description="Maximum verification code submissions per user and task within one window"
    )
    verification_window_seconds: int = Field(default=60, description="Verification rate limit window (in seconds)")

    @property
    def is_production(self) -> bool:
        """Return True when running in the production environment."""
        return self.environment.lower() == "production"

    def require_credential(self, field_name: str, service_name: str) -> str:
        """Validate that a required credential is set, raising a clear error if missing.

        Args:
            field_name: Name of the field to check
            service_name: Human-readable service name for error message

        Returns:
            The credential value

        Raises:
            ValueError: If the credential is None or empty
        """
        value = getattr(self, field_name)
        if not value:
            raise ValueError(
                f"{service_name} credential not configured. "
                f"Set {field_name.upper()} environment variable or add to .env file."
            )
        return value


# Application Constants
class Constants:
    """Application-wide constants."""

    # Verification codes
    VERIFICATION_CODE_MIN: int = 100000
    VERIFICATION_CODE_MAX: int = 999999

    # Ratings (0 means "unrated")
    RATING_UNRATED: int = 0
    RATING_MIN: int = 1
    RATING_MAX: int = 5

    # HTTP Status Codes
    HTTP_TOO_MANY_REQUESTS: int = 429

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100
    MAX_PER_PAGE_LIMIT: int = 500

    # Redis Configuration
    REDIS_MAX_CONNECTIONS: int = 10

    # Change feed
    SUBSCRIPTION_QUEUE_MAXSIZE: int = 1000

    # Display fallbacks
    UNKNOWN_USER_NAME: str = "Unknown user"
    UNKNOWN_TASK_TITLE: str = "Unknown task"


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
