"""
app/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (DB URI, bot token, etc.)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings
from typing import Optional, Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # MongoDB
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="nearmeet",
        description="MongoDB database name"
    )

    # Telegram
    TELEGRAM_BOT_TOKEN: Optional[str] = Field(
        default=None,
        description="Bot token issued by BotFather"
    )
    TELEGRAM_API_BASE_URL: str = Field(
        default="https://api.telegram.org",
        description="Telegram Bot API base URL"
    )
    TELEGRAM_WEBHOOK_SECRET: Optional[str] = Field(
        default=None,
        description="Value expected in X-Telegram-Bot-Api-Secret-Token"
    )
    TELEGRAM_TIMEOUT: float = Field(
        default=10.0,
        description="Telegram API request timeout in seconds"
    )

    # Meetings
    MEETING_DEFAULT_WINDOW_MINUTES: int = Field(
        default=60,
        description="Length of the proposed meeting window"
    )
    MEETING_EXPIRY_SWEEP_SECONDS: int = Field(
        default=300,
        description="Interval between expiry sweeps of pending meeting requests (0 disables)"
    )

    # Search
    DEFAULT_SEARCH_RADIUS_KM: int = Field(
        default=5,
        description="Radius used when a search runs without an explicit radius"
    )
    MAX_SEARCH_RESULTS: int = Field(
        default=50,
        description="Maximum candidates returned by a nearby search"
    )
    MIN_USER_AGE: int = Field(default=18, description="Youngest accepted age")
    MAX_USER_AGE: int = Field(default=100, description="Oldest accepted age")

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    API_PREFIX: str = Field(
        default="/api/v1",
        description="API route prefix"
    )
    CORS_ORIGINS: list = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    # Security
    SECRET_KEY: str = Field(
        default="change-me-in-production",
        description="Application secret key"
    )

    @field_validator("SECRET_KEY")
    @classmethod
    def validate_secret_key(cls, v, info: ValidationInfo):
        """Ensure secret key is changed in production."""
        if info.data.get("ENVIRONMENT") == "production" and v == "change-me-in-production":
            raise ValueError("SECRET_KEY must be changed in production environment")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True
        env_file_encoding = "utf-8"


# Global settings instance
settings = Settings()


def validate_settings():
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    errors = []

    if not settings.MONGODB_URL:
        errors.append("MONGODB_URL is required")

    if settings.MEETING_DEFAULT_WINDOW_MINUTES <= 0:
        errors.append("MEETING_DEFAULT_WINDOW_MINUTES must be positive")

    if settings.MEETING_EXPIRY_SWEEP_SECONDS < 0:
        errors.append("MEETING_EXPIRY_SWEEP_SECONDS must not be negative")

    if settings.MIN_USER_AGE > settings.MAX_USER_AGE:
        errors.append("MIN_USER_AGE must not exceed MAX_USER_AGE")

    # Production-specific validations
    if settings.is_production:
        if not settings.TELEGRAM_BOT_TOKEN:
            errors.append("TELEGRAM_BOT_TOKEN is required in production")
        if not settings.TELEGRAM_WEBHOOK_SECRET:
            errors.append("TELEGRAM_WEBHOOK_SECRET is required in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
