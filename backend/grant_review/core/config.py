"""
Application configuration using Pydantic settings.
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings."""

    # Database
    DATABASE_URL: str = "sqlite:///./grant_review.db"

    # JWT (tokens are issued by the identity provider, we only verify them)
    SECRET_KEY: str = "change-me-in-production-change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Foundation branding used in applicant notifications
    FOUNDATION_NAME: str = "Heistand Family Foundation"
    SUPPORT_EMAIL: str = "grants@heistandfamilyfoundation.org"
    APP_URL: str = "http://localhost:3000"  # Portal URL for links in emails

    # Email Configuration
    EMAIL_PROVIDER: str = "log"  # Options: "smtp", "sendgrid", "ses", "log"
    EMAIL_FROM: str = "grants@heistandfamilyfoundation.org"
    EMAIL_FROM_NAME: str = "Heistand Family Foundation"
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0

    # SMTP Configuration (for EMAIL_PROVIDER="smtp")
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True

    # SendGrid Configuration (for EMAIL_PROVIDER="sendgrid")
    SENDGRID_API_KEY: str = ""

    # AWS SES Configuration (for EMAIL_PROVIDER="ses")
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""

    # Rate limits for state-changing reviewer endpoints
    RATE_LIMIT_DECISIONS: str = "30/minute"
    RATE_LIMIT_RELEASES: str = "10/minute"

    # Application
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:3001"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        origins = [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]
        # In production, filter out localhost origins
        if not self.DEBUG:
            origins = [origin for origin in origins if not origin.startswith("http://localhost")]
        return origins

    def validate_secret_key(self) -> bool:
        """Validate that SECRET_KEY is strong enough."""
        if len(self.SECRET_KEY) < 32 or self.SECRET_KEY.startswith("change-me"):
            raise ValueError(
                f"SECRET_KEY must be at least 32 characters long and not the default. "
                f"Current length: {len(self.SECRET_KEY)}. "
                f"Generate a new one with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
            )
        return True

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra environment variables


settings = Settings()

# Validate SECRET_KEY strength in production
if not settings.DEBUG:
    try:
        settings.validate_secret_key()
    except ValueError as e:
        import warnings
        warnings.warn(str(e), UserWarning)
