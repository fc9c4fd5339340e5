"""
Application Configuration

Centralized configuration management using Pydantic settings.
Loads from environment variables with fallback to .env file.
"""
from pydantic_settings import BaseSettings
from pydantic import BaseModel
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    get_settings() is cached, so tests that change the environment
    must call get_settings.cache_clear().
    """

    # Database settings
    DATABASE_URL: str = "sqlite:///./crux.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40

    # Security settings
    SECRET_KEY: str = "dev-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # API keys handed to clients. The service role key bypasses row policies.
    ANON_KEY: str = ""
    SERVICE_ROLE_KEY: str = ""

    # Public URLs
    APP_NAME: str = "Crux"
    FRONTEND_URL: str = "http://localhost:3000"
    BASE_DOMAIN: str = "http://localhost:3000"

    # CORS allow-list; never a wildcard
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Signup and invitations
    ALLOW_PUBLIC_SIGNUP: bool = False
    INVITATION_EXPIRY_DAYS: int = 7
    MIN_PASSWORD_LENGTH: int = 6

    # Transactional email (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "Crux <noreply@crux.local>"
    EMAIL_TIMEOUT_SECONDS: float = 15.0

    # Redis for caching and rate limiting
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_ENABLED: bool = True
    CACHE_TTL_SECONDS: int = 60

    # Application settings
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_PER_MINUTE: int = 60
    RATE_LIMIT_BURST: int = 10

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures we only instantiate settings once.
    """
    return Settings()


REQUIRED_ENV_VARS = [
    "DATABASE_URL",
    "SECRET_KEY",
    "ANON_KEY",
    "SERVICE_ROLE_KEY",
    "FRONTEND_URL",
    "APP_NAME",
]

PLACEHOLDER_MARKERS = ("placeholder", "your-")


class EnvironmentReport(BaseModel):
    """Result of validate_environment()."""
    missing: List[str] = []
    placeholders: List[str] = []

    @property
    def is_valid(self) -> bool:
        return not self.missing and not self.placeholders


def validate_environment(settings: Settings = None) -> EnvironmentReport:
    """
    Report required settings that are empty or still hold placeholder values.

    Does not raise; callers decide whether an invalid environment is fatal.
    """
    settings = settings or get_settings()
    report = EnvironmentReport()

    for name in REQUIRED_ENV_VARS:
        value = str(getattr(settings, name, "") or "")
        if not value.strip():
            report.missing.append(name)
        elif any(marker in value.lower() for marker in PLACEHOLDER_MARKERS):
            report.placeholders.append(name)

    return report
