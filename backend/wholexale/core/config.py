"""
Application configuration using pydantic-settings.

WHAT: Centralized config from environment variables
WHY: Type-safe, validated config with sensible defaults
HOW: Pydantic BaseSettings reads from .env and environment
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App metadata
    APP_NAME: str = "Wholexale Offers"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./data/wholexale.db"
    DATABASE_BUSY_TIMEOUT_MS: int = 5000  # how long a writer waits for the SQLite write lock

    # Offer negotiation
    OFFER_DEFAULT_VALIDITY_DAYS: int = 7
    OFFER_DEFAULT_MAX_VENDOR_COUNTERS: int = 2
    OFFER_MAX_RETRIES: int = Field(default=3, ge=1)  # attempts per transition under version conflicts
    OFFER_LIST_DEFAULT_LIMIT: int = 20
    OFFER_LIST_MAX_LIMIT: int = 100

    # Expiry sweeper
    OFFER_EXPIRY_SWEEP_ENABLED: bool = True
    OFFER_EXPIRY_SWEEP_SECONDS: int = 300

    # CORS - accepts comma-separated string or list
    # Use str type and parse in validator to avoid JSON parsing issues
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:3001"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from comma-separated string or list."""
        if isinstance(v, list):
            return ",".join(v)
        return v

    def get_cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "./data/logs/app.log"

    # Streaming / SSE
    SSE_HEARTBEAT_INTERVAL: int = 15  # seconds between heartbeat events
    SSE_RETRY_TIMEOUT: int = 5  # seconds for SSE retry timeout

    class Config:
        # Look for .env in project root first, then backend/.env
        env_file = [
            str(Path(__file__).parent.parent.parent.parent / ".env"),
            str(Path(__file__).parent.parent.parent / ".env"),
        ]
        env_file_encoding = "utf-8"
        case_sensitive = True


# Singleton instance
settings = Settings()
