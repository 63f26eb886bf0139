"""
Configuration module - Central access point for environment variables.

CRITICAL: Access ALL environment variables through this module.
NEVER use os.getenv() directly in application code.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Redis
    REDIS_URL: str = Field(
        default="redis://redis:6379/0",
        description="Redis connection string"
    )

    # OpenRouter (extraction LLM)
    OPENROUTER_API_KEY: str = Field(default="sk-or-placeholder")
    OPENROUTER_BASE_URL: str = Field(default="https://openrouter.ai/api/v1")
    EXTRACTION_MODEL: str = Field(
        default="openai/gpt-4o-mini",
        description="Model used for structured intent extraction (OpenRouter format)"
    )

    # Anthropic (reply generation LLM)
    ANTHROPIC_API_KEY: str = Field(default="sk-ant-placeholder")
    RESPONSE_MODEL: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used to write customer-facing replies"
    )

    # Booking backend (vehicle catalog, VAT rates, booking creation)
    BOOKING_API_URL: str = Field(
        default="http://booking-api:3000",
        description="Base URL of the booking backend"
    )
    BOOKING_API_TOKEN: str = Field(default="placeholder")

    # Timeouts (seconds)
    EXTRACTION_TIMEOUT_SECONDS: float = Field(default=10.0)
    RESPONSE_TIMEOUT_SECONDS: float = Field(default=15.0)
    CAR_SEARCH_TIMEOUT_SECONDS: float = Field(
        default=8.0,
        description="Timeout applied to each individual vehicle search query"
    )

    # Conversation state
    STATE_TTL_SECONDS: int = Field(
        default=86400,
        description="Expiry of persisted conversation state (abandoned conversations self-clean)"
    )
    HISTORY_LIMIT: int = Field(
        default=10,
        description="Number of most recent messages kept in conversation history"
    )
    STATE_SAVE_MAX_ATTEMPTS: int = Field(default=3)

    # Search and ranking
    MAX_EXACT_MATCHES: int = Field(default=3)
    MAX_ALTERNATIVES: int = Field(default=3)
    MAX_SEARCH_CANDIDATES: int = Field(default=10)
    MAX_PRESENTED_OPTIONS: int = Field(default=5)
    SIMILAR_PRICE_TOLERANCE: float = Field(
        default=0.15,
        description="Relative day-rate band used to tag SIMILAR_PRICE_RANGE alternatives"
    )

    # Messaging templates
    VEHICLE_CARD_CONTENT_SID: str = Field(default="HX43448303892f9f4026057adb597e0c22")
    CHECKOUT_LINK_CONTENT_SID: str = Field(default="HX34269684dbcb609ab817c66c719eaba3")
    OUTBOX_DEDUPE_TTL_SECONDS: int = Field(default=86400)

    # Application Settings
    BRAND_NAME: str = Field(default="Tripdly")
    GUEST_EMAIL_DOMAIN: str = Field(
        default="tripdly.com",
        description="Domain used to build guest emails for messaging-channel bookings"
    )
    TIMEZONE: str = Field(default="Africa/Lagos")
    LOG_LEVEL: str = Field(default="INFO")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()
