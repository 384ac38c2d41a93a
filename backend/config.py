"""
Configuration management for the shuttle booking backend.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


# Per-mile rate for additional miles that no distance tier covers
DEFAULT_FALLBACK_PRICE_PER_MILE = 2.0

# Miles included in a vehicle type's base price when none is configured
DEFAULT_BASE_DISTANCE_THRESHOLD = 12.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Pricing defaults
    fallback_price_per_mile: float = DEFAULT_FALLBACK_PRICE_PER_MILE
    default_base_distance_threshold: float = DEFAULT_BASE_DISTANCE_THRESHOLD
    default_payment_method: str = "invoice"

    # Environment
    environment: str = "development"

    # API settings
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Frontend URL (for CORS)
    frontend_url: str = "http://localhost:3000"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields like DATABASE_URL


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
