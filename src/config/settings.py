"""Configuration settings loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Events service
    events_api_url: str = "http://localhost:4000/v1"
    access_token: str = ""
    request_timeout_seconds: float = 10.0

    # Checkout
    max_tickets_per_order: int = 10
    clock_tick_seconds: float = 1.0

    # Stripe (test mode payment confirmation)
    stripe_secret_key: str = ""
    stripe_test_payment_method: str = "pm_card_visa"

    # Logging
    log_level: str = "INFO"

    # Application
    app_name: str = "event-checkout"
    environment: str = "development"


def load_settings() -> Settings:
    """Load and validate settings from environment."""
    return Settings()
