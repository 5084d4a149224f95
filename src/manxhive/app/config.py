"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from the project root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./manxhive.db"

    # Auth / JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 1440

    # Email (SendGrid)
    sendgrid_api_key: str = ""
    email_from: str = "no-reply@manxhive.com"

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_price_premium: str = "price_premium_placeholder"
    stripe_price_pro: str = "price_pro_placeholder"
    stripe_price_credits_10: str = "price_credits_10_placeholder"
    stripe_price_credits_50: str = "price_credits_50_placeholder"

    # CORS / Frontend
    cors_origins: str = "http://localhost:3000"
    site_url: str = "http://localhost:3000"

    # Lead unlock
    unlock_commit_retries: int = 2

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key)


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
