from pydantic_settings import BaseSettings
from typing import Optional, List

from premium_sync.core.errors import ConfigurationError


def _parse_allowed_origins(v: str) -> List[str]:
    """Parse comma-separated origins string; strip whitespace; keep non-empty."""
    if not v or not v.strip():
        return []
    return [o.strip() for o in v.split(",") if o.strip()]


_DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:3002",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql://postgres:postgres@db:5432/premium_sync"

    # CORS: comma-separated extra origins for production
    ALLOWED_ORIGINS_EXTRA: str = ""

    def get_allowed_origins(self) -> List[str]:
        """Return CORS allowed origins: default localhost + FRONTEND_URL + ALLOWED_ORIGINS_EXTRA."""
        origins = list(_DEFAULT_CORS_ORIGINS)
        if self.FRONTEND_URL and self.FRONTEND_URL not in origins:
            origins.append(self.FRONTEND_URL)
        return origins + _parse_allowed_origins(self.ALLOWED_ORIGINS_EXTRA)

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None  # Webhook signing secret (whsec_...)
    STRIPE_PREMIUM_PRICE_ID: Optional[str] = None
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300  # Same default as the Stripe libraries

    # Frontend
    FRONTEND_URL: str = "http://localhost:5173"  # Base for checkout success/cancel redirects

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    def validate_for_webhooks(self) -> None:
        """
        Fail fast when the service cannot authenticate or act on Stripe events.
        Called from the app lifespan so a misconfigured deploy never starts serving.
        """
        missing = [
            name for name in ("STRIPE_WEBHOOK_SECRET", "STRIPE_SECRET_KEY")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")
        if self.STRIPE_WEBHOOK_TOLERANCE_SECONDS <= 0:
            raise ConfigurationError("STRIPE_WEBHOOK_TOLERANCE_SECONDS must be positive")


def get_settings() -> Settings:
    return Settings()
