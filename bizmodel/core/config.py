# bizmodel/core/config.py
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - DATABASE_URL (Postgres connection string; sqlite:// for tests)
      - SESSION_SECRET (signs the session cookie)

    Optional:
      - STRIPE_SECRET_KEY / STRIPE_WEBHOOK_SECRET (payment processor)
      - SCORING_SERVICE_URL (recommendation engine)
      - ADMIN_API_KEY (admin refund endpoints)
      - SMTP_* (transactional email, see core/email_client.py)
    """

    PROJECT_NAME: str = "BizModel Report API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"
    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]

    # DB config
    DATABASE_URL: str

    # Login sessions
    SESSION_SECRET: str
    SESSION_ALG: str = "HS256"
    SESSION_COOKIE_NAME: str = "bizmodel_session"
    SESSION_COOKIE_SECURE: bool = True
    SESSION_TTL_HOURS: int = 24 * 30

    # IP + User-Agent fallback, only bridges short cookie failures
    FALLBACK_SESSION_TTL_HOURS: int = 24

    # Abandoned checkouts disappear after this window
    STAGED_ACCOUNT_TTL_HOURS: int = 24

    PASSWORD_RESET_TTL_MINUTES: int = 60

    # Pricing (cents)
    CURRENCY: str = "usd"
    FIRST_REPORT_PRICE_CENTS: int = 999
    RETURNING_REPORT_PRICE_CENTS: int = 499
    ACCESS_PASS_PRICE_CENTS: int = 999
    RETAKE_BUNDLE_PRICE_CENTS: int = 499
    RETAKE_BUNDLE_SIZE: int = 2

    # Payment processor
    STRIPE_SECRET_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None

    # Recommendation engine
    SCORING_SERVICE_URL: str | None = None
    SCORING_TIMEOUT_SECONDS: float = 10.0

    ADMIN_API_KEY: str | None = None

    FRONTEND_URL: str = "http://localhost:5173"

    # SMTP (see core/email_client.py)
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_FROM_EMAIL: str | None = None
    SMTP_FROM_NAME: str = "BizModelAI"
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def check_price_ladder(self) -> "Settings":
        if self.RETURNING_REPORT_PRICE_CENTS >= self.FIRST_REPORT_PRICE_CENTS:
            raise ValueError(
                "RETURNING_REPORT_PRICE_CENTS must be lower than FIRST_REPORT_PRICE_CENTS"
            )
        if self.RETAKE_BUNDLE_SIZE < 1:
            raise ValueError("RETAKE_BUNDLE_SIZE must be at least 1")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
