from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import field_validator, model_validator
from typing import Annotated, Any, ClassVar
import json
from pathlib import Path
import os


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        env_file=os.getenv(
            "ENV_FILE", str(Path(__file__).resolve().parents[3] / ".env")
        ),
        case_sensitive=True,
    )

    API_V1_STR: str = "/api/v1"

    # Database URL
    # Use an absolute path so running the app from different directories
    # (e.g., repo root or backend/) always resolves the same DB file.
    BASE_DIR: ClassVar[Path] = Path(__file__).resolve().parents[2]
    SQLALCHEMY_DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'rifaqui.db'}"

    # CORS origins for the browser checkout flow. Webhook routes answer
    # preflight themselves with a wildcard origin.
    CORS_ORIGINS: Annotated[list[str], NoDecode] = ["http://localhost:5173", "http://localhost:3000"]
    CORS_ALLOW_ALL: bool = False

    # Shared key for /ops maintenance routes. Empty disables those routes.
    ADMIN_API_KEY: str = ""

    # Default currency code for payments that do not report one
    DEFAULT_CURRENCY: str = "BRL"

    # SuitPay API host used when creating PIX charges
    SUITPAY_HOST: str = "https://ws.suitpay.app"
    SUITPAY_TIMEOUT_SECONDS: float = 15.0
    # Public base URL of this API; used to build provider callback URLs
    PUBLIC_API_URL: str = "http://localhost:8000"

    # Stripe checkout for publication fees. Empty key returns a placeholder session.
    STRIPE_SECRET_KEY: str = ""
    # Front end base URL for Stripe success/cancel redirects
    APP_URL: str = "http://localhost:5173"

    # Ticket inventory repair
    BACKFILL_BATCH_SIZE: int = 5000

    # Cleanup policy
    LOG_RETENTION_DAYS: int = 30
    # Reservations older than this are released back to available (0 disables)
    RESERVATION_TTL_MINUTES: int = 15

    # In-process maintenance loop (cleanup + reservation expiry)
    ENABLE_SCHEDULER: bool = True
    MAINTENANCE_INTERVAL_SECONDS: int = 3600

    # Observability
    LOG_LEVEL: str = "INFO"
    ENABLE_CONSOLE_TRACING: bool = False

    @field_validator("CORS_ORIGINS", mode="before")
    def split_origins(cls, v: Any) -> list[str]:
        """Parse comma-separated or JSON list of origins from environment."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                pass
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("ADMIN_API_KEY", "SUITPAY_HOST", "PUBLIC_API_URL", "STRIPE_SECRET_KEY", mode="before")
    def strip_whitespace(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("BACKFILL_BATCH_SIZE")
    def positive_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("BACKFILL_BATCH_SIZE must be at least 1")
        return v

    @model_validator(mode="after")
    def allow_all_if_requested(cls, values: "Settings") -> "Settings":
        if values.CORS_ALLOW_ALL:
            values.CORS_ORIGINS = ["*"]
        return values


def load_settings() -> "Settings":
    return Settings(_env_file=os.getenv("ENV_FILE", str(Path(__file__).resolve().parents[3] / ".env")))


settings = load_settings()
