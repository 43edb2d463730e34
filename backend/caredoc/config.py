# caredoc/config.py
import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Settings(BaseModel):
    # General app settings
    APP_NAME: str = "Care Documentation Assistant API"
    env: str = os.getenv("ENV", "dev")

    # Host & Port settings
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))

    # CORS origins for frontend
    CORS_ORIGINS: list[str] = [
        o.strip()
        for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if o.strip()
    ]

    # Public base URL of the web app (Stripe success/cancel/return URLs, login link in emails)
    app_base_url: str = os.getenv("APP_BASE_URL", "http://localhost:3000")

    # Admin control plane: shared secret compared against the X-Admin-Key header
    admin_secret_key: str | None = os.getenv("ADMIN_SECRET_KEY")

    # Stripe (payment provider)
    stripe_secret_key: str | None = os.getenv("STRIPE_SECRET_KEY")
    stripe_webhook_secret: str | None = os.getenv("STRIPE_WEBHOOK_SECRET")
    stripe_timeout_sec: int = int(os.getenv("STRIPE_TIMEOUT_SEC", "20"))
    # Price id per product code
    stripe_prices: dict[str, str | None] = {
        "monitoring": os.getenv("STRIPE_PRICE_MONITORING"),
        "conference": os.getenv("STRIPE_PRICE_CONFERENCE"),
        "facility_monitoring": os.getenv("STRIPE_PRICE_FACILITY_MONITORING"),
    }
    checkout_trial_days: int = int(os.getenv("CHECKOUT_TRIAL_DAYS", "30"))

    # Product code assumed when a checkout event carries no metadata.
    # Unset means "skip and log for manual review".
    default_product_code: str | None = os.getenv("DEFAULT_PRODUCT_CODE") or None

    # Supabase Auth (identity provider)
    supabase_url: str | None = os.getenv("SUPABASE_URL")
    supabase_service_role_key: str | None = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    identity_timeout_sec: int = int(os.getenv("IDENTITY_TIMEOUT_SEC", "15"))

    # Resend (login notification email)
    resend_api_key: str | None = os.getenv("RESEND_API_KEY")
    resend_api_url: str = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
    mail_from: str = os.getenv("MAIL_FROM", "やさしいモニタリングAI <no-reply@example.com>")
    enable_login_email: bool = _env_flag("ENABLE_LOGIN_EMAIL", "true")

    # Anonymous free-tier generations per client IP (per process, resets on restart)
    anonymous_free_limit: int = int(os.getenv("ANONYMOUS_FREE_LIMIT", "3"))
    anonymous_max_tracked_clients: int = int(os.getenv("ANONYMOUS_MAX_TRACKED_CLIENTS", "10000"))


settings = Settings()  # Instantiate configuration
