# caredoc/core/bootstrap.py
"""
Bootstrap module for application startup checks.
Refuses to start when a secret the service cannot run without is missing.
"""
import logging

from caredoc.config import settings
from caredoc.core.errors import FatalError

logger = logging.getLogger("uvicorn.error")

# Settings attribute -> environment variable it comes from
REQUIRED_SECRETS = {
    "admin_secret_key": "ADMIN_SECRET_KEY",
    "stripe_webhook_secret": "STRIPE_WEBHOOK_SECRET",
}


def ensure_required_settings() -> None:
    """
    Raise FatalError if any required secret is unset.

    Optional integrations only log a warning: without Stripe API keys checkout
    and portal return 502, without Supabase users are provisioned local-only,
    and without Resend the login email is skipped.
    """
    missing = [env for attr, env in REQUIRED_SECRETS.items() if not getattr(settings, attr)]
    if missing:
        raise FatalError(f"missing required settings: {', '.join(missing)}")

    if not settings.stripe_secret_key:
        logger.warning("[bootstrap] STRIPE_SECRET_KEY not set -> checkout and billing portal disabled.")
    if not (settings.supabase_url and settings.supabase_service_role_key):
        logger.warning("[bootstrap] Supabase not configured -> users are provisioned local-only.")
    if not settings.resend_api_key:
        logger.warning("[bootstrap] RESEND_API_KEY not set -> login emails are skipped.")
