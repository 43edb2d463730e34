"""
Services Module

Domain services behind the HTTP routers:
- identity: users, password credential and the single active session
- ledger: per-(email, product) entitlement state
- reconciler: payment webhook events -> ledger
- evaluator: the one access decision table
- admin_control: audited privileged mutations

External providers, each a client class with a module-level singleton:
- Supabase Auth (identity_provider), Stripe (payments), Resend (mailer)
"""

from .identity_provider import identity_provider
from .payments import payment_service
from .mailer import login_mailer

from .evaluator import (
    Decision,
    Mode,
    ProductAccess,
    Reason,
    best_decision,
    check_product,
    evaluate,
)

__all__ = [
    # Providers
    "identity_provider",
    "payment_service",
    "login_mailer",
    # Access evaluation
    "Decision",
    "Mode",
    "ProductAccess",
    "Reason",
    "best_decision",
    "check_product",
    "evaluate",
]
