"""
Webhook Reconciler

Folds verified payment-provider events into the entitlement ledger.

Delivery is at-least-once and unordered, so every handler is an idempotent
upsert keyed on a natural key. Nothing that goes wrong past signature
verification becomes an HTTP error: failures are logged and the event is
acknowledged. Provisioning a self-serve subscriber and mailing the login
details are scheduled as background tasks after the acknowledgement.
"""
import datetime as dt
import logging
from typing import Any, Optional

from fastapi import BackgroundTasks

from ..config import settings
from ..core import security
from ..core.errors import AlreadyExists, ReconciliationWarning, UpstreamPaymentError
from ..models.entitlement import PRODUCT_CODES, SubscriptionStatus
from ..models.user import User
from . import identity, ledger
from .mailer import login_mailer
from .payments import payment_service

logger = logging.getLogger("uvicorn.error")

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

# Upstream statuses with no direct ledger counterpart
_STATUS_ALIASES = {
    "incomplete_expired": SubscriptionStatus.CANCELED,
    "paused": SubscriptionStatus.PAST_DUE,
}


def normalize_status(raw: Optional[str], *, deleted: bool = False) -> SubscriptionStatus:
    """Map a provider subscription status onto the ledger's status set."""
    if deleted:
        return SubscriptionStatus.CANCELED
    if not raw:
        return SubscriptionStatus.NONE
    if raw in _STATUS_ALIASES:
        return _STATUS_ALIASES[raw]
    try:
        return SubscriptionStatus(raw)
    except ValueError:
        logger.warning("[webhook] unknown subscription status %r, storing as none", raw)
        return SubscriptionStatus.NONE


def from_epoch(value: Any) -> Optional[dt.datetime]:
    if value in (None, ""):
        return None
    try:
        return dt.datetime.fromtimestamp(int(value), tz=dt.timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def subscription_period_end(sub: Any) -> Optional[dt.datetime]:
    """current_period_end of the subscription, or of its first item on newer API versions."""
    end = from_epoch(sub.get("current_period_end"))
    if end is not None:
        return end
    items = (sub.get("items") or {}).get("data") or []
    if items:
        return from_epoch(items[0].get("current_period_end"))
    return None


def _id_of(value: Any) -> Optional[str]:
    # Expandable fields arrive either as an id or as the expanded object
    if value is None or isinstance(value, str):
        return value
    return value.get("id")


def _product_code(metadata: Optional[dict], source: str) -> str:
    code = (metadata or {}).get("product_code")
    if code in PRODUCT_CODES:
        return code

    if code:
        logger.warning("[webhook] %s carries unknown product_code %r", source, code)
    if settings.default_product_code:
        logger.warning(
            "[webhook] %s has no usable product_code, falling back to %s",
            source,
            settings.default_product_code,
        )
        return settings.default_product_code
    raise ReconciliationWarning(f"{source} has no product_code; left for manual review")


async def _customer_email(customer_id: Optional[str]) -> Optional[str]:
    if not customer_id or not payment_service.is_available():
        return None
    return await payment_service.retrieve_customer_email(customer_id)


async def _sync_subscription(subscription_id: str) -> None:
    """
    Replace the checkout placeholder status with the subscription's live state.

    Covers a lifecycle event that was dropped before its checkout row existed.
    Without payment API access the placeholder stays until the next lifecycle event.
    """
    if not payment_service.is_available():
        return
    try:
        sub = await payment_service.retrieve_subscription(subscription_id)
    except UpstreamPaymentError as e:
        logger.warning("[webhook] could not read subscription %s, keeping checkout state: %s", subscription_id, e)
        return
    await ledger.apply_subscription_event(
        subscription_id,
        normalize_status(sub.get("status")),
        from_epoch(sub.get("trial_end")),
        subscription_period_end(sub),
    )


async def provision_subscriber(email: str, profile: dict) -> None:
    """
    Background task: create the account of a first-time buyer and mail the
    temporary password. Failures are logged only.
    """
    password = security.generate_temporary_password()
    try:
        user = await identity.provision_user(email, profile, password)
    except AlreadyExists:
        logger.info("[webhook] subscriber already provisioned email=%s", email)
        return
    except Exception as e:
        logger.error("[webhook] self-serve provisioning failed email=%s: %s", email, e)
        return

    try:
        await login_mailer.send_login_info(email, user.user_name, password)
    except Exception as e:
        logger.error("[webhook] login email failed email=%s: %s", email, e)


async def on_checkout_completed(session: dict, background_tasks: BackgroundTasks) -> None:
    session_id = session.get("id")
    details = session.get("customer_details") or {}
    customer_id = _id_of(session.get("customer"))

    email = details.get("email") or session.get("customer_email")
    if not email:
        email = await _customer_email(customer_id)
    if not email:
        raise ReconciliationWarning(f"checkout {session_id} has no resolvable email")

    product_code = _product_code(session.get("metadata"), f"checkout {session_id}")
    subscription_id = _id_of(session.get("subscription"))

    record = await ledger.upsert_from_checkout(
        email, product_code, customer_id, subscription_id, has_subscription=bool(subscription_id)
    )
    if subscription_id and record.subscription_synced_at is None:
        await _sync_subscription(subscription_id)

    user = await User.get_or_none(email=email)
    if user is None:
        background_tasks.add_task(
            provision_subscriber,
            email,
            {
                "user_name": details.get("name"),
                "phone": details.get("phone"),
                "plan": product_code,
                "seat_limit": 1,
                "stripe_customer_id": customer_id,
            },
        )
        return

    if customer_id and user.stripe_customer_id != customer_id:
        user.stripe_customer_id = customer_id
        await user.save(update_fields=["stripe_customer_id", "updated_at"])


async def on_subscription_changed(sub: dict, *, deleted: bool = False) -> None:
    subscription_id = sub.get("id")
    status = normalize_status(sub.get("status"), deleted=deleted)
    trial_end = from_epoch(sub.get("trial_end"))
    period_end = subscription_period_end(sub)

    record = await ledger.apply_subscription_event(subscription_id, status, trial_end, period_end)
    if record is not None:
        return

    # Lifecycle event overtook its checkout event; build the row from the subscription itself
    customer_id = _id_of(sub.get("customer"))
    product_code = (sub.get("metadata") or {}).get("product_code")
    email = await _customer_email(customer_id)
    if not email or product_code not in PRODUCT_CODES:
        raise ReconciliationWarning(
            f"subscription {subscription_id} has no ledger row and cannot be synthesized"
        )

    logger.warning("[webhook] subscription %s arrived before its checkout, synthesizing row", subscription_id)
    await ledger.upsert_from_subscription(
        email, product_code, customer_id, subscription_id, status, trial_end, period_end
    )


async def handle_event(event: dict, background_tasks: BackgroundTasks) -> None:
    """
    Dispatch one verified event. Never raises.
    """
    etype = event.get("type")
    logger.info("[webhook] received type=%s id=%s", etype, event.get("id"))

    try:
        obj = (event.get("data") or {}).get("object") or {}
        if etype == CHECKOUT_COMPLETED:
            await on_checkout_completed(obj, background_tasks)
        elif etype in (SUBSCRIPTION_CREATED, SUBSCRIPTION_UPDATED):
            await on_subscription_changed(obj)
        elif etype == SUBSCRIPTION_DELETED:
            await on_subscription_changed(obj, deleted=True)
        else:
            logger.info("[webhook] unhandled event type %s", etype)
    except ReconciliationWarning as w:
        logger.warning("[webhook] %s (event %s)", w, event.get("id"))
    except Exception:
        logger.exception("[webhook] failed to apply event type=%s id=%s", etype, event.get("id"))
