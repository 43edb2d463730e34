"""
Entitlement Ledger

Per-(email, product_code) subscription state. Writers:
- the webhook reconciler (checkout completion, subscription lifecycle)
- the admin control plane (manual grants, always with an audit entry)

Every write is an upsert or update keyed on a natural key, either
(email, product_code) or stripe_subscription_id. Redelivered events therefore
converge on the same row. Concurrent writers are serialised by the unique
constraint: the loser of an insert race re-reads the row and updates it.
"""
import datetime as dt
import logging
from typing import Optional

from tortoise.exceptions import IntegrityError

from ..models.entitlement import EntitlementRecord, SubscriptionStatus, TRIAL_STATUSES

logger = logging.getLogger("uvicorn.error")


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


async def get_entitlement(email: str, product_code: str, *, using_db=None) -> Optional[EntitlementRecord]:
    qs = EntitlementRecord.filter(email=email, product_code=product_code)
    if using_db is not None:
        qs = qs.using_db(using_db)
    return await qs.first()


async def list_for_email(email: str) -> list[EntitlementRecord]:
    return await EntitlementRecord.filter(email=email).order_by("-updated_at")


async def find_customer_id(email: str) -> Optional[str]:
    """Payment-customer id recorded on any of the email's rows (fallback for a stale User row)."""
    row = (
        await EntitlementRecord.filter(email=email, stripe_customer_id__isnull=False)
        .order_by("-updated_at")
        .first()
    )
    return row.stripe_customer_id if row else None


async def _upsert(email: str, product_code: str, values: dict, *, keep_if=None, using_db=None) -> EntitlementRecord:
    """
    Create-or-update keyed on (email, product_code).

    keep_if(existing) -> set of field names the update must not touch.
    """
    for attempt in range(2):
        record = await get_entitlement(email, product_code, using_db=using_db)
        if record is None:
            try:
                return await EntitlementRecord.create(
                    email=email, product_code=product_code, using_db=using_db, **values
                )
            except IntegrityError:
                # Concurrent insert for the same natural key; fall through to update
                if attempt:
                    raise
                continue

        protected = keep_if(record) if keep_if else set()
        for name, value in values.items():
            if name not in protected:
                setattr(record, name, value)
        await record.save(using_db=using_db)
        return record
    raise IntegrityError(f"could not upsert entitlement {email}/{product_code}")


async def upsert_from_checkout(
    email: str,
    product_code: str,
    customer_id: Optional[str],
    subscription_id: Optional[str],
    has_subscription: bool,
) -> EntitlementRecord:
    """
    Establish the row for a completed checkout.

    Initial status is `trialing` for subscriptions and `active` for one-time
    grants. If a lifecycle event for the same subscription already wrote the row,
    the lifecycle-owned fields (status, trial_end, current_period_end) are kept.
    That keeps the final state independent of event arrival order.
    """
    initial = SubscriptionStatus.TRIALING if has_subscription else SubscriptionStatus.ACTIVE
    values = {
        "status": initial,
        "trial_end": None,
        "current_period_end": None,
        "stripe_customer_id": customer_id,
        "stripe_subscription_id": subscription_id,
        "subscription_synced_at": None,
    }

    def _lifecycle_owned(existing: EntitlementRecord) -> set:
        if (
            subscription_id
            and existing.stripe_subscription_id == subscription_id
            and existing.subscription_synced_at is not None
        ):
            return {"status", "trial_end", "current_period_end", "subscription_synced_at"}
        return set()

    record = await _upsert(email, product_code, values, keep_if=_lifecycle_owned)
    logger.info("[ledger] checkout upsert %s sub=%s", record, subscription_id)
    return record


async def apply_subscription_event(
    subscription_id: str,
    new_status: SubscriptionStatus,
    trial_end: Optional[dt.datetime],
    period_end: Optional[dt.datetime],
) -> Optional[EntitlementRecord]:
    """
    Update the row matched by subscription id.

    Returns None when no row carries this subscription id yet (the lifecycle
    event overtook its checkout event); the caller decides how to reconcile.
    """
    record = await EntitlementRecord.get_or_none(stripe_subscription_id=subscription_id)
    if record is None:
        return None
    record.status = new_status
    record.trial_end = trial_end
    record.current_period_end = period_end
    record.subscription_synced_at = utc_now()
    await record.save()
    logger.info("[ledger] subscription event applied %s sub=%s", record, subscription_id)
    return record


async def upsert_from_subscription(
    email: str,
    product_code: str,
    customer_id: Optional[str],
    subscription_id: str,
    status: SubscriptionStatus,
    trial_end: Optional[dt.datetime],
    period_end: Optional[dt.datetime],
) -> EntitlementRecord:
    """Synthesize (or overwrite) the row from a subscription object when no checkout row exists yet."""
    record = await _upsert(
        email,
        product_code,
        {
            "status": status,
            "trial_end": trial_end,
            "current_period_end": period_end,
            "stripe_customer_id": customer_id,
            "stripe_subscription_id": subscription_id,
            "subscription_synced_at": utc_now(),
        },
    )
    logger.info("[ledger] synthesized from subscription %s sub=%s", record, subscription_id)
    return record


async def grant_manual(
    email: str,
    product_code: str,
    status: SubscriptionStatus,
    trial_days: Optional[int],
    *,
    using_db=None,
) -> tuple[EntitlementRecord, Optional[SubscriptionStatus]]:
    """
    Admin grant bypassing the payment flow.

    Trial statuses get trial_end = now + trial_days; every other status clears
    the trial window. The billing period end is cleared either way.
    Must run in the same transaction as its audit entry (pass that
    transaction's connection as `using_db`).

    Returns:
        (record, previous_status) - previous_status is None for a new row
    """
    existing = await get_entitlement(email, product_code, using_db=using_db)
    previous = existing.status if existing else None

    trial_end = None
    if status in TRIAL_STATUSES:
        trial_end = utc_now() + dt.timedelta(days=int(trial_days or 0))

    record = await _upsert(
        email,
        product_code,
        # Manual grants are not bound to a billing period
        {"status": status, "trial_end": trial_end, "current_period_end": None},
        using_db=using_db,
    )
    return record, previous
