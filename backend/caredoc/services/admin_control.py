"""
Admin Control Plane

Privileged mutations of users and entitlements, invoked by internal tooling
holding the shared admin secret. Every mutation:
- requires a non-empty operator reason
- appends exactly one AuditLogEntry in the same transaction as the change
Failures are surfaced verbatim to the (trusted) caller.
"""
import logging
import uuid
from typing import Optional

from tortoise.expressions import Q
from tortoise.transactions import in_transaction

from ..core import security
from ..core.errors import InputError, NotFoundError
from ..models.audit_log import AuditLogEntry
from ..models.entitlement import EntitlementRecord, PRODUCT_CODES, SubscriptionStatus, TRIAL_STATUSES
from ..models.user import User
from . import identity, ledger

logger = logging.getLogger("uvicorn.error")

ACTION_CREATE_USER = "create_user"
ACTION_RESET_PASSWORD = "reset_password"
ACTION_BILLING_STATUS = "billing_status"
ACTION_GRANT_PRODUCT = "grant_product"

# Trial length applied by grant_product when the operator gives none
DEFAULT_TRIAL_DAYS = {"conference": 14}


def require_reason(reason: Optional[str]) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise InputError("reason required", field="reason")
    return reason


def require_product(product_code: Optional[str]) -> str:
    if product_code not in PRODUCT_CODES:
        raise InputError(f"productCode must be one of {', '.join(PRODUCT_CODES)}", field="productCode")
    return product_code


def parse_billing_status(raw: Optional[str]) -> SubscriptionStatus:
    """Accepts any ledger status; `trial` is an alias of `trialing`."""
    value = (raw or "").strip().lower()
    if value == "trial":
        return SubscriptionStatus.TRIALING
    try:
        return SubscriptionStatus(value)
    except ValueError:
        raise InputError(f"unknown billingStatus {raw!r}", field="billingStatus")


async def record_audit(
    conn,
    *,
    action: str,
    actor: str,
    reason: str,
    target_user: Optional[User] = None,
    target_email: Optional[str] = None,
    product_code: Optional[str] = None,
    previous_status: Optional[SubscriptionStatus] = None,
    new_status: Optional[SubscriptionStatus] = None,
    trial_days: Optional[int] = None,
) -> AuditLogEntry:
    entry = await AuditLogEntry.create(
        action=action,
        actor=actor,
        reason=reason,
        target_user=target_user,
        target_email=target_email or (target_user.email if target_user else None),
        product_code=product_code,
        previous_status=previous_status.value if previous_status else None,
        new_status=new_status.value if new_status else None,
        trial_days=trial_days,
        using_db=conn,
    )
    logger.info("[admin] %s by %s target=%s product=%s", action, actor, entry.target_email, product_code)
    return entry


async def create_user(email: str, profile: dict, *, reason: str, actor: str) -> tuple[User, str]:
    """
    Provision an account with a temporary password.

    Returns:
        (user, temporary_password) - the password is shown to the operator once
    """
    reason = require_reason(reason)
    password = security.generate_temporary_password()

    async def _audit(user: User, conn) -> None:
        await record_audit(conn, action=ACTION_CREATE_USER, actor=actor, reason=reason, target_user=user)

    user = await identity.provision_user(email, profile, password, on_created=_audit)
    return user, password


async def reissue_temporary_password(user_id: str, *, reason: str, actor: str) -> tuple[User, str]:
    reason = require_reason(reason)

    async def _audit(user: User, conn) -> None:
        await record_audit(conn, action=ACTION_RESET_PASSWORD, actor=actor, reason=reason, target_user=user)

    return await identity.reissue_temporary_password(user_id, on_reissued=_audit)


async def change_billing_status(
    user_id: str,
    product_code: str,
    billing_status: str,
    trial_days: Optional[int],
    *,
    reason: str,
    actor: str,
) -> tuple[EntitlementRecord, Optional[SubscriptionStatus]]:
    """
    Set a user's entitlement status for one product.

    Trial statuses need trial_days > 0 and get trial_end = now + trial_days;
    any other status clears the trial window.
    """
    reason = require_reason(reason)
    product_code = require_product(product_code)
    status = parse_billing_status(billing_status)
    if status in TRIAL_STATUSES:
        if not trial_days or trial_days <= 0:
            raise InputError("trialDays must be > 0 for a trial", field="trialDays")
    else:
        trial_days = None

    user = await identity.get_user(user_id)
    if not user:
        raise NotFoundError("User not found")

    async with in_transaction() as conn:
        record, previous = await ledger.grant_manual(
            user.email, product_code, status, trial_days, using_db=conn
        )
        await record_audit(
            conn,
            action=ACTION_BILLING_STATUS,
            actor=actor,
            reason=reason,
            target_user=user,
            product_code=product_code,
            previous_status=previous,
            new_status=status,
            trial_days=trial_days,
        )
    return record, previous


async def grant_product(
    email: str,
    product_code: str,
    trial_days: Optional[int] = None,
    *,
    reason: str,
    actor: str,
) -> tuple[EntitlementRecord, Optional[SubscriptionStatus]]:
    """
    Grant a product outside the payment flow (comped accounts, support).

    With trial days (given, or the product's default) the grant is a trial,
    otherwise the entitlement is active. The email need not belong to a local
    user yet.
    """
    reason = require_reason(reason)
    product_code = require_product(product_code)
    if not email:
        raise InputError("email required", field="email")

    days = trial_days if trial_days is not None else DEFAULT_TRIAL_DAYS.get(product_code)
    if days is not None and days < 0:
        raise InputError("trialDays must not be negative", field="trialDays")
    status = SubscriptionStatus.TRIALING if days else SubscriptionStatus.ACTIVE
    days = days or None

    target = await User.get_or_none(email=email)
    async with in_transaction() as conn:
        record, previous = await ledger.grant_manual(email, product_code, status, days, using_db=conn)
        await record_audit(
            conn,
            action=ACTION_GRANT_PRODUCT,
            actor=actor,
            reason=reason,
            target_user=target,
            target_email=email,
            product_code=product_code,
            previous_status=previous,
            new_status=status,
            trial_days=days,
        )
    return record, previous


async def list_users(q: Optional[str], offset: int, limit: int) -> tuple[int, list[tuple[User, list[EntitlementRecord]]]]:
    qs = User.all().order_by("-created_at")
    if q:
        qs = qs.filter(Q(user_name__icontains=q) | Q(email__icontains=q))
    total = await qs.count()
    users = await qs.offset(offset).limit(limit)

    records = await EntitlementRecord.filter(email__in=[u.email for u in users]).order_by("-updated_at")
    by_email: dict[str, list[EntitlementRecord]] = {}
    for r in records:
        by_email.setdefault(r.email, []).append(r)
    return total, [(u, by_email.get(u.email, [])) for u in users]


async def list_audit_logs(
    offset: int, limit: int, *, user_id: Optional[str] = None, email: Optional[str] = None
) -> tuple[int, list[AuditLogEntry]]:
    qs = AuditLogEntry.all()
    if user_id:
        try:
            user_id = str(uuid.UUID(str(user_id)))
        except ValueError:
            raise InputError("userId must be a UUID", field="userId")
        qs = qs.filter(target_user_id=user_id)
    if email:
        qs = qs.filter(target_email=email)
    total = await qs.count()
    rows = await qs.order_by("-created_at", "-id").offset(offset).limit(limit)
    return total, rows
