# caredoc/api/v1/routers/admin.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from caredoc.api.v1.deps import require_admin_key
from caredoc.models.audit_log import AuditLogEntry
from caredoc.models.entitlement import EntitlementRecord
from caredoc.models.user import User
from caredoc.schemas.admin import (
    AdminBillingStatusIn,
    AdminCreateUserIn,
    AdminCreateUserOut,
    AdminEntitlementChangeOut,
    AdminGrantProductIn,
    AdminResetPasswordIn,
    AdminResetPasswordOut,
    AdminUserListOut,
    AuditLogListOut,
)
from caredoc.services import admin_control

router = APIRouter(prefix="/admin", tags=["admin"])


# ==============================================================================
# Serialisation helpers
# ==============================================================================
def _entitlement_to_dict(r: EntitlementRecord) -> dict:
    return {
        "email": r.email,
        "productCode": r.product_code,
        "status": r.status.value,
        "trialEnd": r.trial_end,
        "currentPeriodEnd": r.current_period_end,
        "stripeCustomerId": r.stripe_customer_id,
        "stripeSubscriptionId": r.stripe_subscription_id,
        "updatedAt": r.updated_at,
    }


def _user_to_dict(u: User, records: Optional[list[EntitlementRecord]] = None) -> dict:
    return {
        "id": str(u.id),
        "authUserId": u.auth_user_id,
        "email": u.email,
        "userName": u.user_name,
        "phone": u.phone,
        "plan": u.plan,
        "seatLimit": u.seat_limit,
        "status": u.status,
        "passwordInitialized": u.password_initialized,
        "stripeCustomerId": u.stripe_customer_id,
        "lastLoginAt": u.last_login_at,
        "createdAt": u.created_at,
        "products": [_entitlement_to_dict(r) for r in records or []],
    }


def _audit_to_dict(e: AuditLogEntry) -> dict:
    return {
        "id": e.id,
        "action": e.action,
        "targetUserId": str(e.target_user_id) if e.target_user_id else None,
        "targetEmail": e.target_email,
        "productCode": e.product_code,
        "previousStatus": e.previous_status,
        "newStatus": e.new_status,
        "trialDays": e.trial_days,
        "reason": e.reason,
        "actor": e.actor,
        "createdAt": e.created_at,
    }


def _change_to_dict(record: EntitlementRecord, previous) -> dict:
    return {
        "entitlement": _entitlement_to_dict(record),
        "previousStatus": previous.value if previous else None,
    }


# ==============================================================================
# I. Users
#     Prefix: /api/v1/admin/users
# ==============================================================================
@router.post("/users", response_model=AdminCreateUserOut)
async def create_user(body: AdminCreateUserIn, actor: str = Depends(require_admin_key)):
    """
    Provision a user with a temporary password (audited).

    Raises:
        AlreadyExists (409): email already registered
        UpstreamAuthError (502): identity provider rejected the account
    """
    profile = {
        "user_name": body.userName,
        "phone": body.phone,
        "plan": body.plan,
        "seat_limit": body.seatLimit,
    }
    user, password = await admin_control.create_user(body.email, profile, reason=body.reason, actor=actor)
    return {"user": _user_to_dict(user), "temporaryPassword": password}


@router.get("/users", response_model=AdminUserListOut)
async def list_users(
    q: str | None = Query(default=None, description="Fuzzy search by user name/email"),
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    actor: str = Depends(require_admin_key),
):
    """
    Paginated users (newest first), each with their ledger rows.
    """
    total, rows = await admin_control.list_users(q, offset, limit)
    items = [_user_to_dict(u, records) for u, records in rows]
    return {"items": items, "offset": offset, "limit": limit, "total": total}


@router.post("/users/{user_id}/reset-password", response_model=AdminResetPasswordOut)
async def reset_password(user_id: str, body: AdminResetPasswordIn, actor: str = Depends(require_admin_key)):
    """
    Reissue a temporary password and end the user's current session (audited).
    """
    user, password = await admin_control.reissue_temporary_password(user_id, reason=body.reason, actor=actor)
    return {"userId": str(user.id), "temporaryPassword": password}


# ==============================================================================
# II. Billing
# ==============================================================================
@router.post("/billing-status", response_model=AdminEntitlementChangeOut)
async def change_billing_status(body: AdminBillingStatusIn, actor: str = Depends(require_admin_key)):
    """
    Set the billing status of one of a user's products (audited).

    `trial` / `trialing` need trialDays > 0; other statuses clear the trial window.
    """
    record, previous = await admin_control.change_billing_status(
        body.userId,
        body.productCode,
        body.billingStatus,
        body.trialDays,
        reason=body.reason,
        actor=actor,
    )
    return _change_to_dict(record, previous)


@router.post("/grant-product", response_model=AdminEntitlementChangeOut)
async def grant_product(body: AdminGrantProductIn, actor: str = Depends(require_admin_key)):
    """
    Grant a product directly, bypassing payment (audited).
    """
    record, previous = await admin_control.grant_product(
        body.email,
        body.productCode,
        body.trialDays,
        reason=body.reason,
        actor=actor,
    )
    return _change_to_dict(record, previous)


# ==============================================================================
# III. Audit trail (read-only)
# ==============================================================================
@router.get("/audit-logs", response_model=AuditLogListOut)
async def list_audit_logs(
    userId: str | None = Query(default=None),
    email: str | None = Query(default=None),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: str = Depends(require_admin_key),
):
    total, rows = await admin_control.list_audit_logs(offset, limit, user_id=userId, email=email)
    return {"items": [_audit_to_dict(e) for e in rows], "offset": offset, "limit": limit, "total": total}
