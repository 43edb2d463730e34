# caredoc/schemas/admin.py
"""
Pydantic schemas for admin control plane endpoints.
Every mutating request carries a mandatory operator `reason`.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# ========== Common return models ==========
class EntitlementOut(BaseModel):
    """Ledger row as shown to operators."""
    email: str
    productCode: str
    status: str
    trialEnd: Optional[datetime] = None
    currentPeriodEnd: Optional[datetime] = None
    stripeCustomerId: Optional[str] = None
    stripeSubscriptionId: Optional[str] = None
    updatedAt: Optional[datetime] = None


class AdminUserOut(BaseModel):
    id: str
    authUserId: Optional[str] = None  # Identity-provider id (absent for legacy rows)
    email: str
    userName: Optional[str] = None
    phone: Optional[str] = None
    plan: Optional[str] = None
    seatLimit: int = 1
    status: str
    passwordInitialized: bool
    stripeCustomerId: Optional[str] = None
    lastLoginAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None
    products: List[EntitlementOut] = []


class AdminUserListOut(BaseModel):
    """
    Response model for paginated user list endpoint.
    """
    items: List[AdminUserOut]
    offset: int
    limit: int
    total: int


class AuditLogOut(BaseModel):
    id: int
    action: str
    targetUserId: Optional[str] = None
    targetEmail: Optional[str] = None
    productCode: Optional[str] = None
    previousStatus: Optional[str] = None
    newStatus: Optional[str] = None
    trialDays: Optional[int] = None
    reason: str
    actor: str
    createdAt: datetime


class AuditLogListOut(BaseModel):
    items: List[AuditLogOut]
    offset: int
    limit: int
    total: int


# ========== Input models ==========
class AdminCreateUserIn(BaseModel):
    """
    Request model for provisioning a user with a temporary password.
    """
    email: str
    userName: Optional[str] = None
    phone: Optional[str] = None
    plan: Optional[str] = None
    seatLimit: int = Field(default=1, ge=1)
    reason: str


class AdminCreateUserOut(BaseModel):
    user: AdminUserOut
    temporaryPassword: str  # Shown once; the user must change it after first login


class AdminResetPasswordIn(BaseModel):
    reason: str


class AdminResetPasswordOut(BaseModel):
    userId: str
    temporaryPassword: str


class AdminBillingStatusIn(BaseModel):
    """
    Request model for changing a user's billing status on one product.
    billingStatus: trial (alias of trialing) / trialing / active / past_due /
    unpaid / canceled / incomplete / none
    """
    userId: str
    productCode: str
    billingStatus: str
    trialDays: Optional[int] = None  # Required (> 0) for trial statuses
    reason: str


class AdminGrantProductIn(BaseModel):
    email: str
    productCode: str
    trialDays: Optional[int] = None  # Omitted -> product default
    reason: str


class AdminEntitlementChangeOut(BaseModel):
    entitlement: EntitlementOut
    previousStatus: Optional[str] = None  # None when the row was created
