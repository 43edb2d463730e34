# caredoc/schemas/access.py
"""
Pydantic schemas for access and entitlement checks.
Denials are normal 200 responses carrying a reason code.
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class AccessCheckIn(BaseModel):
    userId: str
    sessionToken: str
    productCode: Optional[str] = None  # Omitted -> any product the user holds


class AccessCheckOut(BaseModel):
    valid: bool  # Session validity alone
    allowed: bool  # Session and billing combined
    reason: Optional[str] = None  # session_invalid / payment_required / subscription_canceled / expired


class EntitlementCheckIn(BaseModel):
    email: str
    productCode: str


class EntitlementCheckOut(BaseModel):
    ok: bool
    mode: Optional[str] = None  # trial | active
    trialEnd: Optional[datetime] = None
    reason: Optional[str] = None  # not_granted | expired
    status: Optional[str] = None  # Raw ledger status on expiry


class ResolveAppIn(BaseModel):
    email: str


class ResolveAppOut(BaseModel):
    app: Literal["facility", "home"]


class AnonymousUsageOut(BaseModel):
    allowed: bool
    remaining: int
    reason: Optional[str] = None
