# caredoc/schemas/auth.py
"""
Pydantic schemas for authentication endpoints.
Defines request/response models for login, password change and user information.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class LoginRequest(BaseModel):
    """
    Request model for user login endpoint.
    Contains credentials for authentication.
    """
    email: str  # Login id (email as registered, case-sensitive)
    password: str  # Plain text, verified against the stored argon2 hash


class UserOut(BaseModel):
    """
    User information model returned in authentication responses.
    Contains profile details without credentials or session digests.
    """
    id: str  # User unique identifier
    email: str
    userName: Optional[str] = None
    plan: Optional[str] = None
    seatLimit: int = 1
    passwordInitialized: bool = False  # False -> client should force a password change
    status: str = "active"


class LoginResponse(BaseModel):
    """
    Response model for successful login.
    `sessionToken` is the opaque single-session credential for /access/check;
    `accessToken` is a JWT for bearer-authenticated routes bound to that session.
    """
    sessionToken: str
    accessToken: str
    user: UserOut


class ChangePasswordIn(BaseModel):
    userId: str
    newPassword: str


class OkOut(BaseModel):
    ok: bool = True


class ProductStatusOut(BaseModel):
    """Evaluated access to one product, as listed by /auth/me."""
    productCode: str
    status: str  # Raw ledger status
    allowed: bool
    reason: Optional[str] = None
    mode: Optional[str] = None
    trialEnd: Optional[datetime] = None
    currentPeriodEnd: Optional[datetime] = None


class MeOut(BaseModel):
    user: UserOut
    products: List[ProductStatusOut]
