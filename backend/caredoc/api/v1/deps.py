# caredoc/api/v1/deps.py
import hmac

from fastapi import Header, HTTPException, Request, status

from caredoc.config import settings
from caredoc.core.security import decode_access_token, secret_matches
from caredoc.models.user import User
from caredoc.services.identity import get_user


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": code, "message": message},
    )


async def get_current_user(
    request: Request,
    authorization: str | None = Header(default=None),
) -> User:
    """
    FastAPI dependency to get the current authenticated user.

    This dependency extracts and validates the JWT token from either:
    1. Authorization header (Bearer token) - preferred method
    2. HttpOnly cookie (accessToken) - fallback method

    The token's `sid` claim must equal the user's current session digest, so
    a login elsewhere, a password change or a logout invalidates it at once.

    Raises:
        HTTPException (401): AUTH_REQUIRED / AUTH_INVALID_TOKEN /
            AUTH_USER_NOT_FOUND / AUTH_SESSION_REVOKED
    """
    token = None
    # 1) Prioritize Authorization: Bearer xxx
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
    # 2) Secondly HttpOnly Cookie: accessToken
    if not token:
        token = request.cookies.get("accessToken")

    if not token:
        raise _unauthorized("AUTH_REQUIRED", "Authentication required")

    try:
        payload = decode_access_token(token)
        user_id: str = payload.get("sub")
        session_id: str = payload.get("sid") or ""
    except Exception:
        raise _unauthorized("AUTH_INVALID_TOKEN", "Invalid or expired token")

    user = await get_user(user_id)
    if not user or not user.is_active:
        raise _unauthorized("AUTH_USER_NOT_FOUND", "User not found")
    if not user.session_token_hash or not hmac.compare_digest(session_id, user.session_token_hash):
        raise _unauthorized("AUTH_SESSION_REVOKED", "Session is no longer valid")
    return user


async def require_admin_key(
    x_admin_key: str | None = Header(default=None),
    x_admin_actor: str | None = Header(default=None),
) -> str:
    """
    FastAPI dependency guarding the admin control plane.

    Compares the X-Admin-Key header with ADMIN_SECRET_KEY in constant time.

    Returns:
        str: Operator name for the audit trail (X-Admin-Actor, default "admin")

    Raises:
        HTTPException (401): UNAUTHORIZED_ADMIN if the key is missing or wrong
    """
    if not secret_matches(x_admin_key, settings.admin_secret_key):
        raise _unauthorized("UNAUTHORIZED_ADMIN", "Admin key missing or invalid")
    actor = (x_admin_actor or "").strip()
    return actor[:128] or "admin"
