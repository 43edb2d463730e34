# caredoc/api/v1/routers/auth.py
from fastapi import APIRouter, Depends, HTTPException, Response, status

from caredoc.api.v1.deps import get_current_user
from caredoc.core.security import create_access_token
from caredoc.models.user import User
from caredoc.schemas.auth import (
    ChangePasswordIn,
    LoginRequest,
    LoginResponse,
    MeOut,
    OkOut,
    UserOut,
)
from caredoc.services import evaluator, identity, ledger

router = APIRouter(prefix="/auth", tags=["auth"])


def _user_out(u: User) -> UserOut:
    return UserOut(
        id=str(u.id),
        email=u.email,
        userName=u.user_name,
        plan=u.plan,
        seatLimit=u.seat_limit,
        passwordInitialized=u.password_initialized,
        status=u.status,
    )


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest, response: Response):
    """
    Authenticate a subscriber and open a new session.

    The new session replaces any earlier one, so a second login from another
    device makes the first device's session token (and access token) invalid.

    Returns:
        LoginResponse: sessionToken (opaque, for /access/check), accessToken
        (JWT bound to the same session) and the user profile

    Raises:
        InvalidCredentials (401): unknown email, wrong password or suspended account
    """
    user, session_token = await identity.authenticate(payload.email, payload.password)
    access_token = create_access_token(str(user.id), user.session_token_hash)
    response.set_cookie("accessToken", access_token, httponly=True, secure=False, samesite="lax")
    return LoginResponse(sessionToken=session_token, accessToken=access_token, user=_user_out(user))


@router.post("/change-password", response_model=OkOut)
async def change_password(body: ChangePasswordIn, response: Response, user: User = Depends(get_current_user)):
    """
    Replace the password of the logged-in user.

    Besides the {userId, newPassword} body this route needs the caller's access
    token (Authorization: Bearer, or the accessToken cookie set at login).

    Always rotates the session: every token issued before the change stops
    validating and the client has to log in again.

    Raises:
        HTTPException (401): no access token (AUTH_REQUIRED), or a token that is
            invalid, of an unknown user, or of a revoked session
        HTTPException (403): userId does not belong to the authenticated user
        InputError (400): newPassword missing
        UpstreamAuthError (502): identity provider rejected the new password
    """
    if body.userId != str(user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "FORBIDDEN", "message": "Cannot change another user's password"},
        )
    await identity.change_password(body.userId, body.newPassword)
    response.delete_cookie("accessToken")
    return OkOut(ok=True)


@router.get("/me", response_model=MeOut)
async def me(user: User = Depends(get_current_user)):
    """
    Current user plus the evaluated access to each product they hold.
    """
    records = await ledger.list_for_email(user.email)
    products = []
    for r in records:
        decision = evaluator.evaluate_record(True, r)
        products.append(
            {
                "productCode": r.product_code,
                "status": r.status.value,
                "allowed": decision.allowed,
                "reason": decision.reason.value if decision.reason else None,
                "mode": decision.mode.value if decision.mode else None,
                "trialEnd": r.trial_end,
                "currentPeriodEnd": r.current_period_end,
            }
        )
    return {"user": _user_out(user), "products": products}


@router.post("/logout", response_model=OkOut)
async def logout(response: Response, user: User = Depends(get_current_user)):
    """
    End the current session server-side and clear the access token cookie.
    """
    await identity.revoke_session(user)
    response.delete_cookie("accessToken")
    return OkOut(ok=True)
