"""
Identity & Session Store

Owns the user record, the password credential and the single active session.

Single-session rule: a user holds at most one valid session token. Every
successful login overwrites the stored digest, so a second login silently
invalidates the first device. Password changes (self-service or admin reissue)
clear the digest as well.
"""
import datetime as dt
import logging
import uuid
from typing import Awaitable, Callable, Optional

from tortoise.exceptions import IntegrityError
from tortoise.transactions import in_transaction

from ..core import security
from ..core.errors import AlreadyExists, InputError, InvalidCredentials, NotFoundError
from ..models.user import User
from .identity_provider import identity_provider

logger = logging.getLogger("uvicorn.error")

OnCreated = Callable[[User, object], Awaitable[None]]


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


async def get_user(user_id: str, *, using_db=None) -> Optional[User]:
    try:
        uid = uuid.UUID(str(user_id))
    except ValueError:
        return None
    qs = User.filter(id=uid)
    if using_db is not None:
        qs = qs.using_db(using_db)
    return await qs.first()


async def _issue_session(user: User) -> str:
    token = security.new_session_token()
    user.session_token_hash = security.sha256_hex(token)
    user.last_login_at = utc_now()
    await user.save(update_fields=["session_token_hash", "last_login_at", "updated_at"])
    return token


async def authenticate(email: str, password: str) -> tuple[User, str]:
    """
    Verify the credential and open a new session.

    Returns:
        (user, session_token) - the plain token is only ever returned here

    Raises:
        InvalidCredentials: unknown email, wrong password or suspended account
    """
    user = await User.get_or_none(email=email)
    if not user or not security.verify_password(password, user.password_hash):
        raise InvalidCredentials("Incorrect email or password")
    if not user.is_active:
        raise InvalidCredentials("Account is not active")

    token = await _issue_session(user)
    logger.info("[identity] login user=%s", user.id)
    return user, token


async def validate_session(user_id: str, presented_token: Optional[str]) -> bool:
    """Pure check of a presented token against the user's stored session digest."""
    user = await get_user(user_id)
    return session_matches(user, presented_token)


def session_matches(user: Optional[User], presented_token: Optional[str]) -> bool:
    if user is None or not user.is_active:
        return False
    return security.tokens_match(presented_token, user.session_token_hash)


async def revoke_session(user: User) -> None:
    user.session_token_hash = None
    await user.save(update_fields=["session_token_hash", "updated_at"])


async def change_password(user_id: str, new_password: str) -> User:
    """
    Rehash the password and rotate the session.

    The identity provider is updated first so a rejected upstream update leaves
    the local credential untouched.
    """
    if not new_password:
        raise InputError("newPassword required", field="newPassword")
    user = await get_user(user_id)
    if not user:
        raise NotFoundError("User not found")

    if user.auth_user_id and identity_provider.is_available():
        await identity_provider.update_password(user.auth_user_id, new_password)

    user.password_hash = security.hash_password(new_password)
    user.password_initialized = True
    user.session_token_hash = None
    await user.save()
    logger.info("[identity] password changed, session rotated user=%s", user.id)
    return user


async def reissue_temporary_password(
    user_id: str, *, on_reissued: Optional[OnCreated] = None
) -> tuple[User, str]:
    """
    Replace the credential with a generated temporary password and end the current session.

    The local row (and whatever `on_reissued` writes on the same connection) is
    committed first. The identity provider only learns the password after that
    commit, so a rolled-back reissue never leaves it holding an unknown password.
    If the provider then rejects the update, UpstreamAuthError propagates and the
    password is not handed out; reissuing again is safe.
    """
    password = security.generate_temporary_password()
    async with in_transaction() as conn:
        user = await get_user(user_id, using_db=conn)
        if not user:
            raise NotFoundError("User not found")
        user.password_hash = security.hash_password(password)
        user.password_initialized = False
        user.session_token_hash = None
        await user.save(using_db=conn)
        if on_reissued is not None:
            await on_reissued(user, conn)

    if user.auth_user_id and identity_provider.is_available():
        await identity_provider.update_password(user.auth_user_id, password)
    logger.info("[identity] temporary password reissued user=%s", user.id)
    return user, password


async def provision_user(
    email: str,
    profile: dict,
    password: str,
    *,
    on_created: Optional[OnCreated] = None,
) -> User:
    """
    Create the identity-provider account and the local row.

    From the caller's point of view this is atomic. The local row (and anything
    `on_created` writes with the same connection) is committed in one transaction.
    If that fails, the provider account is deleted again.

    Raises:
        AlreadyExists: email already registered (locally or at the provider)
        UpstreamAuthError: provider rejected creation
    """
    if not email:
        raise InputError("email required", field="email")
    if await User.filter(email=email).exists():
        raise AlreadyExists("Email already registered", field="email")

    auth_user_id = None
    if identity_provider.is_available():
        auth_user_id = await identity_provider.create_user(
            email, password, {"plan": profile.get("plan"), "seat_limit": profile.get("seat_limit")}
        )
    else:
        logger.warning("[identity] provider not configured, provisioning local-only user email=%s", email)

    try:
        async with in_transaction() as conn:
            user = await User.create(
                auth_user_id=auth_user_id,
                email=email,
                user_name=profile.get("user_name"),
                phone=profile.get("phone"),
                plan=profile.get("plan"),
                seat_limit=int(profile.get("seat_limit") or 1),
                stripe_customer_id=profile.get("stripe_customer_id"),
                password_hash=security.hash_password(password),
                password_initialized=False,
                status="active",
                using_db=conn,
            )
            if on_created is not None:
                await on_created(user, conn)
    except Exception as e:
        if auth_user_id:
            try:
                await identity_provider.delete_user(auth_user_id)
            except Exception as cleanup_err:
                logger.error("[identity] orphaned provider account id=%s: %s", auth_user_id, cleanup_err)
        if isinstance(e, IntegrityError):
            raise AlreadyExists("Email already registered", field="email") from e
        raise

    logger.info("[identity] provisioned user=%s email=%s", user.id, email)
    return user
