# caredoc/core/security.py
"""
Security module for authentication and authorization.
Handles password hashing, opaque session tokens, JWT access tokens,
temporary credentials and the admin shared-secret comparison.
"""
import os
import hmac
import hashlib
import secrets
import string
import datetime as dt
import jwt  # PyJWT
from passlib.context import CryptContext
from dotenv import load_dotenv
from pathlib import Path

# Load environment variables from project root
ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(dotenv_path=ENV_PATH)

# Password hashing context (Argon2 only)
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
)

# JWT configuration
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret")  # Use a strong secret in production
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))
JWT_ALG = "HS256"

SESSION_TOKEN_BYTES = 32
TEMP_PASSWORD_LENGTH = 12


def hash_password(plain: str) -> str:
    """
    Hash a plain text password using Argon2.

    Args:
        plain: Plain text password to hash

    Returns:
        Hashed password string (salted, safe to store in database)
    """
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str | None) -> bool:
    """
    Verify a plain text password against a hashed password.

    Returns False for rows without a credential (legacy rows provisioned
    only at the identity provider).
    """
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


def new_session_token() -> str:
    """Opaque, unguessable session token handed to the client exactly once."""
    return secrets.token_urlsafe(SESSION_TOKEN_BYTES)


def sha256_hex(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def tokens_match(presented: str | None, stored_hash: str | None) -> bool:
    """Constant-time comparison of a presented session token against its stored digest."""
    if not presented or not stored_hash:
        return False
    return hmac.compare_digest(sha256_hex(presented), stored_hash)


def generate_temporary_password(length: int = TEMP_PASSWORD_LENGTH) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def secret_matches(presented: str | None, expected: str | None) -> bool:
    """Shared-secret header comparison; a missing expected secret never matches."""
    if not presented or not expected:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def create_access_token(user_id: str, session_id: str) -> str:
    """
    Create a JWT access token bound to the user's current session.

    Args:
        user_id: Unique user identifier (UUID string)
        session_id: Digest of the active session token; the token stops
                    validating as soon as the session rotates

    Token payload includes:
        - sub: Subject (user ID)
        - sid: Session digest
        - iat / exp: Issued-at and expiration timestamps
    """
    now = dt.datetime.now(dt.timezone.utc)
    payload = {
        "sub": user_id,
        "sid": session_id,
        "iat": now,
        "exp": now + dt.timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_access_token(token: str) -> dict:
    """
    Decode and validate a JWT access token.

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid or malformed
    """
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
