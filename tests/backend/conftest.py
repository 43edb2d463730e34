import hashlib
import hmac
import json
import os
import time
import uuid

# Secrets and provider settings must be in place before caredoc is imported
ADMIN_KEY = "test-admin-key"
WEBHOOK_SECRET = "whsec_test_secret"
TEST_DB_URL = "sqlite://:memory:?cache=shared"

os.environ["ADMIN_SECRET_KEY"] = ADMIN_KEY
os.environ["STRIPE_WEBHOOK_SECRET"] = WEBHOOK_SECRET
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET"] = "test-jwt-secret"
# Providers unconfigured: local-only provisioning, no outbound mail or Stripe calls
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = ""
os.environ["RESEND_API_KEY"] = ""
os.environ["DEFAULT_PRODUCT_CODE"] = ""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from tortoise import Tortoise

from caredoc.core.db import init_db
from caredoc.core.security import hash_password
from caredoc.main import app
from caredoc.models.user import User


async def _init_test_db() -> None:
    """
    Initialize a clean in-memory SQLite database for every test.
    Ensures tables are recreated from scratch.
    """
    if Tortoise._inited:
        await Tortoise.close_connections()
    await init_db(TEST_DB_URL, generate_schemas=True)


@pytest_asyncio.fixture
async def db():
    """Fresh database without the HTTP client, for service-level tests."""
    await _init_test_db()
    yield
    await Tortoise.close_connections()


@pytest_asyncio.fixture
async def client():
    """
    Provide an HTTPX AsyncClient bound to the FastAPI app with a fresh DB.
    """
    await _init_test_db()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client
    await Tortoise.close_connections()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Key": ADMIN_KEY, "X-Admin-Actor": "ops@example.com"}


@pytest.fixture
def create_user():
    """
    Factory fixture to create subscribers directly via ORM.
    """

    async def _create_user(email: str | None = None, password: str = "UserPass!23", **fields) -> tuple[User, str]:
        fields.setdefault("user_name", "テスト 利用者")
        fields.setdefault("password_initialized", True)
        user = await User.create(
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            password_hash=hash_password(password),
            **fields,
        )
        return user, password

    return _create_user


@pytest.fixture
def login(client):
    """
    Helper fixture returning the login response body (sessionToken, accessToken, user).
    """

    async def _login(email: str, password: str) -> dict:
        resp = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _login


def bearer(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header value for a raw payload."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def stripe_event(event_type: str, obj: dict, event_id: str | None = None) -> bytes:
    event = {
        "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }
    return json.dumps(event).encode("utf-8")


@pytest.fixture
def post_webhook(client):
    """Send a signed event to the payments webhook."""

    async def _post(event_type: str, obj: dict, *, event_id: str | None = None, signature: str | None = None):
        payload = stripe_event(event_type, obj, event_id)
        headers = {
            "Content-Type": "application/json",
            "Stripe-Signature": signature if signature is not None else sign_payload(payload),
        }
        return await client.post("/api/v1/webhooks/payments", content=payload, headers=headers)

    return _post
