import datetime as dt

import pytest

from caredoc.api.v1.routers.usage import anonymous_limiter
from caredoc.models.entitlement import EntitlementRecord, SubscriptionStatus


pytestmark = pytest.mark.asyncio


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


async def _entitlement_check(client, email: str, product_code: str):
    return await client.post(
        "/api/v1/entitlement/check",
        json={"email": email, "productCode": product_code},
    )


async def test_entitlement_check_new_user_is_not_granted(client):
    resp = await _entitlement_check(client, "new@example.com", "monitoring")
    assert resp.status_code == 200
    assert resp.json() == {"ok": False, "reason": "not_granted"}


async def test_entitlement_check_trialing_until_tomorrow(client):
    await EntitlementRecord.create(
        email="trial@example.com",
        product_code="monitoring",
        status=SubscriptionStatus.TRIALING,
        trial_end=_now() + dt.timedelta(days=1),
    )
    resp = await _entitlement_check(client, "trial@example.com", "monitoring")
    body = resp.json()
    assert body["ok"] is True
    assert body["mode"] == "trial"
    assert "trialEnd" in body


async def test_entitlement_check_active_with_lapsed_period_is_expired(client):
    await EntitlementRecord.create(
        email="lapsed@example.com",
        product_code="monitoring",
        status=SubscriptionStatus.ACTIVE,
        current_period_end=_now() - dt.timedelta(days=1),
    )
    resp = await _entitlement_check(client, "lapsed@example.com", "monitoring")
    assert resp.json() == {"ok": False, "reason": "expired", "status": "active"}


async def test_entitlement_check_active_subscription(client):
    await EntitlementRecord.create(
        email="paid@example.com",
        product_code="conference",
        status=SubscriptionStatus.ACTIVE,
        current_period_end=_now() + dt.timedelta(days=20),
    )
    resp = await _entitlement_check(client, "paid@example.com", "conference")
    assert resp.json() == {"ok": True, "mode": "active"}


async def test_entitlement_check_canceled_echoes_status(client):
    await EntitlementRecord.create(
        email="bye@example.com", product_code="monitoring", status=SubscriptionStatus.CANCELED
    )
    resp = await _entitlement_check(client, "bye@example.com", "monitoring")
    assert resp.json() == {"ok": False, "reason": "expired", "status": "canceled"}


async def test_entitlement_check_is_per_product(client):
    await EntitlementRecord.create(
        email="one@example.com", product_code="monitoring", status=SubscriptionStatus.ACTIVE
    )
    resp = await _entitlement_check(client, "one@example.com", "conference")
    assert resp.json()["reason"] == "not_granted"


async def test_entitlement_check_rejects_unknown_product(client):
    resp = await _entitlement_check(client, "one@example.com", "karaoke")
    assert resp.status_code == 400
    assert resp.json()["detail"]["field"] == "productCode"


async def test_access_check_combines_session_and_billing(client, create_user, login):
    user, password = await create_user()
    session = await login(user.email, password)
    payload = {"userId": str(user.id), "sessionToken": session["sessionToken"]}

    no_plan = await client.post("/api/v1/access/check", json=payload)
    assert no_plan.json() == {"valid": True, "allowed": False, "reason": "payment_required"}

    await EntitlementRecord.create(
        email=user.email, product_code="monitoring", status=SubscriptionStatus.PAST_DUE
    )
    await EntitlementRecord.create(
        email=user.email,
        product_code="conference",
        status=SubscriptionStatus.ACTIVE,
    )

    any_product = await client.post("/api/v1/access/check", json=payload)
    assert any_product.json() == {"valid": True, "allowed": True, "reason": None}

    monitoring = await client.post("/api/v1/access/check", json={**payload, "productCode": "monitoring"})
    assert monitoring.json() == {"valid": True, "allowed": False, "reason": "payment_required"}


async def test_access_check_trial_window_overrides_status(client, create_user, login):
    user, password = await create_user()
    await EntitlementRecord.create(
        email=user.email,
        product_code="monitoring",
        status=SubscriptionStatus.CANCELED,
        trial_end=_now() + dt.timedelta(hours=6),
    )
    session = await login(user.email, password)

    resp = await client.post(
        "/api/v1/access/check",
        json={"userId": str(user.id), "sessionToken": session["sessionToken"], "productCode": "monitoring"},
    )
    assert resp.json()["allowed"] is True


async def test_access_check_lapsed_trial_is_expired(client, create_user, login):
    user, password = await create_user()
    await EntitlementRecord.create(
        email=user.email,
        product_code="monitoring",
        status=SubscriptionStatus.TRIALING,
        trial_end=_now() - dt.timedelta(hours=1),
    )
    session = await login(user.email, password)

    resp = await client.post(
        "/api/v1/access/check",
        json={"userId": str(user.id), "sessionToken": session["sessionToken"], "productCode": "monitoring"},
    )
    assert resp.json() == {"valid": True, "allowed": False, "reason": "expired"}


async def test_entitlement_check_lapsed_trial_is_expired(client):
    await EntitlementRecord.create(
        email="over@example.com",
        product_code="monitoring",
        status=SubscriptionStatus.TRIALING,
        trial_end=_now() - dt.timedelta(days=1),
    )
    resp = await _entitlement_check(client, "over@example.com", "monitoring")
    assert resp.json() == {"ok": False, "reason": "expired", "status": "trialing"}


async def test_access_check_canceled_subscription(client, create_user, login):
    user, password = await create_user()
    await EntitlementRecord.create(
        email=user.email, product_code="monitoring", status=SubscriptionStatus.CANCELED
    )
    session = await login(user.email, password)

    resp = await client.post(
        "/api/v1/access/check",
        json={"userId": str(user.id), "sessionToken": session["sessionToken"]},
    )
    assert resp.json() == {"valid": True, "allowed": False, "reason": "subscription_canceled"}


async def test_access_check_unknown_user_is_session_invalid(client):
    resp = await client.post(
        "/api/v1/access/check",
        json={"userId": "not-a-uuid", "sessionToken": "whatever"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"valid": False, "allowed": False, "reason": "session_invalid"}


async def test_access_check_missing_session_token_is_bad_request(client):
    resp = await client.post("/api/v1/access/check", json={"userId": "abc"})
    assert resp.status_code == 400
    assert resp.json()["detail"]["field"] == "sessionToken"


async def test_resolve_app_prefers_usable_facility_product(client):
    await EntitlementRecord.create(
        email="home@example.com", product_code="monitoring", status=SubscriptionStatus.ACTIVE
    )
    await EntitlementRecord.create(
        email="facility@example.com", product_code="facility_monitoring", status=SubscriptionStatus.ACTIVE
    )
    await EntitlementRecord.create(
        email="lapsed@example.com", product_code="facility_monitoring", status=SubscriptionStatus.UNPAID
    )

    for email, app_name in (
        ("home@example.com", "home"),
        ("facility@example.com", "facility"),
        ("lapsed@example.com", "home"),
        ("nobody@example.com", "home"),
    ):
        resp = await client.post("/api/v1/entitlement/resolve-app", json={"email": email})
        assert resp.json() == {"app": app_name}, email


async def test_anonymous_usage_limit_per_client(client):
    anonymous_limiter.reset()
    headers = {"X-Forwarded-For": "203.0.113.7"}

    results = [(await client.post("/api/v1/usage/anonymous", headers=headers)).json() for _ in range(4)]
    assert [r["allowed"] for r in results] == [True, True, True, False]
    assert [r["remaining"] for r in results] == [2, 1, 0, 0]
    assert results[-1]["reason"] == "free_limit_reached"

    other = await client.post("/api/v1/usage/anonymous", headers={"X-Forwarded-For": "198.51.100.2"})
    assert other.json()["allowed"] is True
    anonymous_limiter.reset()
