from __future__ import annotations

from datetime import timedelta

from plantscan import crud
from plantscan.enums import PaymentKind, PaymentStatus, SubscriptionProvider, SubscriptionStatus
from plantscan.integrations.yookassa import GatewayError
from plantscan.models import Subscription, utc_now


def _reload(db, user_id: int) -> Subscription:
    db.expire_all()
    return crud.get_subscription(session=db, user_id=user_id)


def _paid_subscription(db, user_id: int, method: str | None = "pm_card_1") -> None:
    db.add(
        Subscription(
            user_id=user_id,
            status=SubscriptionStatus.active,
            provider=SubscriptionProvider.yookassa,
            payment_method_id=method,
            current_period_end=utc_now() + timedelta(days=15),
        )
    )
    db.commit()


def test_status_creates_row_lazily(client, db, login):
    headers, user_id = login()
    assert crud.get_subscription(session=db, user_id=user_id) is None

    r = client.get("/api/v1/billing/status", headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "canceled"
    assert body["hasAccess"] is False
    assert body["hasSavedCard"] is False
    assert body["payments"] == []
    assert _reload(db, user_id) is not None


def test_status_lists_recent_payments(client, db, login):
    headers, user_id = login()
    _paid_subscription(db, user_id)
    for i in range(12):
        crud.add_payment(
            session=db,
            user_id=user_id,
            provider_payment_id=f"pay_{i}",
            amount=9900,
            currency="RUB",
            status=PaymentStatus.succeeded,
            kind=PaymentKind.subscription if i == 0 else PaymentKind.renewal,
        )
    db.commit()

    body = client.get("/api/v1/billing/status", headers=headers).json()
    assert body["status"] == "active"
    assert body["provider"] == "yookassa"
    assert body["hasAccess"] is True
    assert body["hasSavedCard"] is True
    assert len(body["payments"]) == 10


def test_cancel_keeps_access_until_period_end(client, db, login):
    headers, user_id = login()
    _paid_subscription(db, user_id)

    r = client.post("/api/v1/billing/cancel", headers=headers)
    assert r.status_code == 200
    assert r.json() == {"ok": True}

    sub = _reload(db, user_id)
    assert sub.status == SubscriptionStatus.canceled
    assert sub.payment_method_id == "pm_card_1"
    assert client.get("/api/v1/billing/status", headers=headers).json()["hasAccess"] is True


def test_change_card_creates_verification_payment(client, gateway, login):
    headers, user_id = login()

    r = client.post("/api/v1/billing/change-card", headers=headers)
    assert r.status_code == 200
    assert r.json()["url"].startswith("https://yoomoney.test/")

    created = gateway.created[0]
    assert created["amount"] == 100
    assert created["save_payment_method"] is True
    assert created["metadata"] == {"userId": str(user_id), "changeCard": "true"}
    assert created["return_url"].endswith("/billing/change-card/success")


def test_unbind_card_disables_and_cancels(client, db, gateway, login):
    headers, user_id = login()
    _paid_subscription(db, user_id)

    r = client.post("/api/v1/billing/unbind-card", headers=headers)
    assert r.status_code == 200
    assert gateway.disabled == ["pm_card_1"]

    sub = _reload(db, user_id)
    assert sub.payment_method_id is None
    assert sub.status == SubscriptionStatus.canceled


def test_unbind_card_already_gone_at_gateway_clears_locally(client, db, gateway, login):
    headers, user_id = login()
    _paid_subscription(db, user_id)
    gateway.disable_error = GatewayError(
        code=500202, message="not found", status_code=500, http_status=404
    )

    r = client.post("/api/v1/billing/unbind-card", headers=headers)
    assert r.status_code == 200
    assert _reload(db, user_id).payment_method_id is None


def test_unbind_card_gateway_failure_is_502(client, db, gateway, login):
    headers, user_id = login()
    _paid_subscription(db, user_id)
    gateway.disable_error = GatewayError(
        code=500202, message="oops", status_code=500, http_status=500, provider_code="internal"
    )

    r = client.post("/api/v1/billing/unbind-card", headers=headers)
    assert r.status_code == 502
    assert _reload(db, user_id).payment_method_id == "pm_card_1"


def test_unbind_without_card_only_cancels(client, db, gateway, login):
    headers, user_id = login()
    _paid_subscription(db, user_id, method=None)

    r = client.post("/api/v1/billing/unbind-card", headers=headers)
    assert r.status_code == 200
    assert gateway.disabled == []
    assert _reload(db, user_id).status == SubscriptionStatus.canceled
