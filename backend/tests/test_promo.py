from __future__ import annotations

from datetime import timedelta

from plantscan import crud
from plantscan.enums import SubscriptionProvider, SubscriptionStatus
from plantscan.models import Subscription, User, utc_now
from plantscan.services.promo_service import (
    CODE_ALREADY_USED,
    CODE_EXHAUSTED,
    CODE_EXPIRED,
    CODE_INACTIVE,
    CODE_INVALID,
    CODE_MISSING,
    CODE_NOT_FOUND,
    discounted_price,
    evaluate_promo,
)


def _user(db, username: str = "promo_user") -> User:
    return crud.create_user(session=db, username=username, password="pw")


def test_discounted_price_rounds_half_up_and_floors_at_zero():
    assert discounted_price(9900, 50) == 4950
    assert discounted_price(9900, 100) == 0
    assert discounted_price(9900, 0) == 9900
    # 9900 * 0.85 = 8415; 9999 * 0.5 = 4999.5 -> 5000
    assert discounted_price(9900, 15) == 8415
    assert discounted_price(9999, 50) == 5000


def test_evaluate_promo_normalizes_code(db):
    crud.create_promo_code(session=db, code="WELCOME50", percent_off=50)

    result = evaluate_promo(session=db, raw_code="  welcome50 ")
    assert result.valid is True
    assert result.discount_percent == 50
    assert result.original_price == 9900
    assert result.final_price == 4950


def test_evaluate_promo_rejections(db):
    now = utc_now()
    crud.create_promo_code(session=db, code="OFF", percent_off=20, active=False)
    crud.create_promo_code(session=db, code="OLD", percent_off=20, expires_at=now - timedelta(days=1))
    crud.create_promo_code(session=db, code="EDGE", percent_off=20, expires_at=now)
    crud.create_promo_code(session=db, code="NOPCT", percent_off=None)
    promo = crud.create_promo_code(session=db, code="ONCE", percent_off=20, max_uses=1)
    promo.used_count = 1
    db.add(promo)
    db.commit()

    assert evaluate_promo(session=db, raw_code="").error == CODE_MISSING
    assert evaluate_promo(session=db, raw_code="   ").error == CODE_MISSING
    assert evaluate_promo(session=db, raw_code="NOPE").error == CODE_NOT_FOUND
    assert evaluate_promo(session=db, raw_code="off").error == CODE_INACTIVE
    assert evaluate_promo(session=db, raw_code="OLD", now=now).error == CODE_EXPIRED
    assert evaluate_promo(session=db, raw_code="EDGE", now=now).error == CODE_EXPIRED
    assert evaluate_promo(session=db, raw_code="ONCE").error == CODE_EXHAUSTED
    assert evaluate_promo(session=db, raw_code="NOPCT").error == CODE_INVALID


def test_evaluate_promo_blocks_user_with_promo_period(db):
    user = _user(db)
    crud.create_promo_code(session=db, code="WELCOME50", percent_off=50)
    db.add(
        Subscription(
            user_id=user.id,
            status=SubscriptionStatus.canceled,
            provider=SubscriptionProvider.promo,
            current_period_end=utc_now() + timedelta(days=10),
        )
    )
    db.commit()

    result = evaluate_promo(session=db, raw_code="WELCOME50", user_id=user.id)
    assert result.valid is False
    assert "уже использовали" in (result.error or "")
    # Takes precedence over the code itself being unknown.
    assert evaluate_promo(session=db, raw_code="UNKNOWN", user_id=user.id).error == CODE_ALREADY_USED
    # Anonymous checks are not affected.
    assert evaluate_promo(session=db, raw_code="WELCOME50").valid is True


def test_evaluate_promo_lapsed_promo_period_uses_redemption_ledger(db):
    user = _user(db)
    promo = crud.create_promo_code(session=db, code="FREE100", percent_off=100)
    other = crud.create_promo_code(session=db, code="SPRING20", percent_off=20)
    db.add(
        Subscription(
            user_id=user.id,
            status=SubscriptionStatus.canceled,
            provider=SubscriptionProvider.promo,
            current_period_end=utc_now() - timedelta(days=1),
        )
    )
    crud.add_redemption(session=db, user_id=user.id, promo=promo)
    db.commit()

    assert evaluate_promo(session=db, raw_code="FREE100", user_id=user.id).error == CODE_ALREADY_USED
    assert evaluate_promo(session=db, raw_code=other.code, user_id=user.id).valid is True


def test_evaluate_promo_is_read_only(db):
    user = _user(db)
    promo = crud.create_promo_code(session=db, code="WELCOME50", percent_off=50)

    evaluate_promo(session=db, raw_code="WELCOME50", user_id=user.id)

    db.refresh(promo)
    assert promo.used_count == 0
    assert crud.has_redeemed(session=db, user_id=user.id, promo_code_id=promo.id) is False


def test_validate_promo_endpoint(client, db, login):
    crud.create_promo_code(session=db, code="WELCOME50", percent_off=50)

    r = client.post("/api/v1/billing/validate-promo", json={"promoCode": "welcome50"})
    assert r.status_code == 200
    assert r.json() == {
        "valid": True,
        "discountPercent": 50,
        "originalPrice": 9900,
        "finalPrice": 4950,
    }

    r = client.post("/api/v1/billing/validate-promo", json={"promoCode": "nope"})
    assert r.status_code == 200
    assert r.json() == {"valid": False, "error": CODE_NOT_FOUND}

    r = client.post("/api/v1/billing/validate-promo", json={})
    assert r.status_code == 200
    assert r.json()["error"] == CODE_MISSING


def test_validate_promo_endpoint_with_signed_in_user(client, db, login):
    headers, user_id = login()
    crud.create_promo_code(session=db, code="WELCOME50", percent_off=50)
    db.add(
        Subscription(
            user_id=user_id,
            status=SubscriptionStatus.active,
            provider=SubscriptionProvider.promo,
            current_period_end=utc_now() + timedelta(days=5),
        )
    )
    db.commit()

    r = client.post(
        "/api/v1/billing/validate-promo", json={"promoCode": "WELCOME50"}, headers=headers
    )
    assert r.status_code == 200
    body = r.json()
    assert body["valid"] is False
    assert "уже использовали" in body["error"]
