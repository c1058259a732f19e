from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta, timezone

import httpx
import jwt
import pytest

from plantscan import crud
from plantscan.api.errors import AppError
from plantscan.core import db as core_db
from plantscan.core import security
from plantscan.core.config import settings
from plantscan.integrations import plant_ai, yookassa
from plantscan.integrations.plant_ai import PlantAIClient, extract_json_object, normalize_result
from plantscan.integrations.yookassa import (
    GatewayError,
    YooKassaClient,
    format_amount,
    to_minor_units,
)
from plantscan.services import report_pdf
from plantscan.services.periods import add_months


# --- auth and app plumbing -------------------------------------------------


def test_login_registers_then_signs_in(client, login):
    _, first_id = login("bob", "pw-123456")
    _, second_id = login("bob", "pw-123456")
    assert first_id == second_id

    r = client.post("/api/v1/auth/login", json={"username": "bob", "password": "wrong"})
    assert r.status_code == 401
    assert r.json()["code"] == 401001


def test_profile_requires_valid_token(client, login):
    headers, user_id = login()
    r = client.get("/api/v1/user/profile", headers=headers)
    assert r.status_code == 200
    assert r.json()["id"] == user_id

    assert client.get("/api/v1/user/profile").status_code == 401
    bad = {"Authorization": "Bearer not-a-jwt"}
    assert client.get("/api/v1/user/profile", headers=bad).status_code == 401

    expired = security.create_access_token(user_id, expires_delta=timedelta(minutes=-1))
    r = client.get("/api/v1/user/profile", headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401

    ghost = jwt.encode({"sub": "999999"}, settings.SECRET_KEY, algorithm=security.ALGORITHM)
    r = client.get("/api/v1/user/profile", headers={"Authorization": f"Bearer {ghost}"})
    assert r.status_code == 401


def test_login_rejects_blank_username(client, db):
    r = client.post("/api/v1/auth/login", json={"username": "   ", "password": "pw"})
    assert r.status_code == 400
    assert r.json()["code"] == 400101
    assert crud.get_user_by_username(session=db, username="") is None


def test_health_check(client):
    r = client.get("/api/v1/utils/health-check/")
    assert r.status_code == 200
    assert r.json() is True


def test_validation_errors_keep_details(client):
    r = client.post("/api/v1/auth/login", json={"username": "x"})
    assert r.status_code == 422
    body = r.json()
    assert body["code"] == 422000
    assert body["details"]


def test_malformed_promo_input_is_400(client, gateway, login):
    headers, _ = login()
    for path in ("/api/v1/billing/validate-promo", "/api/v1/billing/create-checkout"):
        r = client.post(path, json={"promoCode": 5}, headers=headers)
        assert r.status_code == 400
        body = r.json()
        assert body["code"] == 400200
        assert body["details"]
    assert gateway.created == []


def test_unknown_route_uses_error_shape(client):
    r = client.get("/api/v1/nope")
    assert r.status_code == 404
    assert r.json() == {"error": "Not Found", "code": 404000}


def test_bearer_matches():
    assert security.bearer_matches("Bearer s3cret", "s3cret")
    assert security.bearer_matches("bearer s3cret", "s3cret")
    assert not security.bearer_matches("Bearer other", "s3cret")
    assert not security.bearer_matches("Basic s3cret", "s3cret")
    assert not security.bearer_matches("Bearer", "s3cret")
    assert not security.bearer_matches(None, "s3cret")


# --- periods and seed data -------------------------------------------------


@pytest.mark.parametrize(
    "start,months,expected",
    [
        (datetime(2026, 1, 15, 8, tzinfo=timezone.utc), 1, datetime(2026, 2, 15, 8, tzinfo=timezone.utc)),
        (datetime(2026, 1, 31, tzinfo=timezone.utc), 1, datetime(2026, 2, 28, tzinfo=timezone.utc)),
        (datetime(2028, 1, 31, tzinfo=timezone.utc), 1, datetime(2028, 2, 29, tzinfo=timezone.utc)),
        (datetime(2026, 12, 10, tzinfo=timezone.utc), 1, datetime(2027, 1, 10, tzinfo=timezone.utc)),
        (datetime(2026, 3, 31, tzinfo=timezone.utc), 14, datetime(2027, 5, 31, tzinfo=timezone.utc)),
    ],
)
def test_add_months(start, months, expected):
    assert add_months(start, months) == expected


def test_parse_promo_seed():
    assert core_db.parse_promo_seed("") == []
    assert core_db.parse_promo_seed(" free100:100 , half:50:20,") == [
        ("FREE100", 100, None),
        ("HALF", 50, 20),
    ]
    with pytest.raises(ValueError):
        core_db.parse_promo_seed("BROKEN")
    with pytest.raises(ValueError):
        core_db.parse_promo_seed("TOO:150")


def test_init_db_seeds_promo_codes_once(db, monkeypatch):
    monkeypatch.setattr(settings, "INITIAL_PROMO_CODES", "WELCOME:100:5,SALE:30")
    core_db.init_db(db)
    core_db.init_db(db)

    welcome = crud.get_promo_code(session=db, code="welcome")
    assert welcome is not None
    assert welcome.percent_off == 100
    assert welcome.max_uses == 5
    sale = crud.get_promo_code(session=db, code="SALE")
    assert sale is not None
    assert sale.max_uses is None


# --- plant AI ----------------------------------------------------------------


def test_extract_json_object():
    assert extract_json_object('{"plantFound": true}') == {"plantFound": True}
    fenced = 'Вот ответ:\n```json\n{"plantFound": false, "reason": "размыто"}\n```'
    assert extract_json_object(fenced) == {"plantFound": False, "reason": "размыто"}
    assert extract_json_object("{broken {\"a\": 1}") == {"a": 1}
    assert extract_json_object("[1, 2]") is None
    assert extract_json_object("no json here") is None


def test_normalize_result():
    result = normalize_result({"plantFound": 1, "recommendations": ["a", None, 3]})
    assert result["plantFound"] is True
    assert result["recommendations"] == ["a", "3"]
    assert result["plantName"] is None
    assert normalize_result({"recommendations": "water"})["recommendations"] == []


def test_plant_ai_mock_mode():
    client = PlantAIClient()
    client._mock = True
    analysis = client.analyze(image_data_url="data:image/png;base64,AAAA")
    assert analysis.plant_found is True
    assert analysis.model == "mock"
    assert analysis.result["recommendations"]


def test_plant_ai_without_api_key_is_500():
    client = PlantAIClient()
    client._mock = False
    client._api_key = None
    with pytest.raises(AppError) as exc:
        client.analyze(image_data_url="data:image/png;base64,AAAA")
    assert exc.value.status_code == 500


def test_plant_ai_retries_with_fallback_model(monkeypatch):
    client = PlantAIClient()
    client._mock = False
    calls: list[tuple[str, float]] = []

    def fake_complete(*, model, image_data_url, temperature):
        calls.append((model, temperature))
        if model == settings.PLANT_AI_MODEL:
            return "Извините, не могу ответить"
        return json.dumps({"plantFound": True, "plantName": "Алоэ", "recommendations": []})

    monkeypatch.setattr(client, "_complete", fake_complete)
    analysis = client.analyze(image_data_url="data:image/png;base64,AAAA")
    assert analysis.plant_found is True
    assert analysis.result["plantName"] == "Алоэ"
    assert analysis.model == settings.PLANT_AI_FALLBACK_MODEL
    assert calls == [(settings.PLANT_AI_MODEL, 0.2), (settings.PLANT_AI_FALLBACK_MODEL, 0)]


def test_plant_ai_unparsable_after_retry_is_500(monkeypatch):
    client = PlantAIClient()
    client._mock = False
    monkeypatch.setattr(client, "_complete", lambda **_: "nothing useful")
    with pytest.raises(AppError) as exc:
        client.analyze(image_data_url="data:image/png;base64,AAAA")
    assert exc.value.code == 500301
    assert exc.value.message == plant_ai.UNPARSABLE_ANSWER_MESSAGE


# --- YooKassa client -------------------------------------------------------


def _mock_httpx(monkeypatch, handler):
    real_client = httpx.Client
    transport = httpx.MockTransport(handler)

    def factory(**kwargs):
        return real_client(transport=transport, **kwargs)

    monkeypatch.setattr(yookassa.httpx, "Client", factory)


def _client() -> YooKassaClient:
    return YooKassaClient(shop_id="shop", secret_key="key", base_url="https://yookassa.test/v3/")


def test_amount_conversions():
    assert to_minor_units("99.00") == 9900
    assert to_minor_units("0.015") == 2
    assert to_minor_units(None) == 0
    assert to_minor_units("n/a") == 0
    assert format_amount(9900) == "99.00"
    assert format_amount(4950) == "49.50"
    assert format_amount(5) == "0.05"


def test_create_payment_request(monkeypatch):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "id": "pay_42",
                "status": "pending",
                "amount": {"value": "49.50", "currency": "RUB"},
                "metadata": {"userId": "7"},
                "confirmation": {"type": "redirect", "confirmation_url": "https://pay.test/42"},
            },
        )

    _mock_httpx(monkeypatch, handler)
    payment = _client().create_payment(
        amount=4950,
        description="Подписка",
        metadata={"userId": "7"},
        return_url="https://site.test/billing/success",
        save_payment_method=True,
        idempotence_key="fixed-key",
    )

    assert payment.id == "pay_42"
    assert payment.amount == 4950
    assert payment.confirmation_url == "https://pay.test/42"

    request = seen[0]
    assert request.url == "https://yookassa.test/v3/payments"
    assert request.headers["Idempotence-Key"] == "fixed-key"
    expected_auth = base64.b64encode(b"shop:key").decode()
    assert request.headers["Authorization"] == f"Basic {expected_auth}"
    body = json.loads(request.content)
    assert body["amount"] == {"value": "49.50", "currency": "RUB"}
    assert body["capture"] is True
    assert body["save_payment_method"] is True
    assert body["confirmation"] == {
        "type": "redirect",
        "return_url": "https://site.test/billing/success",
    }
    assert body["payment_method_data"] == {"type": "bank_card"}


def test_off_session_charge_uses_saved_method(monkeypatch):
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        assert request.headers["Idempotence-Key"]
        return httpx.Response(
            200,
            json={
                "id": "pay_r",
                "status": "succeeded",
                "amount": {"value": "99.00", "currency": "RUB"},
                "payment_method": {"id": "pm_1", "saved": True},
            },
        )

    _mock_httpx(monkeypatch, handler)
    payment = _client().create_payment(
        amount=9900, description="Продление", metadata={}, payment_method_id="pm_1"
    )
    assert payment.payment_method_id == "pm_1"
    assert payment.payment_method_saved is True
    assert seen[0]["payment_method_id"] == "pm_1"
    assert "payment_method_data" not in seen[0]
    assert "confirmation" not in seen[0]


def test_gateway_403_means_recurring_not_allowed(monkeypatch):
    _mock_httpx(
        monkeypatch,
        lambda request: httpx.Response(403, json={"code": "forbidden", "description": "no"}),
    )
    with pytest.raises(GatewayError) as exc:
        _client().create_payment(amount=9900, description="x", metadata={})
    assert exc.value.status_code == 403
    assert exc.value.code == 403101
    assert exc.value.provider_code == "forbidden"
    assert exc.value.message == yookassa.RECURRING_REJECTED_MESSAGE


def test_gateway_other_errors_keep_http_status(monkeypatch):
    _mock_httpx(monkeypatch, lambda request: httpx.Response(500, text="oops"))
    with pytest.raises(GatewayError) as exc:
        _client().disable_payment_method("pm_1")
    assert exc.value.status_code == 500
    assert exc.value.http_status == 500
    assert exc.value.provider_code is None


def test_get_payment_unknown_id_is_none(monkeypatch):
    _mock_httpx(monkeypatch, lambda request: httpx.Response(404, json={"code": "not_found"}))
    assert _client().get_payment("missing") is None


def test_gateway_unreachable(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    _mock_httpx(monkeypatch, handler)
    with pytest.raises(GatewayError) as exc:
        _client().get_payment("pay_1")
    assert exc.value.code == 500201
    assert exc.value.http_status is None


def test_missing_credentials_is_500():
    client = YooKassaClient(shop_id="", secret_key="")
    assert client.configured is False
    with pytest.raises(AppError) as exc:
        client.get_payment("pay_1")
    assert exc.value.code == 500101


# --- PDF helpers -------------------------------------------------------------


def test_report_text_helpers():
    assert report_pdf.safe_text("  Фикус \n  Бенджамина ") == "Фикус Бенджамина"
    assert report_pdf.safe_text(None) == "—"
    assert report_pdf.normalize_recommendations(["Полив", "", None, " Свет "]) == ["Полив", "Свет"]
    assert report_pdf.normalize_recommendations("• Полив\n- Свет; Подкормка") == [
        "Полив",
        "Свет",
        "Подкормка",
    ]
    assert report_pdf.normalize_recommendations(42) == []


def test_decode_data_url():
    assert report_pdf.decode_data_url("data:image/png;base64,aGVsbG8=") == b"hello"
    assert report_pdf.decode_data_url("https://example.com/a.png") is None


def test_report_font_falls_back_without_url(monkeypatch):
    monkeypatch.setattr(report_pdf, "_font_name", None)
    monkeypatch.setattr(settings, "PDF_FONT_URL", "")
    assert report_pdf.get_report_font() == report_pdf.FALLBACK_FONT


def test_report_font_falls_back_when_download_fails(monkeypatch):
    def broken(url):
        raise httpx.ConnectError("offline")

    monkeypatch.setattr(report_pdf, "_font_name", None)
    monkeypatch.setattr(report_pdf, "_download_font", broken)
    assert report_pdf.get_report_font() == report_pdf.FALLBACK_FONT
