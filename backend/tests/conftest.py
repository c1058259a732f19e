from __future__ import annotations

import os

# Settings are read at import time: point them at test values first.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("YOOKASSA_SHOP_ID", "test-shop")
os.environ.setdefault("YOOKASSA_SECRET_KEY", "test-yookassa-key")
os.environ.setdefault("PLANT_AI_MOCK", "true")

from collections.abc import Generator  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine, delete  # noqa: E402

from plantscan.api.deps import get_db  # noqa: E402
from plantscan.api.errors import AppError  # noqa: E402
from plantscan.integrations.plant_ai import PlantAnalysis, get_plant_ai_client  # noqa: E402
from plantscan.integrations.yookassa import GatewayPayment, get_yookassa_client  # noqa: E402
from plantscan.main import app  # noqa: E402
from plantscan.models import (  # noqa: E402
    Payment,
    PromoCode,
    PromoRedemption,
    Scan,
    Subscription,
    User,
)


class FakeGateway:
    """In-memory stand-in for YooKassaClient"""

    def __init__(self) -> None:
        self.payments: dict[str, GatewayPayment] = {}
        self.created: list[dict[str, Any]] = []
        self.by_key: dict[str, str] = {}
        self.disabled: list[str] = []
        self.next_status = "pending"
        self.create_error: AppError | None = None
        self.get_error: AppError | None = None
        self.disable_error: AppError | None = None

    def add(self, payment: GatewayPayment) -> GatewayPayment:
        self.payments[payment.id] = payment
        return payment

    def create_payment(self, **kwargs: Any) -> GatewayPayment:
        self.created.append(kwargs)
        if self.create_error is not None:
            raise self.create_error
        # YooKassa answers a repeated Idempotence-Key with the original payment.
        key = kwargs.get("idempotence_key")
        if key and key in self.by_key:
            return self.payments[self.by_key[key]]
        payment_id = f"pay_{len(self.created)}"
        if key:
            self.by_key[key] = payment_id
        method_id = kwargs.get("payment_method_id")
        return self.add(
            GatewayPayment(
                id=payment_id,
                status=self.next_status,
                amount=kwargs["amount"],
                currency="RUB",
                metadata=dict(kwargs["metadata"]),
                payment_method_id=method_id,
                payment_method_saved=method_id is not None,
                confirmation_url=(
                    f"https://yoomoney.test/checkout/{payment_id}"
                    if kwargs.get("return_url")
                    else None
                ),
            )
        )

    def get_payment(self, payment_id: str) -> GatewayPayment | None:
        if self.get_error is not None:
            raise self.get_error
        return self.payments.get(payment_id)

    def disable_payment_method(self, payment_method_id: str) -> None:
        self.disabled.append(payment_method_id)
        if self.disable_error is not None:
            raise self.disable_error


class FakePlantAI:
    def __init__(self) -> None:
        self.plant_found = True
        self.calls = 0

    def analyze(self, *, image_data_url: str) -> PlantAnalysis:
        self.calls += 1
        result = {
            "plantFound": self.plant_found,
            "plantName": "Фикус" if self.plant_found else None,
            "healthCondition": "Здоров" if self.plant_found else None,
            "recommendations": ["Поливать раз в неделю"] if self.plant_found else [],
            "reason": None if self.plant_found else "Растение не найдено",
        }
        return PlantAnalysis(plant_found=self.plant_found, result=result, model="fake")


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
        session.rollback()
        # Clean tables after each test (children first).
        session.exec(delete(PromoRedemption))
        session.exec(delete(Payment))
        session.exec(delete(Scan))
        session.exec(delete(Subscription))
        session.exec(delete(PromoCode))
        session.exec(delete(User))
        session.commit()


@pytest.fixture(scope="function")
def client(engine, db) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def gateway() -> Generator[FakeGateway, None, None]:
    fake = FakeGateway()
    app.dependency_overrides[get_yookassa_client] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_yookassa_client, None)


@pytest.fixture(scope="function")
def plant_ai() -> Generator[FakePlantAI, None, None]:
    fake = FakePlantAI()
    app.dependency_overrides[get_plant_ai_client] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_plant_ai_client, None)


@pytest.fixture(scope="function")
def login(client):
    """Sign in (registering on first use); returns auth headers and the user id"""

    def _login(username: str = "alice", password: str = "secret-pass") -> tuple[dict[str, str], int]:
        r = client.post("/api/v1/auth/login", json={"username": username, "password": password})
        assert r.status_code == 200
        body = r.json()
        return {"Authorization": f"Bearer {body['access_token']}"}, body["user"]["id"]

    return _login
