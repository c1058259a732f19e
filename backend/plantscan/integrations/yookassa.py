"""
YooKassa payment gateway integration

Thin wrapper over the YooKassa v3 REST API covering what billing needs:
- create a payment (redirect checkout, card verification, or an
  off-session charge of a saved payment method)
- fetch a payment by id (used to confirm webhook notifications)
- disable a saved payment method

API docs: https://yookassa.ru/developers/api
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import lru_cache
from typing import Any

import httpx

from plantscan.api.errors import AppError
from plantscan.core.config import settings

logger = logging.getLogger(__name__)

_PAYMENTS_PATH = "/payments"
_PAYMENT_PATH = "/payments/{payment_id}"
_DISABLE_METHOD_PATH = "/payment_methods/{payment_method_id}/disable"

RECURRING_REJECTED_MESSAGE = (
    "Магазин не может принимать рекуррентные платежи. "
    "Обратитесь в поддержку ЮKassa, чтобы включить автоплатежи."
)


class GatewayError(AppError):
    """
    YooKassa call failed

    ``http_status`` is the gateway's own HTTP status, None when the gateway
    could not be reached at all.
    """

    def __init__(
        self,
        *,
        code: int,
        message: str,
        status_code: int = 500,
        http_status: int | None = None,
        provider_code: str | None = None,
    ) -> None:
        super().__init__(
            code=code, message=message, status_code=status_code, provider_code=provider_code
        )
        self.http_status = http_status


@dataclass(frozen=True)
class GatewayPayment:
    """
    A payment as seen by YooKassa

    ``amount`` is in minor units; ``metadata`` is whatever was attached
    when the payment was created.
    """
    id: str
    status: str
    amount: int
    currency: str
    metadata: dict[str, Any] = field(default_factory=dict)
    payment_method_id: str | None = None
    payment_method_saved: bool = False
    confirmation_url: str | None = None
    raw: dict[str, Any] | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> GatewayPayment:
        if not isinstance(data, dict) or not data.get("id"):
            raise GatewayError(code=502001, message="Invalid YooKassa response", status_code=502)

        amount = data.get("amount") or {}
        method = data.get("payment_method") or {}
        confirmation = data.get("confirmation") or {}
        metadata = data.get("metadata") or {}
        return cls(
            id=str(data["id"]),
            status=str(data.get("status") or ""),
            amount=to_minor_units(amount.get("value")),
            currency=str(amount.get("currency") or settings.SUBSCRIPTION_CURRENCY),
            metadata=metadata if isinstance(metadata, dict) else {},
            payment_method_id=str(method["id"]) if method.get("id") else None,
            payment_method_saved=bool(method.get("saved")),
            confirmation_url=confirmation.get("confirmation_url") or confirmation.get("return_url"),
            raw=data,
        )


def to_minor_units(value: Any) -> int:
    """Convert a YooKassa amount string ("99.00") to kopecks."""
    if value is None:
        return 0
    try:
        return int((Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return 0


def format_amount(minor_units: int) -> str:
    """Kopecks to the "99.00" string form the API expects."""
    return f"{minor_units // 100}.{minor_units % 100:02d}"


class YooKassaClient:
    """
    YooKassa REST client

    Requests are authenticated with HTTP Basic (shop id, secret key). Every
    POST carries an ``Idempotence-Key`` so a retried request never creates
    a second payment.
    """

    def __init__(
        self,
        shop_id: str | None = None,
        secret_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._shop_id = shop_id if shop_id is not None else settings.YOOKASSA_SHOP_ID
        self._secret_key = secret_key if secret_key is not None else settings.YOOKASSA_SECRET_KEY
        self._base_url = (base_url or settings.YOOKASSA_API_URL).rstrip("/")
        self._timeout = timeout or settings.YOOKASSA_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self._shop_id and self._secret_key)

    def _auth(self) -> tuple[str, str]:
        if not self._shop_id or not self._secret_key:
            raise AppError(code=500101, message="ЮKassa не настроена", status_code=500)
        return self._shop_id, self._secret_key

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        idempotence_key: str | None = None,
    ) -> httpx.Response:
        auth = self._auth()
        headers = {"Content-Type": "application/json"}
        if method == "POST":
            headers["Idempotence-Key"] = idempotence_key or str(uuid.uuid4())

        url = f"{self._base_url}{path}"
        try:
            with httpx.Client(timeout=self._timeout, auth=auth) as client:
                response = client.request(method, url, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.error("YooKassa %s %s unreachable: %s", method, path, e)
            raise GatewayError(
                code=500201,
                message="Платёжный сервис недоступен. Попробуйте позже.",
                status_code=500,
            )

        if response.is_success:
            return response

        provider_code, description = _error_details(response)
        logger.error(
            "YooKassa %s %s failed: status=%s code=%s description=%s",
            method,
            path,
            response.status_code,
            provider_code,
            description,
        )
        if response.status_code == 403:
            # The shop is not allowed to save cards / charge without the user present.
            raise GatewayError(
                code=403101,
                message=RECURRING_REJECTED_MESSAGE,
                status_code=403,
                http_status=403,
                provider_code=provider_code,
            )
        raise GatewayError(
            code=500202,
            message="Ошибка создания платежа",
            status_code=500,
            http_status=response.status_code,
            provider_code=provider_code,
        )

    def create_payment(
        self,
        *,
        amount: int,
        description: str,
        metadata: dict[str, Any],
        return_url: str | None = None,
        save_payment_method: bool = False,
        payment_method_id: str | None = None,
        idempotence_key: str | None = None,
    ) -> GatewayPayment:
        """
        Create a payment

        With ``return_url`` the payment uses a redirect confirmation and the
        result's ``confirmation_url`` is where the user must go. With
        ``payment_method_id`` it is an off-session charge of a saved card
        and usually comes back already ``succeeded``.

        Args:
            amount: minor units
            description: shown to the payer
            metadata: opaque values echoed back in webhooks
            return_url: where YooKassa sends the user after paying
            save_payment_method: ask YooKassa to keep the card for renewals
            payment_method_id: saved card to charge
            idempotence_key: fixed key for retry-safe charges

        Raises:
            GatewayError: the gateway rejected the request or was unreachable
        """
        payload: dict[str, Any] = {
            "amount": {"value": format_amount(amount), "currency": settings.SUBSCRIPTION_CURRENCY},
            "capture": True,
            "description": description,
            "metadata": metadata,
        }
        if payment_method_id:
            payload["payment_method_id"] = payment_method_id
        else:
            payload["payment_method_data"] = {"type": "bank_card"}
        if return_url:
            payload["confirmation"] = {"type": "redirect", "return_url": return_url}
        if save_payment_method:
            payload["save_payment_method"] = True

        response = self._request(
            "POST", _PAYMENTS_PATH, json=payload, idempotence_key=idempotence_key
        )
        payment = GatewayPayment.from_api(response.json())
        logger.info("YooKassa payment created: id=%s status=%s", payment.id, payment.status)
        return payment

    def get_payment(self, payment_id: str) -> GatewayPayment | None:
        """
        Fetch a payment by id

        Returns:
            the payment, or None when YooKassa does not know the id

        Raises:
            GatewayError: any other failure
        """
        try:
            response = self._request("GET", _PAYMENT_PATH.format(payment_id=payment_id))
        except GatewayError as e:
            if e.http_status in (400, 404):
                return None
            raise
        return GatewayPayment.from_api(response.json())

    def disable_payment_method(self, payment_method_id: str) -> None:
        """
        Disable a saved card so it can no longer be charged

        Raises:
            GatewayError: the gateway refused; ``http_status`` 400/404 means
                the method is already inactive or unknown
        """
        self._request(
            "POST", _DISABLE_METHOD_PATH.format(payment_method_id=payment_method_id)
        )
        logger.info("YooKassa payment method disabled: %s", payment_method_id)


def _error_details(response: httpx.Response) -> tuple[str | None, str | None]:
    try:
        body = response.json()
    except ValueError:
        return None, None
    if not isinstance(body, dict):
        return None, None
    code = body.get("code")
    return (str(code) if code is not None else None), body.get("description")


@lru_cache(maxsize=1)
def get_yookassa_client() -> YooKassaClient:
    """
    Process-wide YooKassa client

    Used as a FastAPI dependency so tests can swap in a fake through
    ``app.dependency_overrides``.
    """
    return YooKassaClient()
