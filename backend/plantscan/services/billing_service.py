"""
Billing account operations

Status overview, cancellation and saved card management for the signed-in
user.
"""
import logging
from typing import Any

from sqlmodel import Session

from plantscan import crud
from plantscan.api.errors import AppError
from plantscan.core.config import settings
from plantscan.enums import (
    PaymentKind,
    PaymentStatus,
    SubscriptionProvider,
    SubscriptionStatus,
)
from plantscan.integrations.yookassa import GatewayError, YooKassaClient
from plantscan.models import User, as_utc, utc_now
from plantscan.services.entitlement import subscription_grants_access

logger = logging.getLogger(__name__)

CARD_VERIFICATION_DESCRIPTION = "Привязка новой карты"


def billing_status(*, session: Session, user: User) -> dict[str, Any]:
    """Subscription state, saved card flag, access flag and recent payments"""
    sub = crud.get_or_create_subscription(session=session, user_id=user.id)  # type: ignore[arg-type]
    payments = crud.list_recent_payments(session=session, user_id=user.id)  # type: ignore[arg-type]
    period_end = as_utc(sub.current_period_end)
    return {
        "status": SubscriptionStatus(sub.status).value,
        "provider": SubscriptionProvider(sub.provider).value if sub.provider else None,
        "currentPeriodEnd": period_end.isoformat() if period_end else None,
        "hasSavedCard": bool(
            sub.provider == SubscriptionProvider.yookassa and sub.payment_method_id
        ),
        "hasAccess": subscription_grants_access(sub, utc_now()),
        "payments": [
            {
                "id": p.id,
                "amount": p.amount,
                "currency": p.currency,
                "status": PaymentStatus(p.status).value,
                "kind": PaymentKind(p.kind).value,
                "createdAt": as_utc(p.created_at).isoformat(),  # type: ignore[union-attr]
            }
            for p in payments
        ],
    }


def cancel_subscription(*, session: Session, user: User) -> None:
    """Stop renewals; access lasts until the current period ends"""
    crud.set_subscription_status(
        session=session, user_id=user.id, status=SubscriptionStatus.canceled  # type: ignore[arg-type]
    )
    logger.info("Subscription canceled: user_id=%s", user.id)


def start_card_change(*, session: Session, user: User, gateway: YooKassaClient) -> str:
    """
    Create a minimal card verification payment that saves the new card

    The payment webhook swaps the saved card once it succeeds.

    Returns:
        the YooKassa confirmation url
    """
    crud.get_or_create_subscription(session=session, user_id=user.id)  # type: ignore[arg-type]
    payment = gateway.create_payment(
        amount=settings.CARD_VERIFICATION_AMOUNT,
        description=CARD_VERIFICATION_DESCRIPTION,
        metadata={"userId": str(user.id), "changeCard": "true"},
        return_url=f"{settings.SITE_URL.rstrip('/')}/billing/change-card/success",
        save_payment_method=True,
    )
    if not payment.confirmation_url:
        raise AppError(code=500203, message="Ошибка создания платежа", status_code=500)
    logger.info("Card change started: user_id=%s payment_id=%s", user.id, payment.id)
    return payment.confirmation_url


def unbind_card(*, session: Session, user: User, gateway: YooKassaClient) -> None:
    """
    Forget the saved card and cancel the subscription

    The card is disabled at YooKassa first. A 400/404 there means it is
    already unusable, so the local copy is cleared anyway.

    Raises:
        AppError: 502 when YooKassa refuses for any other reason
    """
    sub = crud.get_or_create_subscription(session=session, user_id=user.id)  # type: ignore[arg-type]
    if sub.payment_method_id:
        try:
            gateway.disable_payment_method(sub.payment_method_id)
        except GatewayError as e:
            if e.http_status not in (400, 404):
                raise AppError(
                    code=502401,
                    message="Не удалось отвязать карту. Попробуйте позже.",
                    status_code=502,
                    provider_code=e.provider_code,
                )
            logger.info(
                "Payment method %s already inactive at YooKassa (%s)",
                sub.payment_method_id,
                e.http_status,
            )

    sub.payment_method_id = None
    sub.status = SubscriptionStatus.canceled
    sub.updated_at = utc_now()
    session.add(sub)
    session.commit()
    logger.info("Card unbound: user_id=%s", user.id)
