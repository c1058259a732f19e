"""
Checkout

Starts a subscription purchase. A promo code that brings the price to zero
activates the subscription immediately; otherwise a YooKassa redirect
payment is created and the subscription is activated later by the payment
webhook.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from plantscan import crud
from plantscan.api.errors import AppError
from plantscan.core.config import settings
from plantscan.enums import SubscriptionProvider, SubscriptionStatus
from plantscan.integrations.yookassa import YooKassaClient
from plantscan.models import PromoCode, User, utc_now
from plantscan.services.periods import add_months
from plantscan.services.promo_service import CODE_ALREADY_USED, CODE_EXHAUSTED, evaluate_promo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    free: bool = False
    url: str | None = None


def _activate_free(session: Session, user_id: int, promo: PromoCode, now: datetime) -> None:
    sub = crud.get_or_create_subscription(session=session, user_id=user_id)
    try:
        crud.add_redemption(session=session, user_id=user_id, promo=promo, count_use=False)
    except IntegrityError:
        session.rollback()
        raise AppError(code=400202, message=CODE_ALREADY_USED, status_code=400)
    # Another checkout may have taken the last use since the code was evaluated.
    if not crud.claim_promo_use(session=session, promo_id=promo.id):  # type: ignore[arg-type]
        session.rollback()
        raise AppError(code=400203, message=CODE_EXHAUSTED, status_code=400)

    # The free month always starts now, it never stacks onto a running period.
    sub.status = SubscriptionStatus.active
    sub.provider = SubscriptionProvider.promo
    sub.current_period_end = add_months(now, 1)
    sub.updated_at = now
    session.add(sub)
    session.commit()
    logger.info("Free subscription activated: user_id=%s promo=%s", user_id, promo.code)


def start_checkout(
    *,
    session: Session,
    user: User,
    promo_code: str | None,
    gateway: YooKassaClient,
    now: datetime | None = None,
) -> CheckoutResult:
    """
    Start a subscription checkout

    Args:
        session: database session
        user: the paying user
        promo_code: optional code as typed by the user
        gateway: YooKassa client
        now: defaults to the current UTC time

    Returns:
        CheckoutResult: ``free`` when a 100% code activated the plan,
            otherwise the ``url`` of the YooKassa payment page

    Raises:
        AppError: 400 for a rejected promo code, 403 when the shop may not
            take recurring payments, 500 for configuration or gateway failures
    """
    now = now or utc_now()
    user_id: int = user.id  # type: ignore[assignment]
    price = settings.SUBSCRIPTION_PRICE
    promo: PromoCode | None = None

    if promo_code and promo_code.strip():
        evaluation = evaluate_promo(session=session, raw_code=promo_code, user_id=user_id, now=now)
        if not evaluation.valid:
            raise AppError(code=400201, message=evaluation.error or "", status_code=400)
        promo = evaluation.promo
        price = evaluation.final_price

    if price <= 0 and promo is not None:
        _activate_free(session, user_id, promo, now)
        return CheckoutResult(free=True)

    metadata: dict[str, str] = {"userId": str(user_id)}
    if promo is not None:
        metadata["promoCode"] = promo.code

    payment = gateway.create_payment(
        amount=price,
        description=settings.SUBSCRIPTION_DESCRIPTION,
        metadata=metadata,
        return_url=f"{settings.SITE_URL.rstrip('/')}/billing/success",
        save_payment_method=True,
    )
    if not payment.confirmation_url:
        logger.error("YooKassa payment %s has no confirmation url", payment.id)
        raise AppError(code=500203, message="Ошибка создания платежа", status_code=500)

    logger.info(
        "Checkout started: user_id=%s payment_id=%s amount=%s promo=%s",
        user_id,
        payment.id,
        price,
        promo.code if promo else None,
    )
    return CheckoutResult(url=payment.confirmation_url)
