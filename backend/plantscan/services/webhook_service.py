"""
YooKassa payment notifications

Notifications are not trusted as sent: every event is confirmed by
fetching the payment from YooKassa by id, and only the confirmed payment
(status, amount, metadata, saved card) is used.

Delivery is at-least-once and may be concurrent. The payment ledger's
unique ``provider_payment_id`` collapses duplicates: the ledger row, the
subscription update and the promo redemption are committed together, so a
second delivery either sees the row and stops, or loses the insert race
and is acknowledged as a duplicate.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from plantscan import crud
from plantscan.api.errors import AppError
from plantscan.enums import (
    GatewayEvent,
    PaymentKind,
    PaymentStatus,
    SubscriptionProvider,
    SubscriptionStatus,
)
from plantscan.integrations.yookassa import GatewayError, GatewayPayment, YooKassaClient
from plantscan.models import User, as_utc, utc_now
from plantscan.services.periods import add_months

logger = logging.getLogger(__name__)

_EXPECTED_STATUS = {
    GatewayEvent.payment_succeeded.value: PaymentStatus.succeeded.value,
    GatewayEvent.payment_canceled.value: PaymentStatus.canceled.value,
}


@dataclass(frozen=True)
class GatewayNotification:
    """A decoded notification: the event name and the payment it refers to"""
    event: str
    payment_id: str
    raw_object: dict[str, Any] = field(default_factory=dict)


def _invalid_body(message: str = "Invalid notification body") -> AppError:
    return AppError(code=400301, message=message, status_code=400)


def decode_notification(body: Any) -> GatewayNotification:
    """
    Decode a notification body

    Accepted shapes, the event name under ``event`` or ``type``:
    - ``{"event": ..., "object": {...}}`` (YooKassa's own format)
    - ``{"event": ..., "payment": {...}}``
    - ``{"event": ..., "data": {"object": {...}}}``

    Raises:
        AppError: 400 for anything else
    """
    if not isinstance(body, dict):
        raise _invalid_body()

    event = body.get("event") or body.get("type")
    if not isinstance(event, str) or not event:
        raise _invalid_body("Missing event type")

    obj = body.get("object")
    if obj is None:
        obj = body.get("payment")
    if obj is None and isinstance(body.get("data"), dict):
        obj = body["data"].get("object")
    if not isinstance(obj, dict):
        raise _invalid_body("Missing payment object")

    payment_id = obj.get("id")
    if not isinstance(payment_id, str) or not payment_id:
        raise _invalid_body("Missing payment id")

    return GatewayNotification(event=event, payment_id=payment_id, raw_object=obj)


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def _parse_user_id(metadata: dict[str, Any]) -> int | None:
    try:
        user_id = int(str(metadata.get("userId")))
    except ValueError:
        return None
    return user_id if user_id > 0 else None


def _confirm(gateway: YooKassaClient, notification: GatewayNotification) -> GatewayPayment:
    try:
        payment = gateway.get_payment(notification.payment_id)
    except GatewayError as e:
        # 500 makes YooKassa deliver the notification again later.
        logger.error(
            "[Webhook] could not confirm payment %s: %s", notification.payment_id, e.message
        )
        raise AppError(code=500301, message="Payment confirmation failed", status_code=500)

    if payment is None:
        logger.warning("[Webhook] unknown payment id %s", notification.payment_id)
        raise AppError(code=401301, message="Payment could not be verified", status_code=401)

    expected = _EXPECTED_STATUS[notification.event]
    if payment.status != expected:
        logger.warning(
            "[Webhook] payment %s status %s contradicts event %s",
            payment.id,
            payment.status,
            notification.event,
        )
        raise AppError(code=401302, message="Payment could not be verified", status_code=401)
    return payment


def _apply_card_change(session: Session, user_id: int, payment: GatewayPayment) -> None:
    sub = crud.get_or_create_subscription(session=session, user_id=user_id)
    if payment.payment_method_id and payment.payment_method_saved:
        sub.payment_method_id = payment.payment_method_id
    sub.status = SubscriptionStatus.active
    sub.updated_at = utc_now()
    session.add(sub)
    session.commit()
    logger.info("[Webhook] card changed: user_id=%s payment_id=%s", user_id, payment.id)


def _apply_payment(
    session: Session, user_id: int, payment: GatewayPayment, now: datetime
) -> bool:
    """
    Apply a succeeded payment to the subscription

    Returns:
        False when the payment had already been applied
    """
    renewal = _flag(payment.metadata.get("renewal"))
    sub = crud.get_or_create_subscription(session=session, user_id=user_id)

    try:
        ledger = crud.add_payment(
            session=session,
            user_id=user_id,
            provider_payment_id=payment.id,
            amount=payment.amount,
            currency=payment.currency,
            status=PaymentStatus.succeeded,
            kind=PaymentKind.renewal if renewal else PaymentKind.subscription,
        )
    except IntegrityError:
        session.rollback()
        logger.info("[Webhook] payment %s already applied", payment.id)
        return False

    previous_end = as_utc(sub.current_period_end)
    if renewal and previous_end is not None:
        sub.current_period_end = add_months(previous_end, 1)
    else:
        sub.current_period_end = add_months(now, 1)
    sub.status = SubscriptionStatus.active
    sub.provider = SubscriptionProvider.yookassa
    sub.external_id = payment.id
    if payment.payment_method_id and payment.payment_method_saved:
        sub.payment_method_id = payment.payment_method_id
    sub.updated_at = now
    session.add(sub)

    promo_code = payment.metadata.get("promoCode")
    if promo_code:
        promo = crud.get_promo_code(session=session, code=str(promo_code))
        if promo is None:
            logger.warning("[Webhook] promo %s from payment %s not found", promo_code, payment.id)
        elif crud.has_redeemed(session=session, user_id=user_id, promo_code_id=promo.id):  # type: ignore[arg-type]
            logger.info("[Webhook] promo %s already redeemed by user %s", promo.code, user_id)
        else:
            crud.add_redemption(session=session, user_id=user_id, promo=promo, payment_id=ledger.id)

    session.commit()
    logger.info(
        "[Webhook] subscription activated: user_id=%s payment_id=%s period_end=%s",
        user_id,
        payment.id,
        sub.current_period_end,
    )
    return True


def handle_notification(
    *,
    session: Session,
    gateway: YooKassaClient,
    notification: GatewayNotification,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Process one notification

    Returns:
        the acknowledgement body; anything returned means "do not retry"

    Raises:
        AppError: 401 when YooKassa does not confirm the payment, 500 when
            it cannot be reached or the database write fails
    """
    if notification.event not in _EXPECTED_STATUS:
        logger.info("[Webhook] ignoring event %s", notification.event)
        return {"ok": True}

    payment = _confirm(gateway, notification)

    if notification.event == GatewayEvent.payment_canceled:
        logger.info("[Webhook] payment %s canceled", payment.id)
        return {"ok": True}

    user_id = _parse_user_id(payment.metadata)
    if user_id is None or session.get(User, user_id) is None:
        logger.warning(
            "[Webhook] payment %s carries unknown user %r", payment.id, payment.metadata.get("userId")
        )
        return {"ok": True}

    try:
        if _flag(payment.metadata.get("changeCard")):
            _apply_card_change(session, user_id, payment)
            return {"ok": True}
        applied = _apply_payment(session, user_id, payment, now or utc_now())
    except SQLAlchemyError:
        session.rollback()
        logger.exception("[Webhook] failed to apply payment %s", payment.id)
        raise AppError(code=500302, message="Failed to apply payment", status_code=500)

    if not applied:
        return {"ok": True, "duplicate": True}
    return {"ok": True}
