"""
Renewal and expiry sweeps

Both run periodically (cron endpoints or the scheduler worker):
- renewal charges the saved card of every subscription whose period has
  ended; a failed charge moves an active subscription to past_due
- expiry cancels past_due subscriptions once the grace period is over

Each subscription is handled and committed on its own, so one failure
never stops the rest of the batch.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from plantscan import crud
from plantscan.api.errors import AppError
from plantscan.core.config import settings
from plantscan.enums import PaymentKind, PaymentStatus, SubscriptionStatus
from plantscan.integrations.yookassa import GatewayPayment, YooKassaClient
from plantscan.models import Subscription, as_utc, utc_now
from plantscan.services.periods import add_months

logger = logging.getLogger(__name__)

RENEWAL_DESCRIPTION = "Продление подписки"


@dataclass
class RenewalReport:
    processed: int = 0
    renewed: int = 0
    failed: int = 0
    # Charges the webhook had already applied
    already_applied: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def _mark_failed(session: Session, subscription_id: int, now: datetime) -> None:
    sub = session.get(Subscription, subscription_id)
    if sub is None or sub.status != SubscriptionStatus.active:
        return
    sub.status = SubscriptionStatus.past_due
    sub.updated_at = now
    session.add(sub)
    session.commit()


def _apply_renewal(
    session: Session, subscription_id: int, payment: GatewayPayment, now: datetime
) -> bool:
    """
    Record a succeeded renewal charge and extend the period by one month

    Returns:
        False when the payment was already in the ledger
    """
    sub = session.get(Subscription, subscription_id)
    if sub is None:
        return False
    try:
        crud.add_payment(
            session=session,
            user_id=sub.user_id,
            provider_payment_id=payment.id,
            amount=payment.amount,
            currency=payment.currency,
            status=PaymentStatus.succeeded,
            kind=PaymentKind.renewal,
        )
    except IntegrityError:
        session.rollback()
        return False

    previous_end = as_utc(sub.current_period_end) or now
    sub.current_period_end = add_months(previous_end, 1)
    sub.status = SubscriptionStatus.active
    sub.external_id = payment.id
    sub.updated_at = now
    session.add(sub)
    session.commit()
    return True


def renew_due_subscriptions(
    *,
    session: Session,
    gateway: YooKassaClient,
    now: datetime | None = None,
) -> RenewalReport:
    """
    Charge every subscription whose paid period has ended

    Selects active and past_due subscriptions with a saved card and
    ``current_period_end <= now``. A charge that does not come back
    ``succeeded`` counts as a failure.

    Args:
        session: database session
        gateway: YooKassa client
        now: sweep time, defaults to the current UTC time

    Returns:
        RenewalReport: per-outcome counts
    """
    now = now or utc_now()
    report = RenewalReport()
    due = [
        (sub.id, sub.user_id, sub.payment_method_id, as_utc(sub.current_period_end))
        for sub in crud.list_due_for_renewal(session=session, now=now)
    ]
    logger.info("Renewal sweep: %s subscriptions due", len(due))

    for subscription_id, user_id, payment_method_id, period_end in due:
        report.processed += 1
        # One key per period. YooKassa replays the stored payment for a repeated key.
        idempotence_key = f"renewal-{subscription_id}-{period_end:%Y%m%d%H%M}"
        try:
            try:
                payment = gateway.create_payment(
                    amount=settings.SUBSCRIPTION_PRICE,
                    description=RENEWAL_DESCRIPTION,
                    metadata={"userId": str(user_id), "renewal": "true"},
                    payment_method_id=payment_method_id,
                    idempotence_key=idempotence_key,
                )
            except AppError as e:
                logger.warning(
                    "Renewal charge failed: user_id=%s code=%s provider_code=%s",
                    user_id,
                    e.code,
                    e.provider_code,
                )
                payment = None

            if payment is None or payment.status != PaymentStatus.succeeded:
                if payment is not None:
                    logger.warning(
                        "Renewal charge not succeeded: user_id=%s payment_id=%s status=%s",
                        user_id,
                        payment.id,
                        payment.status,
                    )
                _mark_failed(session, subscription_id, now)  # type: ignore[arg-type]
                report.failed += 1
                continue

            if _apply_renewal(session, subscription_id, payment, now):  # type: ignore[arg-type]
                report.renewed += 1
                logger.info("Subscription renewed: user_id=%s payment_id=%s", user_id, payment.id)
            else:
                report.already_applied += 1
                logger.info("Renewal %s already applied by webhook", payment.id)
        except Exception:
            session.rollback()
            report.failed += 1
            logger.exception("Renewal failed for subscription %s", subscription_id)

    logger.info("Renewal sweep done: %s", report.as_dict())
    return report


def expire_past_due_subscriptions(*, session: Session, now: datetime | None = None) -> int:
    """
    Cancel past_due subscriptions whose grace period is over

    Returns:
        number of subscriptions canceled
    """
    now = now or utc_now()
    cutoff = now - timedelta(days=settings.GRACE_PERIOD_DAYS)
    expired = 0
    for sub in crud.list_past_due_ended_before(session=session, cutoff=cutoff):
        try:
            sub.status = SubscriptionStatus.canceled
            sub.updated_at = now
            session.add(sub)
            session.commit()
            expired += 1
        except Exception:
            session.rollback()
            logger.exception("Failed to expire subscription %s", sub.id)
    logger.info("Expiry sweep: %s subscriptions canceled", expired)
    return expired
