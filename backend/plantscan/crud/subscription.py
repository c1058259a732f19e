"""Subscription CRUD operations"""
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from plantscan.enums import SubscriptionStatus
from plantscan.models import Subscription, utc_now


def get_by_user_id(
    *, session: Session, user_id: int, for_update: bool = False
) -> Subscription | None:
    stmt = select(Subscription).where(Subscription.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    return session.exec(stmt).first()


def get_or_create(*, session: Session, user_id: int) -> Subscription:
    """
    Fetch the user's subscription row, creating a canceled one if missing

    The row is committed on creation. A concurrent creation loses on the
    unique ``user_id`` constraint and re-reads the winner's row.
    """
    sub = get_by_user_id(session=session, user_id=user_id)
    if sub:
        return sub

    sub = Subscription(user_id=user_id, status=SubscriptionStatus.canceled)
    session.add(sub)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = get_by_user_id(session=session, user_id=user_id)
        if existing is None:
            raise
        return existing
    session.refresh(sub)
    return sub


def set_status(*, session: Session, user_id: int, status: SubscriptionStatus) -> Subscription:
    """Upsert the subscription status, leaving the period untouched"""
    sub = get_or_create(session=session, user_id=user_id)
    sub.status = status
    sub.updated_at = utc_now()
    session.add(sub)
    session.commit()
    session.refresh(sub)
    return sub


def list_due_for_renewal(*, session: Session, now: datetime) -> list[Subscription]:
    """Active or past_due subscriptions with a saved card whose period has ended"""
    statement = (
        select(Subscription)
        .where(
            col(Subscription.status).in_(
                [SubscriptionStatus.active.value, SubscriptionStatus.past_due.value]
            ),
            col(Subscription.payment_method_id).is_not(None),
            col(Subscription.current_period_end).is_not(None),
            col(Subscription.current_period_end) <= now,
        )
        .order_by(col(Subscription.current_period_end))
    )
    return list(session.exec(statement).all())


def list_past_due_ended_before(*, session: Session, cutoff: datetime) -> list[Subscription]:
    statement = select(Subscription).where(
        Subscription.status == SubscriptionStatus.past_due.value,
        col(Subscription.current_period_end).is_not(None),
        col(Subscription.current_period_end) <= cutoff,
    )
    return list(session.exec(statement).all())
