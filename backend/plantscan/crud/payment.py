"""Payment ledger CRUD operations"""
from sqlmodel import Session, col, select

from plantscan.enums import PaymentKind, PaymentStatus
from plantscan.models import Payment


def add(
    *,
    session: Session,
    user_id: int,
    provider_payment_id: str,
    amount: int,
    currency: str,
    status: PaymentStatus,
    kind: PaymentKind,
) -> Payment:
    """
    Append a ledger row

    Flushes without committing. A second row for the same
    ``provider_payment_id`` raises IntegrityError: the payment was already
    applied.
    """
    payment = Payment(
        user_id=user_id,
        provider_payment_id=provider_payment_id,
        amount=amount,
        currency=currency,
        status=status,
        kind=kind,
    )
    session.add(payment)
    session.flush()
    return payment


def get_by_provider_id(*, session: Session, provider_payment_id: str) -> Payment | None:
    statement = select(Payment).where(Payment.provider_payment_id == provider_payment_id)
    return session.exec(statement).first()


def list_recent(*, session: Session, user_id: int, limit: int = 10) -> list[Payment]:
    statement = (
        select(Payment)
        .where(Payment.user_id == user_id)
        .order_by(col(Payment.created_at).desc(), col(Payment.id).desc())
        .limit(limit)
    )
    return list(session.exec(statement).all())
