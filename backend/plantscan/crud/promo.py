"""Promo code CRUD operations"""
from datetime import datetime

from sqlalchemy import or_, update
from sqlmodel import Session, select

from plantscan.models import PromoCode, PromoRedemption


def normalize_code(raw: str | None) -> str:
    """Codes are matched trimmed and upper-cased"""
    return (raw or "").strip().upper()


def get_promo_code(*, session: Session, code: str) -> PromoCode | None:
    statement = select(PromoCode).where(PromoCode.code == normalize_code(code))
    return session.exec(statement).first()


def create_promo_code(
    *,
    session: Session,
    code: str,
    percent_off: int | None,
    max_uses: int | None = None,
    expires_at: datetime | None = None,
    active: bool = True,
) -> PromoCode:
    promo = PromoCode(
        code=normalize_code(code),
        percent_off=percent_off,
        max_uses=max_uses,
        expires_at=expires_at,
        active=active,
    )
    session.add(promo)
    session.commit()
    session.refresh(promo)
    return promo


def has_redeemed(*, session: Session, user_id: int, promo_code_id: int) -> bool:
    statement = select(PromoRedemption.id).where(
        PromoRedemption.user_id == user_id,
        PromoRedemption.promo_code_id == promo_code_id,
    )
    return session.exec(statement).first() is not None


def add_redemption(
    *,
    session: Session,
    user_id: int,
    promo: PromoCode,
    payment_id: int | None = None,
    count_use: bool = True,
) -> PromoRedemption:
    """
    Record a redemption and bump the code's usage counter

    Flushes without committing so the caller can make it part of a larger
    transaction. Raises IntegrityError when the user already redeemed the
    code. Pass ``count_use=False`` when the use was already taken with
    ``claim_promo_use``.
    """
    redemption = PromoRedemption(
        user_id=user_id, promo_code_id=promo.id, payment_id=payment_id  # type: ignore[arg-type]
    )
    session.add(redemption)
    session.flush()
    if not count_use:
        return redemption
    # Increment in SQL so concurrent redemptions never lose an update.
    session.exec(  # type: ignore[call-overload]
        update(PromoCode)
        .where(PromoCode.id == promo.id)  # type: ignore[arg-type]
        .values(used_count=PromoCode.used_count + 1)
    )
    return redemption


def claim_promo_use(*, session: Session, promo_id: int) -> bool:
    """
    Take one use of a limited code, if any is left

    A single conditional UPDATE, so concurrent claims can never push
    ``used_count`` past ``max_uses``. Does not commit.

    Returns:
        False when the code is already exhausted
    """
    result = session.exec(  # type: ignore[call-overload]
        update(PromoCode)
        .where(
            PromoCode.id == promo_id,  # type: ignore[arg-type]
            or_(
                PromoCode.max_uses.is_(None),  # type: ignore[union-attr]
                PromoCode.used_count < PromoCode.max_uses,  # type: ignore[operator]
            ),
        )
        .values(used_count=PromoCode.used_count + 1)
    )
    return result.rowcount == 1
