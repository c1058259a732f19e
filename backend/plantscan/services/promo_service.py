"""
Promo code evaluation

Decides whether a code can be applied to the subscription price for a
given user, and what the discounted price is. Read-only: redemptions are
recorded by checkout (free activation) and by the payment webhook.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlmodel import Session

from plantscan import crud
from plantscan.core.config import settings
from plantscan.enums import SubscriptionProvider, SubscriptionStatus
from plantscan.models import PromoCode, as_utc, utc_now

CODE_MISSING = "Промокод не указан"
CODE_NOT_FOUND = "Промокод не найден"
CODE_INACTIVE = "Промокод неактивен"
CODE_EXPIRED = "Промокод истек"
CODE_EXHAUSTED = "Промокод уже использован максимальное количество раз"
CODE_INVALID = "Неверный промокод"
CODE_ALREADY_USED = (
    "Вы уже использовали промокод для этого аккаунта. "
    "Каждый промокод можно использовать только один раз."
)


@dataclass(frozen=True)
class PromoEvaluation:
    """
    Outcome of a promo check

    On success ``promo`` is the matched code and the price fields are set;
    otherwise ``error`` holds the user-facing reason.
    """
    valid: bool
    error: str | None = None
    promo: PromoCode | None = None
    discount_percent: int = 0
    original_price: int = 0
    final_price: int = 0

    @classmethod
    def rejected(cls, error: str) -> "PromoEvaluation":
        return cls(valid=False, error=error)


def discounted_price(base_price: int, percent_off: int) -> int:
    """``base * (1 - pct/100)`` rounded half-up, never below zero"""
    value = Decimal(base_price) * (Decimal(100) - Decimal(percent_off)) / Decimal(100)
    return max(0, int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def _holds_promo_period(session: Session, user_id: int, now: datetime) -> bool:
    sub = crud.get_subscription(session=session, user_id=user_id)
    if sub is None or sub.provider != SubscriptionProvider.promo:
        return False
    period_end = as_utc(sub.current_period_end)
    period_valid = period_end is not None and period_end > now
    return period_valid or sub.status == SubscriptionStatus.active


def evaluate_promo(
    *,
    session: Session,
    raw_code: str | None,
    user_id: int | None = None,
    now: datetime | None = None,
) -> PromoEvaluation:
    """
    Validate a promo code and price the subscription with it

    A user whose current period came from a promo code (still running, or
    status active) cannot apply another one. A user who already redeemed
    this exact code cannot apply it again.

    Args:
        session: database session
        raw_code: code as typed by the user
        user_id: the signed-in user, None for anonymous checks
        now: evaluation time, defaults to the current UTC time

    Returns:
        PromoEvaluation: valid with prices, or rejected with a reason
    """
    now = now or utc_now()
    code = crud.normalize_code(raw_code)
    if not code:
        return PromoEvaluation.rejected(CODE_MISSING)

    if user_id is not None and _holds_promo_period(session, user_id, now):
        return PromoEvaluation.rejected(CODE_ALREADY_USED)

    promo = crud.get_promo_code(session=session, code=code)
    if promo is None:
        return PromoEvaluation.rejected(CODE_NOT_FOUND)
    if not promo.active:
        return PromoEvaluation.rejected(CODE_INACTIVE)
    expires_at = as_utc(promo.expires_at)
    if expires_at is not None and expires_at <= now:
        return PromoEvaluation.rejected(CODE_EXPIRED)
    if promo.max_uses is not None and promo.used_count >= promo.max_uses:
        return PromoEvaluation.rejected(CODE_EXHAUSTED)
    if promo.percent_off is None:
        return PromoEvaluation.rejected(CODE_INVALID)

    if user_id is not None and crud.has_redeemed(
        session=session, user_id=user_id, promo_code_id=promo.id  # type: ignore[arg-type]
    ):
        return PromoEvaluation.rejected(CODE_ALREADY_USED)

    base_price = settings.SUBSCRIPTION_PRICE
    return PromoEvaluation(
        valid=True,
        promo=promo,
        discount_percent=promo.percent_off,
        original_price=base_price,
        final_price=discounted_price(base_price, promo.percent_off),
    )
