"""
Promo code models
"""
from datetime import datetime

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import UTCDateTime, utc_now


class PromoCode(SQLModel, table=True):
    """
    Discount code

    ``code`` is stored upper-case; lookups normalize the input the same way.
    A code is redeemable while active, not expired and below ``max_uses``
    (no limit when unset).
    """
    __tablename__ = "promo_codes"
    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(sa_column=Column(String(64), unique=True, index=True, nullable=False))
    active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False))
    percent_off: int | None = Field(default=None, ge=0, le=100)
    expires_at: datetime | None = Field(default=None, sa_column=Column(UTCDateTime(), nullable=True))
    max_uses: int | None = Field(default=None)
    used_count: int = Field(default=0, nullable=False)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(), nullable=False),
    )


class PromoRedemption(SQLModel, table=True):
    """
    Per-user promo redemption ledger

    One row per (user, code). The unique constraint blocks a second
    redemption of the same code by the same account, including concurrent
    double submits of a free activation.
    """
    __tablename__ = "promo_redemptions"
    __table_args__ = (
        UniqueConstraint("user_id", "promo_code_id", name="uq_promo_redemptions_user_code"),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    promo_code_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("promo_codes.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    # Null for a free activation, the ledger row for a paid checkout.
    payment_id: int | None = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("payments.id", ondelete="SET NULL"), nullable=True),
    )
    redeemed_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(), nullable=False),
    )
