"""
Subscription model
"""
from datetime import datetime

from sqlalchemy import Column, ForeignKey, Integer, String
from sqlmodel import Field, SQLModel

from plantscan.enums import SubscriptionProvider, SubscriptionStatus

from .base import UTCDateTime, utc_now


class Subscription(SQLModel, table=True):
    """
    Paid plan state, one row per user

    The row is created lazily (first billing status query, checkout or
    payment) and is never deleted. ``status`` together with
    ``current_period_end`` decides access: an unexpired period grants
    access while the status is active or canceled; past_due never does.

    Fields:
    - user_id: owner, unique
    - status: active / past_due / canceled
    - current_period_end: end of the paid period
    - provider: origin of the current period (yookassa / promo)
    - payment_method_id: saved card token used for renewals
    - external_id: last gateway payment id applied to this row
    """
    __tablename__ = "subscriptions"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("users.id", ondelete="CASCADE"),
            unique=True,
            index=True,
            nullable=False,
        )
    )

    status: SubscriptionStatus = Field(
        default=SubscriptionStatus.canceled, sa_column=Column(String(16), nullable=False)
    )
    current_period_end: datetime | None = Field(
        default=None, sa_column=Column(UTCDateTime(), nullable=True)
    )
    provider: SubscriptionProvider | None = Field(
        default=None, sa_column=Column(String(16), nullable=True)
    )
    payment_method_id: str | None = Field(default=None, max_length=128)
    external_id: str | None = Field(default=None, max_length=128)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(), nullable=False),
    )
