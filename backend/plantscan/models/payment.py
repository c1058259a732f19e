"""
Payment ledger model
"""
from datetime import datetime

from sqlalchemy import Column, ForeignKey, Integer, String
from sqlmodel import Field, SQLModel

from plantscan.enums import PaymentKind, PaymentStatus

from .base import UTCDateTime, utc_now


class Payment(SQLModel, table=True):
    """
    Append-only payment ledger

    ``provider_payment_id`` is unique: it is the idempotency key that
    collapses repeated webhook deliveries (and a webhook racing the renewal
    sweep) into a single row.

    Fields:
    - provider_payment_id: YooKassa payment id
    - amount: minor currency units
    - kind: subscription (checkout) or renewal (saved card charge)
    """
    __tablename__ = "payments"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    provider: str = Field(default="yookassa", max_length=16)
    provider_payment_id: str = Field(
        sa_column=Column(String(128), unique=True, index=True, nullable=False)
    )
    amount: int = Field(nullable=False)
    currency: str = Field(default="RUB", max_length=8)
    status: PaymentStatus = Field(
        default=PaymentStatus.succeeded, sa_column=Column(String(32), nullable=False)
    )
    kind: PaymentKind = Field(
        default=PaymentKind.subscription, sa_column=Column(String(16), nullable=False)
    )

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(), nullable=False),
    )
