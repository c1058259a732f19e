"""
Database models

All tables are SQLModel table models, split by concern:
- user.py: users
- scan.py: plant identifications
- subscription.py: paid plan state
- payment.py: payment ledger
- promo.py: promo codes and per-user redemptions
"""
from sqlmodel import SQLModel

from .base import as_utc, utc_now
from .payment import Payment
from .promo import PromoCode, PromoRedemption
from .scan import Scan
from .subscription import Subscription
from .user import User

__all__ = [
    "SQLModel",
    "as_utc",
    "utc_now",
    "User",
    "Scan",
    "Subscription",
    "Payment",
    "PromoCode",
    "PromoRedemption",
]
