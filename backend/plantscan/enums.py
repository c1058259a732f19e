"""
Enumerations

All enums inherit from both str and Enum so they compare equal to, and
serialize as, their plain string values.
"""
from enum import Enum


class SubscriptionStatus(str, Enum):
    """
    Subscription status

    - active: paid period running, renews automatically
    - past_due: the last renewal charge failed, grace period running
    - canceled: no further renewals; access lasts until the period end
    """
    active = "active"
    past_due = "past_due"
    canceled = "canceled"


class SubscriptionProvider(str, Enum):
    """
    Origin of the current paid period

    - yookassa: paid through the payment gateway
    - promo: activated for free by a 100% promo code
    """
    yookassa = "yookassa"
    promo = "promo"


class PaymentStatus(str, Enum):
    """Payment status as reported by YooKassa."""
    pending = "pending"
    waiting_for_capture = "waiting_for_capture"
    succeeded = "succeeded"
    canceled = "canceled"


class PaymentKind(str, Enum):
    """
    Ledger entry kind

    - subscription: first payment made through a checkout redirect
    - renewal: off-session charge of a saved card by the renewal sweep
    """
    subscription = "subscription"
    renewal = "renewal"


class GatewayEvent(str, Enum):
    """Webhook events the billing module acts on."""
    payment_succeeded = "payment.succeeded"
    payment_canceled = "payment.canceled"
