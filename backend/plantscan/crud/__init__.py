"""CRUD operations"""
from .payment import add as add_payment
from .payment import get_by_provider_id as get_payment_by_provider_id
from .payment import list_recent as list_recent_payments
from .promo import (
    add_redemption,
    claim_promo_use,
    create_promo_code,
    get_promo_code,
    has_redeemed,
    normalize_code,
)
from .scan import count_plant_found as count_plant_found_scans
from .scan import create as create_scan
from .scan import get_owned as get_owned_scan
from .scan import list_plant_found as list_plant_found_scans
from .scan import toggle_favorite as toggle_scan_favorite
from .subscription import get_by_user_id as get_subscription
from .subscription import get_or_create as get_or_create_subscription
from .subscription import list_due_for_renewal, list_past_due_ended_before
from .subscription import set_status as set_subscription_status
from .user import authenticate_or_register
from .user import create as create_user
from .user import get_by_username as get_user_by_username

__all__ = [
    "add_payment",
    "get_payment_by_provider_id",
    "list_recent_payments",
    "add_redemption",
    "claim_promo_use",
    "create_promo_code",
    "get_promo_code",
    "has_redeemed",
    "normalize_code",
    "count_plant_found_scans",
    "create_scan",
    "get_owned_scan",
    "list_plant_found_scans",
    "toggle_scan_favorite",
    "get_subscription",
    "get_or_create_subscription",
    "list_due_for_renewal",
    "list_past_due_ended_before",
    "set_subscription_status",
    "authenticate_or_register",
    "create_user",
    "get_user_by_username",
]
