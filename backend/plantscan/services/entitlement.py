"""
Entitlement checks

A user has paid access while their subscription period is running and the
subscription is active or canceled. Canceling stops renewals, not access;
past_due (failed renewal, grace period running) has no access.
"""
from datetime import datetime

from sqlmodel import Session

from plantscan import crud
from plantscan.api.errors import free_scan_limit_reached, subscription_required
from plantscan.core.config import settings
from plantscan.enums import SubscriptionStatus
from plantscan.models import Subscription, as_utc, utc_now

_ACCESS_STATUSES = (SubscriptionStatus.active, SubscriptionStatus.canceled)


def subscription_grants_access(sub: Subscription | None, now: datetime) -> bool:
    if sub is None:
        return False
    period_end = as_utc(sub.current_period_end)
    if period_end is None or period_end <= now:
        return False
    return sub.status in _ACCESS_STATUSES


def has_access(*, session: Session, user_id: int, now: datetime | None = None) -> bool:
    sub = crud.get_subscription(session=session, user_id=user_id)
    return subscription_grants_access(sub, now or utc_now())


def free_scans_used(*, session: Session, user_id: int) -> int:
    return crud.count_plant_found_scans(session=session, user_id=user_id)


def require_access(*, session: Session, user_id: int) -> None:
    """Raise 402 unless the user has paid access"""
    if not has_access(session=session, user_id=user_id):
        raise subscription_required()


def require_free_scan_quota(*, session: Session, user_id: int) -> None:
    """
    Raise 402 when a free user has used up the plant-found scans

    Subscribers are never limited.
    """
    if has_access(session=session, user_id=user_id):
        return
    limit = settings.FREE_SCAN_LIMIT
    if free_scans_used(session=session, user_id=user_id) >= limit:
        raise free_scan_limit_reached(limit)
