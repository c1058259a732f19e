"""
Billing routes

Subscription purchase and management on top of YooKassa:
- promo validation and checkout
- the YooKassa payment webhook
- status, cancellation, card change and unbinding
- renew/expire sweeps, triggered by an external cron with a bearer secret
"""
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Header, Request
from fastapi.concurrency import run_in_threadpool

from plantscan.api.deps import CurrentUser, GatewayDep, OptionalUser, SessionDep
from plantscan.api.errors import AppError, unauthorized
from plantscan.api.schemas import (
    BillingStatusResponse,
    CheckoutResponse,
    CheckoutUrlResponse,
    ExpireResponse,
    Ok,
    PromoCodeRequest,
    PromoValidationResponse,
    RenewResponse,
)
from plantscan.core.config import settings
from plantscan.core.security import bearer_matches
from plantscan.services import billing_service
from plantscan.services.checkout_service import start_checkout
from plantscan.services.promo_service import evaluate_promo
from plantscan.services.renewal_service import (
    expire_past_due_subscriptions,
    renew_due_subscriptions,
)
from plantscan.services.webhook_service import decode_notification, handle_notification

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])

AuthorizationHeader = Annotated[str | None, Header()]


def _require_cron_secret(authorization: str | None) -> None:
    if not settings.CRON_SECRET:
        raise AppError(code=500401, message="CRON_SECRET not configured", status_code=500)
    if not bearer_matches(authorization, settings.CRON_SECRET):
        raise unauthorized()


@router.post("/validate-promo", response_model=PromoValidationResponse, response_model_exclude_none=True)
def validate_promo(
    session: SessionDep,
    current_user: OptionalUser,
    body: PromoCodeRequest | None = None,
) -> PromoValidationResponse:
    """
    Check a promo code and preview the discounted price

    Request: POST /api/v1/billing/validate-promo

    Answers 200 with ``{valid: false, error}`` for a rejected code; a
    malformed body is a 400.
    """
    evaluation = evaluate_promo(
        session=session,
        raw_code=body.promoCode if body else None,
        user_id=current_user.id if current_user else None,
    )
    if not evaluation.valid:
        return PromoValidationResponse(valid=False, error=evaluation.error)
    return PromoValidationResponse(
        valid=True,
        discountPercent=evaluation.discount_percent,
        originalPrice=evaluation.original_price,
        finalPrice=evaluation.final_price,
    )


@router.post("/create-checkout", response_model=CheckoutResponse, response_model_exclude_none=True)
def create_checkout(
    session: SessionDep,
    current_user: CurrentUser,
    gateway: GatewayDep,
    body: PromoCodeRequest | None = None,
) -> CheckoutResponse:
    """
    Start a subscription purchase

    Request: POST /api/v1/billing/create-checkout

    Returns ``{free: true}`` when a 100% promo code activated the plan, or
    ``{url}`` of the YooKassa payment page.
    """
    result = start_checkout(
        session=session,
        user=current_user,
        promo_code=body.promoCode if body else None,
        gateway=gateway,
    )
    if result.free:
        return CheckoutResponse(free=True)
    return CheckoutResponse(url=result.url)


@router.post("/webhook")
async def webhook(request: Request, session: SessionDep, gateway: GatewayDep) -> dict[str, Any]:
    """
    YooKassa payment notification

    Request: POST /api/v1/billing/webhook

    Any 2xx tells YooKassa to stop retrying; 401 and 500 make it retry.
    """
    try:
        body = await request.json()
    except ValueError:
        raise AppError(code=400302, message="Invalid JSON body", status_code=400)

    notification = decode_notification(body)
    logger.info("[Webhook] %s for payment %s", notification.event, notification.payment_id)
    return await run_in_threadpool(
        handle_notification, session=session, gateway=gateway, notification=notification
    )


@router.get("/webhook", response_model=Ok)
def webhook_probe() -> Ok:
    """Reachability check used when configuring the webhook URL"""
    return Ok()


@router.get("/status", response_model=BillingStatusResponse)
def status(session: SessionDep, current_user: CurrentUser) -> dict[str, Any]:
    """
    Subscription status with the last payments

    Request: GET /api/v1/billing/status
    """
    return billing_service.billing_status(session=session, user=current_user)


@router.post("/cancel", response_model=Ok)
def cancel(session: SessionDep, current_user: CurrentUser) -> Ok:
    """Stop renewals; access stays until the current period ends"""
    billing_service.cancel_subscription(session=session, user=current_user)
    return Ok()


@router.post("/change-card", response_model=CheckoutUrlResponse)
def change_card(
    session: SessionDep, current_user: CurrentUser, gateway: GatewayDep
) -> CheckoutUrlResponse:
    """
    Start saving a new card through a 1 RUB verification payment

    Request: POST /api/v1/billing/change-card
    """
    url = billing_service.start_card_change(session=session, user=current_user, gateway=gateway)
    return CheckoutUrlResponse(url=url)


@router.post("/unbind-card", response_model=Ok)
def unbind_card(session: SessionDep, current_user: CurrentUser, gateway: GatewayDep) -> Ok:
    """Forget the saved card and cancel the subscription"""
    billing_service.unbind_card(session=session, user=current_user, gateway=gateway)
    return Ok()


@router.post("/renew", response_model=RenewResponse)
def renew(session: SessionDep, gateway: GatewayDep, authorization: AuthorizationHeader = None) -> RenewResponse:
    """
    Charge saved cards of subscriptions whose period has ended

    Request: POST /api/v1/billing/renew
    Header: Authorization: Bearer <CRON_SECRET>
    """
    _require_cron_secret(authorization)
    report = renew_due_subscriptions(session=session, gateway=gateway)
    return RenewResponse(**report.as_dict())


@router.post("/expire", response_model=ExpireResponse)
def expire(session: SessionDep, authorization: AuthorizationHeader = None) -> ExpireResponse:
    """
    Cancel past_due subscriptions after the grace period

    Request: POST /api/v1/billing/expire
    Header: Authorization: Bearer <CRON_SECRET>
    """
    _require_cron_secret(authorization)
    return ExpireResponse(expired=expire_past_due_subscriptions(session=session))
