"""
API request/response schemas

Pydantic models used only for data exchange, not database tables. Field
names follow the camelCase the web client sends and reads.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class TokenPayload(BaseModel):
    """JWT payload; ``sub`` holds the user id"""
    sub: str | None = None


class Ok(BaseModel):
    ok: bool = True


# ============================================================
# Auth / user
# ============================================================


class AuthLoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=128)


class UserProfile(BaseModel):
    """
    Signed-in user

    ``free_scans_left`` is None for subscribers (no limit).
    """
    id: int
    username: str
    name: str | None = None
    email: str | None = None
    has_access: bool = False
    free_scans_used: int = 0
    free_scans_left: int | None = None


class AuthLoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserProfile


# ============================================================
# Billing
# ============================================================


class PromoCodeRequest(BaseModel):
    promoCode: str | None = None


class PromoValidationResponse(BaseModel):
    valid: bool
    error: str | None = None
    discountPercent: int | None = None
    originalPrice: int | None = None
    finalPrice: int | None = None


class CheckoutResponse(BaseModel):
    """Either ``free`` (activated by a 100% code) or a payment ``url``"""
    free: bool | None = None
    url: str | None = None


class CheckoutUrlResponse(BaseModel):
    url: str


class PaymentItem(BaseModel):
    id: int
    amount: int
    currency: str
    status: str
    kind: str
    createdAt: str


class BillingStatusResponse(BaseModel):
    status: str
    provider: str | None = None
    currentPeriodEnd: str | None = None
    hasSavedCard: bool
    hasAccess: bool
    payments: list[PaymentItem] = []


class RenewResponse(BaseModel):
    ok: bool = True
    processed: int
    renewed: int
    failed: int
    already_applied: int


class ExpireResponse(BaseModel):
    ok: bool = True
    expired: int


# ============================================================
# Scans
# ============================================================


class ScanAnalyzeResponse(BaseModel):
    id: int
    plantFound: bool
    result: dict[str, Any]


class ScanItem(BaseModel):
    id: int
    imageUrl: str
    result: dict[str, Any]
    plantFound: bool
    isFavorite: bool
    createdAt: datetime


class ScanListResponse(BaseModel):
    scans: list[ScanItem]


class FavoriteResponse(BaseModel):
    id: int
    isFavorite: bool
