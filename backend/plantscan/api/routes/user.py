"""User routes"""
from fastapi import APIRouter
from sqlmodel import Session

from plantscan.api.deps import CurrentUser, SessionDep
from plantscan.api.schemas import UserProfile
from plantscan.core.config import settings
from plantscan.models import User
from plantscan.services.entitlement import free_scans_used, has_access

router = APIRouter(prefix="/user", tags=["user"])


def build_profile(session: Session, user: User) -> UserProfile:
    user_id: int = user.id  # type: ignore[assignment]
    access = has_access(session=session, user_id=user_id)
    used = free_scans_used(session=session, user_id=user_id)
    return UserProfile(
        id=user_id,
        username=user.username,
        name=user.name,
        email=user.email,
        has_access=access,
        free_scans_used=used,
        free_scans_left=None if access else max(0, settings.FREE_SCAN_LIMIT - used),
    )


@router.get("/profile", response_model=UserProfile)
def get_profile(session: SessionDep, current_user: CurrentUser) -> UserProfile:
    """
    Current user's profile with access and free-tier counters

    Request: GET /api/v1/user/profile
    """
    return build_profile(session, current_user)
