"""
Auth routes

Username/password sign-in. An unknown username is registered on its first
sign-in.
"""
from datetime import timedelta

from fastapi import APIRouter

from plantscan import crud
from plantscan.api.deps import SessionDep
from plantscan.api.errors import AppError, unauthorized
from plantscan.api.routes.user import build_profile
from plantscan.api.schemas import AuthLoginRequest, AuthLoginResponse
from plantscan.core import security
from plantscan.core.config import settings

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=AuthLoginResponse)
def login(session: SessionDep, body: AuthLoginRequest) -> AuthLoginResponse:
    """
    Sign in

    Request: POST /api/v1/auth/login

    Returns:
        AuthLoginResponse: bearer token and the user profile

    Raises:
        AppError: 400 for a blank username, 401 when the username exists
            and the password is wrong
    """
    username = body.username.strip()
    if not username:
        raise AppError(code=400101, message="Укажите логин", status_code=400)
    user = crud.authenticate_or_register(
        session=session, username=username, password=body.password
    )
    if user is None:
        raise unauthorized("Неверный логин или пароль")

    access_token_expires = timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)
    token = security.create_access_token(user.id, expires_delta=access_token_expires)
    return AuthLoginResponse(
        access_token=token,
        expires_in=int(access_token_expires.total_seconds()),
        user=build_profile(session, user),
    )
